# SPDX-License-Identifier: AGPL-3.0-only

"""
Inference capability contract.

The pipeline talks to a vision/language model only through
``InferenceCapability``. Concrete transports live outside the core (see
``common.llm_client``); tests substitute doubles.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from pydantic import BaseModel, Field

DEFAULT_JSON_CONFIDENCE = 0.9
DEFAULT_TEXT_CONFIDENCE = 0.8


class VisionReply(BaseModel):
    """Normalized reply of a per-field vision call."""
    value: Any = Field(default="", description="Most likely value")
    confidence: float = Field(default=DEFAULT_JSON_CONFIDENCE, ge=0, le=1)
    candidates: List[Any] = Field(default_factory=list, description="Alternative values, best first")


class InferenceCapability(ABC):
    """External model able to read images and complete prompts."""

    @abstractmethod
    def read_image(self, image_b64: str, prompt: str) -> str:
        """
        Ask the vision model about an image and return the raw reply text.

        Args:
            image_b64: Base64-encoded document image
            prompt: Instruction for the model

        Returns:
            Reply text, free-form or JSON

        Raises:
            InferenceError: If the capability cannot be reached
        """

    def extract_from_image(self, image_b64: str, prompt: str, field_name: str = "") -> VisionReply:
        """Per-field vision call; the reply is parsed with ``parse_vision_reply``."""
        return parse_vision_reply(self.read_image(image_b64, prompt))

    @abstractmethod
    def complete(self, prompt: str, json_mode: bool = True) -> str:
        """
        Run a text completion and return the raw reply text.

        Raises:
            InferenceError: If the capability cannot be reached
        """


def _strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`").strip()
        if cleaned[:4].lower() == "json":
            cleaned = cleaned[4:]
    return cleaned.strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model reply.

    Code fences are removed, then the text is decoded directly. If that fails,
    the first balanced ``{...}`` block that decodes to an object is returned.

    Args:
        text: Raw reply text

    Returns:
        Parsed dictionary

    Raises:
        ValueError: If no JSON object can be recovered
    """
    if not isinstance(text, str):
        raise ValueError("Response is not a string")

    cleaned = _strip_code_fences(text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return data

    decoder = json.JSONDecoder()
    start = cleaned.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(cleaned, start)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict):
            return obj
        start = cleaned.find("{", start + 1)

    raise ValueError("Could not parse JSON object from response")


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, number))


def parse_vision_reply(text: str) -> VisionReply:
    """
    Interpret a vision reply.

    A JSON object ``{value, confidence, candidates}`` is read field by field
    (confidence defaults to 0.9). A JSON object without ``value`` is itself
    the value, serialized. Anything else is taken as the value itself with
    confidence 0.8.
    """
    try:
        data = parse_json_object(text)
    except ValueError:
        return VisionReply(value=(text or "").strip(), confidence=DEFAULT_TEXT_CONFIDENCE)

    candidates = data.get("candidates")
    if candidates is None:
        candidates = []
    elif not isinstance(candidates, list):
        candidates = [candidates]

    if "value" in data:
        value = data["value"]
    else:
        rest = {k: v for k, v in data.items() if k not in ("confidence", "candidates")}
        value = json.dumps(rest, ensure_ascii=False) if rest else ""

    return VisionReply(
        value=value,
        confidence=_clamp(data.get("confidence", DEFAULT_JSON_CONFIDENCE), DEFAULT_JSON_CONFIDENCE),
        candidates=candidates,
    )
