"""
LLM client for OpenAI-compatible chat completion endpoints (DashScope, OpenAI, vLLM, ...).
"""
import logging
from typing import Optional, Dict, Any, List

import requests

from template_extraction.config import config
from template_extraction.errors import InferenceError
from template_extraction.inference import InferenceCapability

logger = logging.getLogger(__name__)


class OpenAICompatibleClient(InferenceCapability):
    """Inference capability backed by a ``/chat/completions`` endpoint."""

    def __init__(self, api_base: str = None, api_key: str = None, vision_model: str = None,
                 text_model: str = None, timeout: int = None, temperature: float = None,
                 session: Optional[requests.Session] = None):
        settings = config.get_inference_config()
        self.api_base = (api_base or settings["api_base"]).rstrip("/")
        self.api_key = api_key if api_key is not None else settings["api_key"]
        self.vision_model = vision_model or settings["vision_model"]
        self.text_model = text_model or settings["text_model"]
        self.timeout = timeout or settings["timeout"]
        self.temperature = settings["temperature"] if temperature is None else temperature
        self.session = session or requests.Session()

    def read_image(self, image_b64: str, prompt: str) -> str:
        """Send the image as a data URI next to the instruction."""
        messages = [{
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": self._data_uri(image_b64)}},
                {"type": "text", "text": prompt},
            ],
        }]
        return self._chat(self.vision_model, messages)

    def complete(self, prompt: str, json_mode: bool = True) -> str:
        messages = [{"role": "user", "content": prompt}]
        extra = {"response_format": {"type": "json_object"}} if json_mode else {}
        return self._chat(self.text_model, messages, **extra)

    @staticmethod
    def _data_uri(image_b64: str) -> str:
        if image_b64.startswith("data:"):
            return image_b64
        return f"data:image/jpeg;base64,{image_b64}"

    def _chat(self, model: str, messages: List[Dict[str, Any]], **extra) -> str:
        """Call the endpoint once. No retries: the caller owns the time budget."""
        if not self.api_key:
            raise InferenceError("Inference API key not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            **extra,
        }

        try:
            resp = self.session.post(
                f"{self.api_base}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            logger.error("Inference call to %s failed: %s", model, e)
            raise InferenceError(f"Inference call failed: {e}", details={"model": model}, error=e) from e
        except ValueError as e:
            raise InferenceError("Inference endpoint returned invalid JSON", details={"model": model}, error=e) from e

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise InferenceError("Inference reply has no message content", details={"model": model}, error=e) from e

        usage = data.get("usage", {}).get("total_tokens", 0)
        logger.debug("Inference call to %s used %s tokens", model, usage)
        return text or ""
