# SPDX-License-Identifier: AGPL-3.0-only

"""
Configuration service for the template extraction system.

This module centralizes all configuration settings for the extraction pipeline,
supporting environment variable overrides (prefix ``EXTRACTION_``) and a
``.env`` file.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExtractionConfig(BaseSettings):
    """Configuration settings for the extraction system."""

    model_config = SettingsConfigDict(
        env_prefix="EXTRACTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Inference endpoint (OpenAI-compatible chat completions)
    api_base: str = Field(
        default="https://dashscope.aliyuncs.com/compatible-mode/v1",
        description="Base URL of the inference endpoint",
    )
    api_key: Optional[str] = Field(default=None, description="Bearer token for the inference endpoint")
    vision_model: str = Field(default="qwen-vl-max", description="Model used for image/PDF reads")
    text_model: str = Field(default="qwen-plus", description="Model used for batched field binding")
    temperature: float = Field(default=0.1, description="Sampling temperature")
    request_timeout: int = Field(default=60, description="Per-request socket timeout in seconds")

    # Field extraction
    max_workers: int = Field(default=1, description="Worker threads for the per-field path (1 = sequential)")
    default_word_confidence: float = Field(default=0.8, description="Confidence of an OCR word without one")

    # Batched binding candidate shaping
    binding_confidence_start: float = Field(default=0.95, ge=0, le=1, description="Confidence of the first bound value")
    binding_confidence_step: float = Field(default=0.05, ge=0, description="Decrease per subsequent value")
    binding_confidence_floor: float = Field(default=0.05, ge=0, le=1, description="Lowest confidence a bound value gets")

    # OCR adapter
    ocr_language: str = Field(default="chi_sim+eng", description="Tesseract language pack(s)")
    tesseract_cmd: Optional[str] = Field(default=None, description="Explicit tesseract binary path")

    def get_inference_config(self) -> dict:
        """Get inference endpoint configuration."""
        return {
            "api_base": self.api_base.rstrip("/"),
            "api_key": self.api_key,
            "vision_model": self.vision_model,
            "text_model": self.text_model,
            "temperature": self.temperature,
            "timeout": self.request_timeout,
        }

    def get_binding_config(self) -> dict:
        """Get candidate shaping configuration for the binder."""
        return {
            "start": self.binding_confidence_start,
            "step": self.binding_confidence_step,
            "floor": self.binding_confidence_floor,
        }

    def validate_inference_config(self) -> bool:
        """An endpoint needs at least a key to be usable."""
        return bool(self.api_key)


# Global configuration instance
config = ExtractionConfig()
