from __future__ import annotations

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

_QWEN_API_URL = "https://dashscope.aliyuncs.com/api/v1/services/aigc/multimodal-generation/generation"
_QWEN_TASK_URL = "https://dashscope.aliyuncs.com/api/v1/tasks"
_WANX_API_URL = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text2image/image-synthesis"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def _split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class AppConfig(BaseModel):
    """
    Provider credentials, endpoints and orchestration knobs.

    An adapter is only registered when its API key is set. Keys are never
    logged or rendered; use `configured_providers()` for diagnostics.
    """

    # --- DashScope (Qwen image edit / analysis, Wanx text-to-image) ---
    qwen_api_key: Optional[str] = None
    qwen_api_url: str = Field(default=_QWEN_API_URL)
    qwen_task_url: str = Field(default=_QWEN_TASK_URL)
    qwen_model: str = Field(default="qwen-image-edit-plus")
    qwen_analysis_model: str = Field(default="qwen-vl-max")
    qwen_watermark: bool = True
    wanx_api_url: str = Field(default=_WANX_API_URL)
    wanx_model: str = Field(default="wanx-v1")

    # --- Stability AI ---
    stability_api_key: Optional[str] = None
    stability_api_host: str = Field(default="https://api.stability.ai")
    stability_engine: str = Field(default="stable-diffusion-xl-1024-v1-0")
    stability_image_strength: float = Field(default=0.35)

    # --- OpenAI (DALL-E generation, chat vision analysis) ---
    openai_api_key: Optional[str] = None
    openai_base_url: str = Field(default="https://api.openai.com")
    openai_image_model: str = Field(default="dall-e-3")
    openai_vision_model: str = Field(default="gpt-4o")

    # --- Orchestration ---
    request_timeout_s: float = Field(default=60.0, gt=0)
    poll_max_attempts: int = Field(default=30)
    poll_interval_s: float = Field(default=2.0)
    # Adapter ids listed here are tried first, in this order.
    provider_order: List[str] = Field(default_factory=list)

    log_level: str = Field(default="INFO")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("poll_max_attempts")
    @classmethod
    def _validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("poll_max_attempts must be >= 1")
        return v

    @field_validator("poll_interval_s")
    @classmethod
    def _validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("poll_interval_s must be >= 0")
        return v

    @field_validator("stability_image_strength")
    @classmethod
    def _validate_strength(cls, v: float) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError("stability_image_strength must be between 0 and 1")
        return v

    @field_validator("qwen_api_key", "stability_api_key", "openai_api_key")
    @classmethod
    def _strip_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def configured_providers(self) -> Dict[str, bool]:
        return {
            "qwen": bool(self.qwen_api_key),
            "stability": bool(self.stability_api_key),
            "openai": bool(self.openai_api_key),
        }

    def has_any_provider(self) -> bool:
        return any(self.configured_providers().values())

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Load config from environment variables.

        Credentials (all optional, at least one is needed for real results):
          - QWEN_API_KEY
          - STABILITY_API_KEY
          - OPENAI_API_KEY
        """
        data: Dict[str, object] = {
            "qwen_api_key": _env("QWEN_API_KEY"),
            "stability_api_key": _env("STABILITY_API_KEY"),
            "openai_api_key": _env("OPENAI_API_KEY"),
        }
        optional = {
            "QWEN_API_URL": "qwen_api_url",
            "QWEN_TASK_URL": "qwen_task_url",
            "QWEN_MODEL": "qwen_model",
            "QWEN_ANALYSIS_MODEL": "qwen_analysis_model",
            "WANX_API_URL": "wanx_api_url",
            "WANX_MODEL": "wanx_model",
            "STABILITY_API_HOST": "stability_api_host",
            "STABILITY_ENGINE": "stability_engine",
            "OPENAI_BASE_URL": "openai_base_url",
            "OPENAI_IMAGE_MODEL": "openai_image_model",
            "OPENAI_VISION_MODEL": "openai_vision_model",
            "ROOMREVAMP_LOG_LEVEL": "log_level",
        }
        for env_name, key in optional.items():
            if _env(env_name):
                data[key] = _env(env_name)

        if _env("QWEN_WATERMARK"):
            data["qwen_watermark"] = (_env("QWEN_WATERMARK") or "").lower() in {"1", "true", "yes", "on"}
        if _env("STABILITY_IMAGE_STRENGTH"):
            data["stability_image_strength"] = float(_env("STABILITY_IMAGE_STRENGTH") or "0.35")
        if _env("ROOMREVAMP_REQUEST_TIMEOUT_S"):
            data["request_timeout_s"] = float(_env("ROOMREVAMP_REQUEST_TIMEOUT_S") or "60")
        if _env("ROOMREVAMP_POLL_MAX_ATTEMPTS"):
            data["poll_max_attempts"] = int(_env("ROOMREVAMP_POLL_MAX_ATTEMPTS") or "30")
        if _env("ROOMREVAMP_POLL_INTERVAL_S"):
            data["poll_interval_s"] = float(_env("ROOMREVAMP_POLL_INTERVAL_S") or "2")
        if _env("ROOMREVAMP_PROVIDER_ORDER"):
            data["provider_order"] = _split_csv(_env("ROOMREVAMP_PROVIDER_ORDER"))
        if _env("ROOMREVAMP_CORS_ORIGINS"):
            data["cors_origins"] = _split_csv(_env("ROOMREVAMP_CORS_ORIGINS"))
        return cls(**data)
