from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..errors import ProviderError
from ..images import image_to_data_uri
from ..types import AdapterDescriptor, Capability, ComposedInstruction, RawProviderReply, ReplyShape
from .base import ProviderAdapter


class DalleAdapter(ProviderAdapter):
    """OpenAI image generation. Produces a new image unrelated to the photo."""

    descriptor = AdapterDescriptor(
        id="dalle",
        label="DALL-E",
        capabilities=frozenset({Capability.TEXT_TO_IMAGE_ONLY}),
        priority=60,
    )

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com",
        model: str = "dall-e-3",
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url, timeout_s=timeout_s, transport=transport, priority=priority)
        self.model = model

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        payload = {
            "model": self.model,
            "prompt": instruction.generation_prompt or instruction.instruction,
            "n": 1,
            "size": "1024x1024",
        }
        self.log.info(f"[{self.id}] stage={stage} model={self.model} (generation only, photo not used)")
        data = self._post("/v1/images/generations", payload)
        if not data.get("data"):
            raise ProviderError(self.id, "reply has no data")
        return RawProviderReply(
            provider=self.id,
            label=self.descriptor.label,
            shape=ReplyShape.GENERATION_ONLY,
            body=data,
        )


class OpenAIVisionAdapter(ProviderAdapter):
    """Chat completions with an image part; text analysis only (stage 1)."""

    descriptor = AdapterDescriptor(
        id="openai-vision",
        label="OpenAI vision",
        capabilities=frozenset({Capability.TEXT_ANALYSIS}),
        priority=30,
    )

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com",
        model: str = "gpt-4o",
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url, timeout_s=timeout_s, transport=transport, priority=priority)
        self.model = model

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        if stage != 1:
            raise ProviderError(self.id, f"cannot handle stage {stage}, text analysis only")
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": instruction.instruction},
                        {"type": "image_url", "image_url": {"url": image_to_data_uri(image_bytes)}},
                    ],
                }
            ],
        }
        self.log.info(f"[{self.id}] stage={stage} model={self.model}")
        data = self._post("/v1/chat/completions", payload)
        if not data.get("choices"):
            raise ProviderError(self.id, "reply has no choices")
        return RawProviderReply(
            provider=self.id,
            label=self.descriptor.label,
            shape=ReplyShape.INLINE_MESSAGE,
            body=data,
        )
