from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

import httpx
from PIL import UnidentifiedImageError

from ..errors import ProviderError
from ..images import fit_to_sdxl
from ..poller import first_dict
from ..types import AdapterDescriptor, Capability, ComposedInstruction, RawProviderReply, ReplyShape
from .base import ProviderAdapter


class _StabilityBase(ProviderAdapter):
    def __init__(
        self,
        *,
        api_key: str,
        api_host: str = "https://api.stability.ai",
        engine: str = "stable-diffusion-xl-1024-v1-0",
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(api_key=api_key, base_url=api_host, timeout_s=timeout_s, transport=transport, priority=priority)
        self.engine = engine

    def headers(self) -> Dict[str, str]:
        h = super().headers()
        h["Accept"] = "application/json"
        return h

    @staticmethod
    def text_prompts(text: str, negative: str) -> List[Dict[str, Any]]:
        prompts: List[Dict[str, Any]] = [{"text": text, "weight": 1.0}]
        if negative:
            prompts.append({"text": negative, "weight": -1.0})
        return prompts

    def _artifacts_reply(self, data: Dict[str, Any], shape: ReplyShape) -> RawProviderReply:
        artifact = first_dict(data.get("artifacts"))
        if artifact is None:
            raise ProviderError(self.id, "reply has no artifacts")
        reason = artifact.get("finishReason")
        if reason == "ERROR":
            raise ProviderError(self.id, "generation finished with ERROR")
        return RawProviderReply(provider=self.id, label=self.descriptor.label, shape=shape, body=data)


class StabilityImageToImageAdapter(_StabilityBase):
    """SDXL image-to-image: the photo is the init image, `image_strength` keeps its structure."""

    descriptor = AdapterDescriptor(
        id="stability-img2img",
        label="Stable Diffusion image-to-image",
        capabilities=frozenset({Capability.IMAGE_EDIT}),
        priority=20,
    )

    def __init__(self, *, image_strength: float = 0.35, **kwargs: Any):
        super().__init__(**kwargs)
        self.image_strength = image_strength

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        try:
            init_image = fit_to_sdxl(image_bytes)
        except (UnidentifiedImageError, OSError) as e:
            raise ProviderError(self.id, f"cannot prepare init image: {e}") from e

        payload = {
            "text_prompts": self.text_prompts(instruction.instruction, instruction.negative_instruction),
            "init_image": base64.b64encode(init_image).decode("utf-8"),
            "init_image_mode": "IMAGE_STRENGTH",
            "image_strength": self.image_strength,
            "cfg_scale": 7,
            "samples": 1,
            "steps": 30,
        }
        self.log.info(f"[{self.id}] stage={stage} engine={self.engine} strength={self.image_strength}")
        data = self._post(f"/v1/generation/{self.engine}/image-to-image", payload)
        return self._artifacts_reply(data, ReplyShape.INLINE_MESSAGE)


class StabilityTextToImageAdapter(_StabilityBase):
    """SDXL text-to-image, used when image-to-image is unavailable. Never edits the photo."""

    descriptor = AdapterDescriptor(
        id="stability-t2i",
        label="Stable Diffusion text-to-image",
        capabilities=frozenset({Capability.TEXT_TO_IMAGE_ONLY}),
        priority=50,
    )

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        payload = {
            "text_prompts": self.text_prompts(
                instruction.generation_prompt or instruction.instruction,
                instruction.negative_instruction,
            ),
            "cfg_scale": 7,
            "height": 1024,
            "width": 1024,
            "samples": 1,
            "steps": 30,
        }
        self.log.info(f"[{self.id}] stage={stage} engine={self.engine} (text-to-image, photo not used)")
        data = self._post(f"/v1/generation/{self.engine}/text-to-image", payload)
        return self._artifacts_reply(data, ReplyShape.GENERATION_ONLY)
