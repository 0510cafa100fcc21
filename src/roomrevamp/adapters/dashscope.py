from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..errors import ProviderError
from ..images import image_to_data_uri
from ..poller import as_dict, is_malformed
from ..types import (
    AdapterDescriptor,
    AsyncTaskHandle,
    Capability,
    ComposedInstruction,
    RawProviderReply,
    ReplyShape,
)
from .base import ProviderAdapter


class DashScopeAdapter(ProviderAdapter):
    """Shared DashScope plumbing: bearer auth and the task status endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        task_url: str,
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(api_key=api_key, timeout_s=timeout_s, transport=transport, priority=priority)
        self.task_url = task_url.rstrip("/")

    def fetch_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{self.task_url}/{task_id}")

    def _async_reply(self, data: Dict[str, Any]) -> RawProviderReply:
        task_id = as_dict(data.get("output")).get("task_id")
        if not task_id:
            raise ProviderError(self.id, f"unexpected reply, no result and no task id (request_id={data.get('request_id')})")
        self.log.info(f"[{self.id}] async task created id={task_id}")
        return RawProviderReply(
            provider=self.id,
            label=self.descriptor.label,
            shape=ReplyShape.ASYNC_TASK,
            body=data,
            task=AsyncTaskHandle(task_id=str(task_id), provider=self.id),
        )


class QwenImageEditAdapter(DashScopeAdapter):
    """
    Qwen multimodal generation (message API).

    Stage 1 sends the photo with the analysis prompt to the vision model and
    gets text back; stages 2-5 send it to the image-edit model. Replies carry
    the result inline in `output.choices`, or only `output.task_id` when the
    service decides to run the job asynchronously.
    """

    descriptor = AdapterDescriptor(
        id="qwen-image-edit",
        label="Qwen image edit",
        capabilities=frozenset({Capability.IMAGE_EDIT, Capability.TEXT_ANALYSIS}),
        priority=10,
    )

    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        task_url: str,
        model: str = "qwen-image-edit-plus",
        analysis_model: str = "qwen-vl-max",
        watermark: bool = True,
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(api_key=api_key, task_url=task_url, timeout_s=timeout_s, transport=transport, priority=priority)
        self.api_url = api_url
        self.model = model
        self.analysis_model = analysis_model
        self.watermark = watermark

    def build_payload(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> Dict[str, Any]:
        parameters: Dict[str, Any] = {"result_format": "message", "stream": False}
        if stage != 1:
            parameters.update(
                {
                    "n": 1,
                    "watermark": self.watermark,
                    "negative_prompt": instruction.negative_instruction,
                }
            )
        return {
            "model": self.analysis_model if stage == 1 else self.model,
            "input": {
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"image": image_to_data_uri(image_bytes)},
                            {"text": instruction.instruction},
                        ],
                    }
                ]
            },
            "parameters": parameters,
        }

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        payload = self.build_payload(stage, image_bytes, instruction)
        self.log.info(
            f"[{self.id}] stage={stage} model={payload['model']} image={len(image_bytes)} bytes "
            f"prompt={len(instruction.instruction)} chars"
        )
        data = self._post(self.api_url, payload)
        if is_malformed(data):
            raise ProviderError(self.id, "malformed reply: output is not an object")

        if as_dict(data.get("output")).get("choices"):
            return RawProviderReply(
                provider=self.id,
                label=self.descriptor.label,
                shape=ReplyShape.INLINE_MESSAGE,
                body=data,
            )
        return self._async_reply(data)


class WanxTextToImageAdapter(DashScopeAdapter):
    """Wanx text-to-image. Cannot edit the photo; always runs as an async task."""

    descriptor = AdapterDescriptor(
        id="wanx-t2i",
        label="Wanx text-to-image",
        capabilities=frozenset({Capability.TEXT_TO_IMAGE_ONLY}),
        priority=40,
    )

    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        task_url: str,
        model: str = "wanx-v1",
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(api_key=api_key, task_url=task_url, timeout_s=timeout_s, transport=transport, priority=priority)
        self.api_url = api_url
        self.model = model

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        payload = {
            "model": self.model,
            "input": {
                "prompt": instruction.generation_prompt or instruction.instruction,
                "negative_prompt": instruction.negative_instruction,
            },
            "parameters": {"style": "<auto>", "size": "1024*1024", "n": 1},
        }
        self.log.info(f"[{self.id}] stage={stage} model={self.model} (text-to-image, photo not used)")
        data = self._post(self.api_url, payload, headers={"X-DashScope-Async": "enable"})
        return self._async_reply(data)
