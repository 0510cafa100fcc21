from __future__ import annotations

import io
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest
from PIL import Image

from roomrevamp.adapters.base import ProviderAdapter
from roomrevamp.errors import ProviderError
from roomrevamp.types import AdapterDescriptor, Capability, ComposedInstruction, RawProviderReply, ReplyShape

_ENV_VARS = (
    "QWEN_API_KEY",
    "STABILITY_API_KEY",
    "OPENAI_API_KEY",
    "ROOMREVAMP_PROVIDER_ORDER",
    "ROOMREVAMP_POLL_MAX_ATTEMPTS",
    "ROOMREVAMP_POLL_INTERVAL_S",
    "ROOMREVAMP_CORS_ORIGINS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_png(size=(64, 48), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


def text_reply_body(text: str) -> Dict[str, Any]:
    return {"output": {"choices": [{"message": {"role": "assistant", "content": [{"text": text}]}}]}}


def image_reply_body(url: str) -> Dict[str, Any]:
    return {"output": {"choices": [{"message": {"role": "assistant", "content": [{"image": url}]}}]}}


Step = Union[RawProviderReply, Exception, Callable[[int, bytes, ComposedInstruction], RawProviderReply]]


class FakeAdapter(ProviderAdapter):
    """Scripted adapter: each invoke pops the next step (a reply or an exception to raise)."""

    def __init__(
        self,
        adapter_id: str,
        *,
        capabilities: Sequence[Capability] = (Capability.IMAGE_EDIT,),
        priority: int = 10,
        steps: Optional[List[Step]] = None,
        tasks: Optional[List[Dict[str, Any]]] = None,
    ):
        self.descriptor = AdapterDescriptor(
            id=adapter_id,
            label=adapter_id.title(),
            capabilities=frozenset(capabilities),
            priority=priority,
        )
        super().__init__(api_key="test-key")
        self.steps: List[Step] = list(steps or [])
        self.tasks: List[Dict[str, Any]] = list(tasks or [])
        self.calls: List[Dict[str, Any]] = []
        self.task_queries: List[str] = []

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        self.calls.append({"stage": stage, "image_bytes": image_bytes, "instruction": instruction})
        if not self.steps:
            raise ProviderError(self.id, "no scripted reply left")
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(stage, image_bytes, instruction)
        return step

    def fetch_task(self, task_id: str) -> Dict[str, Any]:
        self.task_queries.append(task_id)
        if not self.tasks:
            raise ProviderError(self.id, "no scripted task body left")
        return self.tasks.pop(0)

    def reply(self, body: Dict[str, Any], shape: ReplyShape = ReplyShape.INLINE_MESSAGE, task=None) -> RawProviderReply:
        return RawProviderReply(provider=self.id, label=self.descriptor.label, shape=shape, body=body, task=task)
