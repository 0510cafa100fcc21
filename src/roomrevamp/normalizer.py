"""Translation boundary between provider replies and stage outcomes.

Provider JSON is only interpreted here (and in the poller for task status
bodies). Known layouts:

  - DashScope messages:  output.choices[0].message.content = [{"text"}, {"image"}]
  - OpenAI chat:         choices[0].message.content = "text"
  - Stability artifacts: artifacts[0].base64
  - OpenAI images:       data[0].url | data[0].b64_json
  - DashScope results:   output.results[0].url | .image
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .clutter import extract_clutter_list
from .errors import ProviderError
from .images import as_image_url
from .logging import get_logger
from .poller import AsyncTaskPoller, as_dict, first_dict, is_malformed, task_image
from .types import ImageOutcome, RawProviderReply, ReplyShape, StageOutcome, TaskSource, TextOutcome

log = get_logger(__name__)

NOT_EDITED_NOTE = "(note: this is a newly generated image, the original photo was not edited)"

_STAGE_DONE = {
    1: "Scene analysis complete",
    2: "Basic cleanup complete: obvious trash and clutter removed",
    3: "Deep cleanup complete: stickers, stains and small details cleaned",
    4: "Layout optimized: items arranged and space opened up",
    5: "Props added for your scenario",
}


def describe(stage: int, label: str, *, true_edit: bool = True) -> str:
    base = f"{_STAGE_DONE.get(stage, 'Stage complete')}, generated with {label}"
    if not true_edit:
        return f"{base} {NOT_EDITED_NOTE}"
    return base


def _message_content(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    output = as_dict(body.get("output"))
    choice = first_dict(output.get("choices")) or first_dict(body.get("choices"))
    if choice is None:
        return []
    content = as_dict(choice.get("message")).get("content")
    if isinstance(content, str):
        return [{"text": content}]
    if isinstance(content, list):
        return [item for item in content if isinstance(item, dict)]
    return []


def message_text(body: Dict[str, Any]) -> Optional[str]:
    parts = [str(item["text"]) for item in _message_content(body) if item.get("text")]
    if not parts:
        return None
    return "\n".join(parts).strip() or None


def message_image(body: Dict[str, Any]) -> Optional[str]:
    for item in _message_content(body):
        if item.get("image"):
            return as_image_url(str(item["image"]))
    return None


def generated_image(body: Dict[str, Any]) -> Optional[str]:
    artifact = first_dict(body.get("artifacts"))
    if artifact is not None and artifact.get("base64"):
        return as_image_url(str(artifact["base64"]))

    item = first_dict(body.get("data"))
    if item is not None:
        if item.get("url"):
            return as_image_url(str(item["url"]))
        if item.get("b64_json"):
            return as_image_url(str(item["b64_json"]))

    return task_image(body)


class ResponseNormalizer:
    def __init__(
        self,
        poller: Optional[AsyncTaskPoller] = None,
        *,
        task_sources: Optional[Mapping[str, TaskSource]] = None,
    ):
        self.poller = poller or AsyncTaskPoller()
        self.task_sources: Dict[str, TaskSource] = dict(task_sources or {})

    def normalize(self, stage: int, reply: RawProviderReply, *, true_edit: bool = True) -> StageOutcome:
        """
        Map a raw reply to a TextOutcome (stage 1) or ImageOutcome (stages 2-5).

        `true_edit=False` marks outcomes of adapters that can only generate new
        images; generation-only replies are always marked.
        """
        if is_malformed(reply.body):
            raise ProviderError(reply.provider, "malformed reply")

        if stage == 1:
            return self._text_outcome(reply)

        if reply.shape == ReplyShape.GENERATION_ONLY:
            true_edit = False

        if reply.shape == ReplyShape.ASYNC_TASK:
            image = self._poll(reply).image_url
        elif reply.shape == ReplyShape.INLINE_MESSAGE:
            image = message_image(reply.body) or generated_image(reply.body)
        else:
            image = generated_image(reply.body)

        if not image:
            raise ProviderError(reply.provider, "reply contained no image")

        return ImageOutcome(
            image_url=image,
            description=describe(stage, reply.label, true_edit=true_edit),
            provider=reply.provider,
        )

    def _text_outcome(self, reply: RawProviderReply) -> TextOutcome:
        if reply.shape != ReplyShape.INLINE_MESSAGE:
            raise ProviderError(reply.provider, f"scene analysis needs an inline text reply, got {reply.shape.value}")
        text = message_text(reply.body)
        if not text:
            raise ProviderError(reply.provider, "reply contained no analysis text")
        clutter = extract_clutter_list(text)
        if clutter:
            log.info(f"[normalizer] extracted clutter list: {clutter[:200]}")
        else:
            log.info("[normalizer] no clutter list found in analysis")
        return TextOutcome(
            analysis=text,
            extracted_clutter_list=clutter,
            description=f"Scene analysis complete, generated with {reply.label}",
            provider=reply.provider,
        )

    def _poll(self, reply: RawProviderReply) -> ImageOutcome:
        if reply.task is None:
            raise ProviderError(reply.provider, "async reply without a task id")
        source = self.task_sources.get(reply.task.provider)
        if source is None:
            raise ProviderError(reply.provider, f"no task source registered for {reply.task.provider}")
        log.info(f"[normalizer] {reply.provider} returned async task {reply.task.task_id}, polling")
        return self.poller.poll(reply.task, source.fetch_task)
