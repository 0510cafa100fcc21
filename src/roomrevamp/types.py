from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Protocol, Set, Union

from .errors import ValidationError

FIRST_STAGE = 1
LAST_STAGE = 5


class StageName(str, Enum):
    SCENE_ANALYSIS = "scene_analysis"
    BASIC_CLEANUP = "basic_cleanup"
    DEEP_CLEANUP = "deep_cleanup"
    LAYOUT_OPTIMIZE = "layout_optimize"
    ADD_PROPS = "add_props"

    @classmethod
    def for_stage(cls, stage: int) -> "StageName":
        return _STAGE_NAMES[stage - 1]


_STAGE_NAMES = (
    StageName.SCENE_ANALYSIS,
    StageName.BASIC_CLEANUP,
    StageName.DEEP_CLEANUP,
    StageName.LAYOUT_OPTIMIZE,
    StageName.ADD_PROPS,
)


class Capability(str, Enum):
    IMAGE_EDIT = "image_edit"
    TEXT_ANALYSIS = "text_analysis"
    TEXT_TO_IMAGE_ONLY = "text_to_image_only"


class ReplyShape(str, Enum):
    INLINE_MESSAGE = "inline_message"
    ASYNC_TASK = "async_task"
    GENERATION_ONLY = "generation_only"


@dataclass(frozen=True)
class ImageReference:
    """
    One image input: raw bytes, a remote URL, or an inline base64 data URI.

    Exactly one representation is set.
    """

    data: Optional[bytes] = None
    url: Optional[str] = None
    data_uri: Optional[str] = None

    def __post_init__(self) -> None:
        active = [v for v in (self.data, self.url, self.data_uri) if v]
        if len(active) != 1:
            raise ValidationError("ImageReference needs exactly one of bytes, url or data URI")

    @classmethod
    def from_bytes(cls, data: bytes) -> "ImageReference":
        return cls(data=data)

    @classmethod
    def parse(cls, value: str) -> "ImageReference":
        value = value.strip()
        if value.startswith("data:"):
            return cls(data_uri=value)
        if value.startswith(("http://", "https://")):
            return cls(url=value)
        raise ValidationError("Image reference must be an http(s) URL or a data URI")

    @property
    def kind(self) -> str:
        if self.data:
            return "bytes"
        if self.url:
            return "url"
        return "data_uri"

    def as_display(self) -> Optional[str]:
        return self.url or self.data_uri


@dataclass(frozen=True)
class AdapterDescriptor:
    id: str
    label: str
    capabilities: FrozenSet[Capability]
    priority: int


@dataclass(frozen=True)
class AsyncTaskHandle:
    task_id: str
    provider: str


@dataclass(frozen=True)
class ComposedInstruction:
    instruction: str
    negative_instruction: str
    generation_prompt: str = ""


@dataclass
class RawProviderReply:
    provider: str
    label: str
    shape: ReplyShape
    body: Dict[str, Any] = field(default_factory=dict)
    task: Optional[AsyncTaskHandle] = None


@dataclass
class TextOutcome:
    analysis: str
    extracted_clutter_list: str = ""
    description: str = ""
    provider: Optional[str] = None
    degraded: bool = False
    simulated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "analysis": self.analysis,
            "description": self.description,
            "clutterList": self.extracted_clutter_list,
        }
        if self.degraded:
            d["degraded"] = True
        if self.simulated:
            d["simulated"] = True
        return d


@dataclass
class ImageOutcome:
    image_url: str
    description: str = ""
    provider: Optional[str] = None
    degraded: bool = False
    simulated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "imageUrl": self.image_url,
            "description": self.description,
        }
        if self.degraded:
            d["degraded"] = True
        if self.simulated:
            d["simulated"] = True
        return d


StageOutcome = Union[TextOutcome, ImageOutcome]


@dataclass
class StageRequest:
    stage: int
    image: Optional[ImageReference] = None
    scenario: Optional[str] = None
    props: Optional[str] = None
    clutter_list: Optional[str] = None
    is_redo: bool = False


@dataclass
class PipelineState:
    """
    Accumulated results of one room photo's pipeline.

    Held by the caller (one per session); never shared between sessions.
    """

    photo: Optional[ImageReference] = None
    stage1_text: Optional[str] = None
    clutter_list: str = ""
    stage_images: Dict[int, str] = field(default_factory=dict)
    completed: Set[int] = field(default_factory=set)

    def reset(self, photo: Optional[ImageReference] = None) -> None:
        self.photo = photo
        self.stage1_text = None
        self.clutter_list = ""
        self.stage_images = {}
        self.completed = set()

    @classmethod
    def restore(
        cls,
        stage: int,
        image: Optional[ImageReference] = None,
        clutter_list: Optional[str] = None,
    ) -> "PipelineState":
        """Rebuild a state from the fields a stateless client sends with a stage request."""
        state = cls(clutter_list=(clutter_list or "").strip())
        if image is not None:
            if stage <= 2:
                state.photo = image
            elif image.as_display():
                state.stage_images[stage - 1] = image.as_display()
            state.completed = set(range(FIRST_STAGE, stage))
        return state

    def has_outcome(self, stage: int) -> bool:
        return stage in self.completed

    def input_image_for(self, stage: int) -> Optional[ImageReference]:
        if stage <= 2:
            return self.photo
        ref = self.stage_images.get(stage - 1)
        return ImageReference.parse(ref) if ref else None

    def merge(self, stage: int, outcome: StageOutcome) -> None:
        for later in [s for s in self.completed if s > stage]:
            self.completed.discard(later)
            self.stage_images.pop(later, None)
        if isinstance(outcome, TextOutcome):
            self.stage1_text = outcome.analysis
            self.clutter_list = outcome.extracted_clutter_list
        else:
            self.stage_images[stage] = outcome.image_url
        self.completed.add(stage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage1Text": self.stage1_text,
            "clutterList": self.clutter_list,
            "stageImages": {str(k): v for k, v in sorted(self.stage_images.items())},
            "completed": sorted(self.completed),
        }


class TaskSource(Protocol):
    def fetch_task(self, task_id: str) -> Dict[str, Any]:
        ...
