from .chain import FallbackChain
from .config import AppConfig
from .controller import PipelineStageController
from .types import ImageOutcome, ImageReference, PipelineState, StageRequest, TextOutcome

__all__ = [
    "AppConfig",
    "FallbackChain",
    "PipelineStageController",
    "PipelineState",
    "StageRequest",
    "ImageReference",
    "ImageOutcome",
    "TextOutcome",
]
