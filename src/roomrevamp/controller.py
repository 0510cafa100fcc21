from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import httpx

from .adapters import build_adapters
from .chain import FallbackChain, placeholder_url
from .clutter import CLUTTER_LABEL, extract_clutter_list
from .config import AppConfig
from .errors import NoProviderConfiguredError, ValidationError
from .images import load_image_bytes
from .logging import get_logger
from .poller import AsyncTaskPoller
from .prompts import compose
from .types import (
    FIRST_STAGE,
    LAST_STAGE,
    ImageOutcome,
    ImageReference,
    PipelineState,
    StageName,
    StageOutcome,
    StageRequest,
    TextOutcome,
)

EventCallback = Callable[[Dict[str, Any]], None]
ImageLoader = Callable[[ImageReference], bytes]

_SIMULATED_ANALYSIS = (
    "【场景概述】Simulated analysis: no AI provider is configured.\n"
    f"{CLUTTER_LABEL}\n"
    "【布局建议】Configure QWEN_API_KEY, STABILITY_API_KEY or OPENAI_API_KEY to analyze real photos."
)


class PipelineStageController:
    """
    Entry point for one stage of a room makeover.

    Validates the request against the caller's PipelineState, resolves the
    input image, composes the instruction and runs the fallback chain. The
    state is only updated with usable outcomes.
    """

    def __init__(
        self,
        chain: FallbackChain,
        *,
        load_image: Optional[ImageLoader] = None,
        on_event: Optional[EventCallback] = None,
    ):
        self.chain = chain
        self.load_image: ImageLoader = load_image or load_image_bytes
        self.on_event = on_event
        self.log = get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        on_event: Optional[EventCallback] = None,
    ) -> "PipelineStageController":
        poller = AsyncTaskPoller(max_attempts=config.poll_max_attempts, interval_s=config.poll_interval_s)
        chain = FallbackChain(build_adapters(config, transport=transport), poller=poller)
        timeout = config.request_timeout_s
        return cls(chain, load_image=lambda ref: load_image_bytes(ref, timeout_s=timeout), on_event=on_event)

    def _emit(self, event: Dict[str, Any]) -> None:
        if self.on_event:
            try:
                self.on_event(event)
            except Exception as e:
                self.log.warning(f"[controller] event handler failed: {e}")

    def run_stage(self, request: StageRequest, state: PipelineState) -> StageOutcome:
        stage = request.stage
        if not (FIRST_STAGE <= stage <= LAST_STAGE):
            raise ValidationError(f"Invalid step: {stage}")
        if stage == LAST_STAGE and not (request.scenario or "").strip():
            raise ValidationError("Missing scenario for step 5")

        clutter = request.clutter_list if request.clutter_list is not None else state.clutter_list
        clutter = (clutter or "").strip()
        self.log.info(
            f"[controller] step={stage} ({StageName.for_stage(stage).value}) redo={request.is_redo} "
            f"scenario={request.scenario!r} props={request.props!r} clutter={len(clutter)} chars "
            f"image={request.image.kind if request.image else 'state'}"
        )

        ref = self._resolve_image(request, state)
        image_bytes = b""
        # Simulated results never look at the image.
        if self.chain.adapters:
            image_bytes = self.load_image(ref)
            if not image_bytes:
                raise ValidationError(f"No image available for step {stage}")

        if stage == FIRST_STAGE and request.image is not None and request.image != state.photo:
            state.reset(request.image)
        elif stage == 2 and state.photo is None:
            state.photo = ref

        self._emit({"type": "stage.start", "stage": stage, "meta": {"redo": request.is_redo}})

        instruction = compose(
            stage,
            clutter_list=clutter if stage > FIRST_STAGE else "",
            is_redo=request.is_redo,
            scenario=request.scenario,
            props=request.props,
        )

        if not self.chain.adapters:
            self.log.warning("[controller] no AI provider configured, returning a simulated result")
            outcome = self._simulated(request)
        else:
            try:
                outcome = self.chain.execute(stage, image_bytes, instruction)
            except NoProviderConfiguredError as e:
                self.log.warning(f"[controller] {e.message}, returning a simulated result")
                outcome = self._simulated(request)

        if outcome.degraded:
            self.log.warning(f"[controller] step={stage} degraded, pipeline state left unchanged")
        else:
            state.merge(stage, outcome)

        self._emit({"type": "stage.end", "stage": stage, "outputs": outcome.to_dict()})
        return outcome

    def _resolve_image(self, request: StageRequest, state: PipelineState) -> ImageReference:
        stage = request.stage
        if stage == FIRST_STAGE:
            ref = request.image or state.photo
            if ref is None:
                raise ValidationError("No image provided")
            return ref

        if request.image is None and not state.has_outcome(stage - 1):
            raise ValidationError(f"Step {stage - 1} must be completed before step {stage}")

        ref = request.image or state.input_image_for(stage)
        if ref is None:
            raise ValidationError(f"No image available for step {stage}")
        return ref

    def _simulated(self, request: StageRequest) -> StageOutcome:
        if request.stage == FIRST_STAGE:
            return TextOutcome(
                analysis=_SIMULATED_ANALYSIS,
                extracted_clutter_list=extract_clutter_list(_SIMULATED_ANALYSIS),
                description="Scene analysis (simulated result). Configure an API key to use a real AI service.",
                simulated=True,
            )
        label = request.scenario or StageName.for_stage(request.stage).value.replace("_", " ")
        return ImageOutcome(
            image_url=placeholder_url(label),
            description=(
                f"Step {request.stage} (simulated result). Configure an API key to use a real AI service."
            ),
            simulated=True,
        )
