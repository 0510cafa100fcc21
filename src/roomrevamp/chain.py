from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
from urllib.parse import quote_plus

import httpx

from .adapters.base import ProviderAdapter
from .errors import ChainExhaustedError, NoProviderConfiguredError, ProviderError
from .logging import get_logger
from .normalizer import ResponseNormalizer
from .poller import AsyncTaskPoller
from .types import Capability, ComposedInstruction, ImageOutcome, StageOutcome, TextOutcome

PLACEHOLDER_URL = "https://placehold.co/600x400/4a86e8/ffffff?text="

# Lower tier is tried first; inside a tier, lower priority number first.
_TIERS = {
    Capability.TEXT_ANALYSIS: 0,
    Capability.IMAGE_EDIT: 0,
    Capability.TEXT_TO_IMAGE_ONLY: 1,
}


def placeholder_url(text: str) -> str:
    return PLACEHOLDER_URL + quote_plus(text)


class FallbackChain:
    """
    Tries every adapter capable of a stage until one returns a usable outcome.

    A total failure never raises to the caller: it becomes a degraded outcome
    whose description lists each provider's error.
    """

    def __init__(
        self,
        adapters: Sequence[ProviderAdapter],
        *,
        poller: Optional[AsyncTaskPoller] = None,
        normalizer: Optional[ResponseNormalizer] = None,
    ):
        self.adapters = list(adapters)
        self.normalizer = normalizer or ResponseNormalizer(
            poller,
            task_sources={a.id: a for a in self.adapters},
        )
        self.log = get_logger(__name__)

    def candidates(self, stage: int) -> List[Tuple[ProviderAdapter, Capability]]:
        found = []
        for a in self.adapters:
            cap = a.supports(stage)
            if cap is not None:
                found.append((a, cap))
        found.sort(key=lambda item: (_TIERS[item[1]], item[0].descriptor.priority))
        return found

    def execute(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> StageOutcome:
        candidates = self.candidates(stage)
        if not candidates:
            raise NoProviderConfiguredError(stage)

        self.log.info(f"[chain] stage={stage} candidates: {', '.join(a.id for a, _ in candidates)}")
        try:
            return self._attempt(stage, image_bytes, instruction, candidates)
        except ChainExhaustedError as e:
            self.log.error(f"[chain] stage={stage} {e.summary()}")
            return self._degraded(stage, e, candidates[0][0].descriptor.label)

    def _attempt(
        self,
        stage: int,
        image_bytes: bytes,
        instruction: ComposedInstruction,
        candidates: List[Tuple[ProviderAdapter, Capability]],
    ) -> StageOutcome:
        failures: List[ProviderError] = []
        for adapter, cap in candidates:
            try:
                reply = adapter.invoke(stage, image_bytes, instruction)
                outcome = self.normalizer.normalize(
                    stage,
                    reply,
                    true_edit=cap != Capability.TEXT_TO_IMAGE_ONLY,
                )
            except ProviderError as e:
                self.log.warning(f"[chain] {adapter.id} failed: {e}")
                failures.append(e)
                continue
            except httpx.HTTPError as e:
                self.log.warning(f"[chain] {adapter.id} failed: {e}")
                failures.append(ProviderError(adapter.id, str(e)))
                continue

            self.log.info(f"[chain] stage={stage} served by {adapter.id}")
            return outcome

        raise ChainExhaustedError(stage, failures)

    def _degraded(self, stage: int, err: ChainExhaustedError, label: str) -> StageOutcome:
        summary = err.summary()
        if stage == 1:
            return TextOutcome(
                analysis=summary,
                extracted_clutter_list="",
                description=f"Scene analysis failed. {summary}",
                degraded=True,
            )
        return ImageOutcome(
            image_url=placeholder_url(f"Error with {label}"),
            description=f"Stage {stage} failed, showing a placeholder. {summary}",
            degraded=True,
        )
