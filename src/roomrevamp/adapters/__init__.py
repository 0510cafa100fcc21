from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import httpx

from ..config import AppConfig
from ..logging import get_logger
from .base import ProviderAdapter
from .dashscope import DashScopeAdapter, QwenImageEditAdapter, WanxTextToImageAdapter
from .openai import DalleAdapter, OpenAIVisionAdapter
from .stability import StabilityImageToImageAdapter, StabilityTextToImageAdapter

__all__ = [
    "ProviderAdapter",
    "DashScopeAdapter",
    "QwenImageEditAdapter",
    "WanxTextToImageAdapter",
    "StabilityImageToImageAdapter",
    "StabilityTextToImageAdapter",
    "DalleAdapter",
    "OpenAIVisionAdapter",
    "build_adapters",
    "priority_overrides",
]

log = get_logger(__name__)


def priority_overrides(order: Sequence[str]) -> Dict[str, int]:
    """Adapter ids listed in `order` get priorities 1, 2, ... ahead of every default."""
    out: Dict[str, int] = {}
    for i, adapter_id in enumerate(order):
        out.setdefault(adapter_id, i + 1)
    return out


def build_adapters(config: AppConfig, *, transport: Optional[httpx.BaseTransport] = None) -> List[ProviderAdapter]:
    """Register one adapter per wire protocol whose credential is configured."""
    prio = priority_overrides(config.provider_order)
    timeout = config.request_timeout_s
    adapters: List[ProviderAdapter] = []

    if config.qwen_api_key:
        adapters.append(
            QwenImageEditAdapter(
                api_key=config.qwen_api_key,
                api_url=config.qwen_api_url,
                task_url=config.qwen_task_url,
                model=config.qwen_model,
                analysis_model=config.qwen_analysis_model,
                watermark=config.qwen_watermark,
                timeout_s=timeout,
                transport=transport,
                priority=prio.get(QwenImageEditAdapter.descriptor.id),
            )
        )
        adapters.append(
            WanxTextToImageAdapter(
                api_key=config.qwen_api_key,
                api_url=config.wanx_api_url,
                task_url=config.qwen_task_url,
                model=config.wanx_model,
                timeout_s=timeout,
                transport=transport,
                priority=prio.get(WanxTextToImageAdapter.descriptor.id),
            )
        )

    if config.stability_api_key:
        common = {
            "api_key": config.stability_api_key,
            "api_host": config.stability_api_host,
            "engine": config.stability_engine,
            "timeout_s": timeout,
            "transport": transport,
        }
        adapters.append(
            StabilityImageToImageAdapter(
                image_strength=config.stability_image_strength,
                priority=prio.get(StabilityImageToImageAdapter.descriptor.id),
                **common,
            )
        )
        adapters.append(
            StabilityTextToImageAdapter(
                priority=prio.get(StabilityTextToImageAdapter.descriptor.id),
                **common,
            )
        )

    if config.openai_api_key:
        adapters.append(
            OpenAIVisionAdapter(
                api_key=config.openai_api_key,
                base_url=config.openai_base_url,
                model=config.openai_vision_model,
                timeout_s=timeout,
                transport=transport,
                priority=prio.get(OpenAIVisionAdapter.descriptor.id),
            )
        )
        adapters.append(
            DalleAdapter(
                api_key=config.openai_api_key,
                base_url=config.openai_base_url,
                model=config.openai_image_model,
                timeout_s=timeout,
                transport=transport,
                priority=prio.get(DalleAdapter.descriptor.id),
            )
        )

    known = {a.id for a in adapters}
    for adapter_id in prio:
        if adapter_id not in known:
            log.warning(f"[adapters] provider order names unknown or unconfigured adapter '{adapter_id}'")

    log.info(f"[adapters] registered: {', '.join(a.id for a in adapters) or '(none)'}")
    return adapters
