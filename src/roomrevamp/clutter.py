"""Clutter-list extraction from the stage-1 scene analysis.

The analysis is asked to put the clutter list under a `【杂乱物品清单】`
section, but models paraphrase labels. Strategies are tried in a fixed
order (full bracketed label, bare label, loose keyword) and the first match
wins. A section runs until the next `【` or the end of the text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence, Tuple

from .logging import get_logger

log = get_logger(__name__)

CLUTTER_LABEL = "【杂乱物品清单】"

_SECTION_END = r"(?=【|$)"


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    pattern: Pattern[str]

    def extract(self, text: str) -> Optional[str]:
        m = self.pattern.search(text)
        if not m:
            return None
        return m.group("body").strip()


def _strategy(name: str, label: str) -> ExtractionStrategy:
    return ExtractionStrategy(
        name=name,
        pattern=re.compile(label + r"(?P<body>[\s\S]*?)" + _SECTION_END, re.IGNORECASE),
    )


STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    _strategy("bracketed", r"(?:【杂乱物品清单】|\[clutter list\])\s*[:：]?"),
    _strategy("bare", r"(?:杂乱物品清单|clutter list)\s*[:：]?"),
    _strategy("keyword", r"(?:杂乱物品|clutter)[^\n:：【]*[:：]?"),
)


def extract_clutter_list(text: Optional[str], strategies: Sequence[ExtractionStrategy] = STRATEGIES) -> str:
    """Return the clutter section of `text` without its label, or "" if none is found."""
    if not text:
        return ""
    for strategy in strategies:
        found = strategy.extract(text)
        if found is not None:
            log.debug(f"[clutter] matched strategy={strategy.name} length={len(found)}")
            return found
    return ""
