from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from .errors import ValidationError
from .images import load_image_bytes
from .logging import get_logger
from .types import ImageReference, StageOutcome, TextOutcome

MANIFEST_NAME = "manifest.json"

log = get_logger(__name__)


class RunArtifacts:
    """
    Files written by one `roomrevamp run`: the input photo, one folder per
    stage and a manifest pointing at both.
    """

    def __init__(self, out_dir: Path, *, timeout_s: float = 60.0):
        self.out_dir = out_dir
        self.timeout_s = timeout_s
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def _target(self, relpath: str) -> Path:
        target = self.out_dir / relpath
        target.parent.mkdir(parents=True, exist_ok=True)
        return target

    def save_photo(self, data: bytes, suffix: str = ".png") -> Path:
        target = self._target(f"input/photo{suffix}")
        target.write_bytes(data)
        return target

    def save_outcome(self, stage: int, outcome: StageOutcome) -> Dict[str, Any]:
        """
        Persist what a stage produced and return its manifest entry.

        Degraded and simulated images are placeholders and stay as URLs.
        Saved data-URI images are replaced by their file path so the
        manifest stays readable.
        """
        entry = outcome.to_dict()
        entry["provider"] = outcome.provider

        if isinstance(outcome, TextOutcome):
            target = self._target(f"stage{stage}/analysis.txt")
            target.write_text(outcome.analysis, encoding="utf-8")
            entry["analysis_path"] = target.resolve().as_posix()
            return entry

        if outcome.degraded or outcome.simulated:
            return entry

        try:
            data = load_image_bytes(ImageReference.parse(outcome.image_url), timeout_s=self.timeout_s)
        except ValidationError as e:
            log.warning(f"[artifacts] stage={stage} image not saved: {e}")
            entry["save_error"] = str(e)
            return entry

        target = self._target(f"stage{stage}/result.png")
        target.write_bytes(data)
        entry["image_path"] = target.resolve().as_posix()
        if outcome.image_url.startswith("data:"):
            entry["imageUrl"] = entry["image_path"]
        return entry

    def write_manifest(self, manifest: Dict[str, Any]) -> Path:
        target = self._target(MANIFEST_NAME)
        target.write_text(json.dumps(manifest, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        return target
