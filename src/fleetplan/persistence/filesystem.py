"""File-based outputs for confirmed plans."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings

logger = logging.getLogger(__name__)


class FileStorage:
    """Writes plan artifacts into timestamped run directories under ``<data_root>/outputs``."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"
        self.output_root.mkdir(parents=True, exist_ok=True)

    def make_run_directory(self, prefix: str = "plan") -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        run_dir = self.output_root / f"{prefix}_{stamp}"
        run_dir.mkdir(parents=True, exist_ok=False)
        return run_dir

    @staticmethod
    def _target(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        text = json.dumps(data, ensure_ascii=False, indent=indent, default=str)
        self._target(path).write_text(text, encoding="utf-8")

    def write_csv(self, path: Path, content: str) -> None:
        # csv.writer already emits \r\n where wanted; keep newlines untranslated
        with self._target(path).open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    def write_bytes(self, path: Path, payload: bytes) -> None:
        self._target(path).write_bytes(payload)

    def save_plan_outputs(self, job_id: str, summary: dict[str, Any], routes_csv: str, workbook: bytes) -> Path:
        """Write summary.json, routes.csv and plan.xlsx into a fresh run directory."""
        run_dir = self.make_run_directory(prefix=f"plan_{job_id[:8]}")
        self.write_json(run_dir / "summary.json", summary)
        self.write_csv(run_dir / "routes.csv", routes_csv)
        self.write_bytes(run_dir / "plan.xlsx", workbook)
        logger.info(f"Saved plan outputs for job {job_id} to {run_dir}")
        return run_dir
