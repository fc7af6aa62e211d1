"""
Batch worker for local files.

Loads the inference sessions once and reuses them for every item. A bad
image or a failed inference is recorded on that item's result and the batch
carries on with the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from . import config
from .errors import ImageDecodeError, InferenceError
from .model_loader import ModelSessions, get_model_sessions
from .pipeline import process_image_bytes

logger = logging.getLogger(__name__)


@dataclass
class BatchItem:
    input_path: Path
    output_path: Path


@dataclass
class BatchResult:
    item: BatchItem
    ok: bool
    error: Optional[str] = None


def process_batch(
    items: Iterable[BatchItem],
    sessions: Optional[ModelSessions] = None,
    settings: Optional[config.Settings] = None,
) -> List[BatchResult]:
    """
    Process a batch of images synchronously, writing one RGBA PNG per item.

    Returns results in input order.
    """
    settings = settings or config.get_settings()
    if sessions is None:
        sessions = get_model_sessions(settings)

    results: List[BatchResult] = []
    for item in items:
        logger.info("Processing batch item %s -> %s", item.input_path, item.output_path)
        try:
            png_bytes = process_image_bytes(
                item.input_path.read_bytes(), sessions=sessions, settings=settings
            )
        except (ImageDecodeError, InferenceError, OSError) as exc:
            logger.error("Batch item %s failed: %s", item.input_path, exc)
            results.append(BatchResult(item=item, ok=False, error=str(exc)))
            continue

        item.output_path.parent.mkdir(parents=True, exist_ok=True)
        item.output_path.write_bytes(png_bytes)
        results.append(BatchResult(item=item, ok=True))
    return results


def items_for_directory(input_dir: Path, output_dir: Path) -> List[BatchItem]:
    """One item per image file in `input_dir`, written as `<stem>.png` into `output_dir`."""
    suffixes = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif", ".tif", ".tiff"}
    return [
        BatchItem(input_path=path, output_path=output_dir / f"{path.stem}.png")
        for path in sorted(input_dir.iterdir())
        if path.is_file() and path.suffix.lower() in suffixes
    ]
