"""
High-level background-removal pipeline.

`predict_mask` drives the fixed two-stage sequence shared by the HTTP API,
the canvas controller and the batch worker:
image -> segmentation model (raw mask) -> resize model (mask at native size).
`process_image_bytes` wraps it for callers that just want RGBA PNG bytes.
"""

from __future__ import annotations

from enum import Enum
from io import BytesIO
import logging
from pathlib import Path
from typing import Callable, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from . import config
from .canvas import Canvas
from .codec import decode_image_bytes, encode_image, pack_mask
from .errors import InferenceError
from .model_loader import ModelSessions, get_model_sessions

logger = logging.getLogger(__name__)

# Tensor names baked into the pretrained model files.
INPUT_TENSOR_NAME = "input.1"
OUTPUT_TENSOR_NAME = "1959"
OUTPUT_RESIZED_TENSOR_NAME = "output"


class UploadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    MASK_READY = "mask_ready"
    COMPOSITED = "composited"
    FAILED = "failed"
    SUPERSEDED = "superseded"


def run_segmentation(session, input_tensor: np.ndarray) -> np.ndarray:
    """Run the saliency model and return its raw mask output."""
    outputs = session.run([OUTPUT_TENSOR_NAME], {INPUT_TENSOR_NAME: input_tensor})
    return np.asarray(outputs[0], dtype=np.float32)


def run_mask_processor(
    session,
    raw_mask: np.ndarray,
    height: int,
    width: int,
    mask_size: Tuple[int, int],
) -> np.ndarray:
    """Resize the raw mask back to (height, width) with the post-process model."""
    feed = pack_mask(raw_mask, height, width, mask_size)
    outputs = session.run([OUTPUT_RESIZED_TENSOR_NAME], feed)
    resized = np.squeeze(np.asarray(outputs[0], dtype=np.float32))
    if resized.ndim != 2:
        if resized.size != height * width:
            raise InferenceError(
                f"Unexpected resized mask shape {np.shape(outputs[0])} for {height}x{width} image"
            )
        resized = resized.reshape(height, width)
    return resized


def _maybe_dump_debug(raw_mask: np.ndarray, resized: np.ndarray, debug_dir: Path) -> None:
    """Optionally write the intermediate masks when DEBUG is enabled."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        raw = np.squeeze(raw_mask)
        cv2.imwrite(str(debug_dir / "raw_mask.png"), np.clip(raw * 255.0, 0, 255).astype(np.uint8))
        cv2.imwrite(
            str(debug_dir / "resized_mask.png"), np.clip(resized * 255.0, 0, 255).astype(np.uint8)
        )
        logger.debug("pipeline: wrote debug masks to %s", debug_dir)
    except Exception as exc:  # noqa: BLE001
        logger.warning("pipeline: failed to write debug outputs: %s", exc)


def predict_mask(
    image: Image.Image,
    sessions: ModelSessions,
    settings: Optional[config.Settings] = None,
    on_state: Optional[Callable[[UploadState], None]] = None,
) -> np.ndarray:
    """
    Produce a (height, width) float32 foreground mask for `image`.

    `on_state` is called with MASK_READY once the segmentation stage is done.

    Raises:
        InferenceError: when either model run fails or returns an unusable mask.
    """
    settings = settings or config.get_settings()
    mask_size = config.input_size(settings)
    width, height = image.size

    input_tensor = encode_image(
        image, mask_size[0], mask_size[1], settings.normalize_mean, settings.normalize_std
    )
    try:
        raw_mask = run_segmentation(sessions.segmentation, input_tensor)
        if on_state is not None:
            on_state(UploadState.MASK_READY)
        resized = run_mask_processor(sessions.processor, raw_mask, height, width, mask_size)
    except InferenceError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise InferenceError(f"Inference failed: {exc}") from exc

    logger.debug(
        "pipeline: mask for %dx%d image min=%.3f max=%.3f",
        width,
        height,
        float(resized.min()) if resized.size else 0.0,
        float(resized.max()) if resized.size else 0.0,
    )
    if settings.debug:
        _maybe_dump_debug(raw_mask, resized, Path(settings.debug_output_dir))
    return resized


def remove_background(
    image: Image.Image,
    sessions: ModelSessions,
    settings: Optional[config.Settings] = None,
) -> Image.Image:
    """Return an RGBA copy of `image` whose alpha channel is the predicted mask."""
    mask = predict_mask(image, sessions, settings)
    canvas = Canvas()
    canvas.paint(image)
    canvas.apply_mask(mask)
    return canvas.to_image()


def process_image_bytes(
    image_bytes: bytes,
    sessions: Optional[ModelSessions] = None,
    settings: Optional[config.Settings] = None,
) -> bytes:
    """
    Full pipeline from raw bytes to RGBA PNG bytes.

    Raises:
        ImageDecodeError: when the input is not a decodable image.
        InferenceError: when session loading or inference fails.
    """
    settings = settings or config.get_settings()
    image = decode_image_bytes(image_bytes, max_bytes=settings.max_upload_bytes)
    if sessions is None:
        sessions = get_model_sessions(settings)

    out = remove_background(image, sessions, settings)
    buf = BytesIO()
    out.save(buf, format="PNG")
    return buf.getvalue()
