"""
Tensor codec for the U^2-Net pipeline.

Converts decoded images into the normalized, channel-planar tensor the
segmentation model expects, packages the raw mask for the resize model, and
turns the returned mask back into alpha bytes.
"""

from __future__ import annotations

from io import BytesIO
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from .errors import ImageDecodeError

MASK_TENSOR_NAME = "mask"
ORIGINAL_SHAPE_TENSOR_NAME = "original_shape"


def decode_image_bytes(image_bytes: bytes, max_bytes: Optional[int] = None) -> Image.Image:
    """Decode raw upload bytes into a fully loaded PIL image."""
    if not image_bytes:
        raise ImageDecodeError("Empty image upload")
    if max_bytes is not None and len(image_bytes) > max_bytes:
        raise ImageDecodeError(f"Image exceeds the {max_bytes} byte upload limit")
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except Exception as exc:  # noqa: BLE001
        raise ImageDecodeError("Unsupported or corrupt image data") from exc
    if image.width == 0 or image.height == 0:
        raise ImageDecodeError("Image has zero size")
    return image


def encode_image(
    image: Image.Image,
    target_width: int,
    target_height: int,
    mean: Sequence[float],
    std: Sequence[float],
) -> np.ndarray:
    """
    Resample `image` to the network size and normalize it channel by channel.

    Returns a float32 array shaped (1, 3, target_height, target_width) holding
    `(byte / 255 - mean[c]) / std[c]`; each channel plane is contiguous.
    """
    if image.width == 0 or image.height == 0:
        raise ImageDecodeError("Image has zero size")

    resized = image.convert("RGB").resize((target_width, target_height), Image.BILINEAR)
    im_np = np.asarray(resized).astype("float32") / 255.0
    im_np = (im_np - np.asarray(mean, dtype="float32")) / np.asarray(std, dtype="float32")
    im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW
    return np.ascontiguousarray(im_np[np.newaxis, ...], dtype=np.float32)


def pack_mask(
    raw_mask: np.ndarray, height: int, width: int, mask_size: Tuple[int, int]
) -> Dict[str, np.ndarray]:
    """Build the resize-model feed: the raw mask plus the original (height, width)."""
    mask_w, mask_h = mask_size
    mask = np.asarray(raw_mask, dtype=np.float32).reshape(1, mask_h, mask_w)
    shape = np.array([height, width], dtype=np.int64)
    return {MASK_TENSOR_NAME: mask, ORIGINAL_SHAPE_TENSOR_NAME: shape}


def decode_mask(mask: np.ndarray, image_data: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Write `round(255 * mask)` into the alpha byte of an RGBA buffer in place.

    Mask values are clamped to [0, 1] first so out-of-range predictions cannot
    wrap around the uint8 range. RGB bytes are never touched.
    """
    if image_data.shape != (height, width, 4):
        raise ValueError(
            f"image data shape {image_data.shape} does not match {height}x{width} RGBA"
        )
    alpha = np.asarray(mask, dtype=np.float32).reshape(height, width)
    alpha = np.clip(alpha, 0.0, 1.0)
    image_data[..., 3] = np.rint(alpha * 255.0).astype(np.uint8)
    return image_data
