"""Drawing surface that holds the displayed RGBA image and composites masks onto it."""

from __future__ import annotations

from io import BytesIO
import logging
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from .codec import decode_mask

logger = logging.getLogger(__name__)


class Canvas:
    """
    RGBA pixel buffer painted with the original image.

    The pre-mask snapshot is kept so a mask only ever replaces the alpha
    channel; RGB bytes stay identical to what was painted.
    """

    def __init__(self) -> None:
        self._snapshot: Optional[np.ndarray] = None
        self._pixels: Optional[np.ndarray] = None

    @property
    def is_empty(self) -> bool:
        return self._pixels is None

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the painted image, (0, 0) when empty."""
        if self._pixels is None:
            return 0, 0
        height, width = self._pixels.shape[:2]
        return width, height

    @property
    def pixels(self) -> Optional[np.ndarray]:
        return self._pixels

    def paint(self, image: Image.Image) -> None:
        """Draw `image` at native resolution, replacing whatever was shown."""
        rgba = np.array(image.convert("RGBA"), dtype=np.uint8)
        self._snapshot = rgba
        self._pixels = rgba.copy()

    def apply_mask(self, mask: np.ndarray) -> None:
        """Repaint the snapshot with `mask` as its alpha channel."""
        if self._snapshot is None:
            raise RuntimeError("Cannot apply a mask to an empty canvas")

        width, height = self.size
        mask = np.asarray(mask, dtype=np.float32)
        if mask.shape != (height, width):
            logger.warning(
                "canvas: mask shape %s does not match canvas %dx%d, resizing",
                mask.shape,
                width,
                height,
            )
            mask = cv2.resize(np.squeeze(mask), (width, height), interpolation=cv2.INTER_LINEAR)

        pixels = self._snapshot.copy()
        decode_mask(mask, pixels, width, height)
        self._pixels = pixels

    def clear(self) -> None:
        self._snapshot = None
        self._pixels = None

    def to_image(self) -> Image.Image:
        if self._pixels is None:
            raise RuntimeError("Canvas is empty")
        return Image.fromarray(self._pixels)

    def to_png(self) -> bytes:
        buf = BytesIO()
        self.to_image().save(buf, format="PNG")
        return buf.getvalue()
