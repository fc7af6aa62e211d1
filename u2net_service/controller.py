"""
Per-canvas upload controller.

Wires the two user events, "file selected" and "remove requested", to the
pipeline and the canvas, and tracks the three visibility flags a client
renders (spinner, drop area, remove button).

Every upload takes a new sequence token. Canvas and view updates only happen
while the upload still holds the latest token, so an older upload finishing
late can never overwrite a newer result.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from threading import Lock
from typing import Callable, Optional

from . import config
from .canvas import Canvas
from .codec import decode_image_bytes
from .errors import ImageDecodeError
from .model_loader import ModelSessions, get_model_sessions
from .pipeline import UploadState, predict_mask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewState:
    spinner_visible: bool = False
    drop_area_visible: bool = True
    remove_button_visible: bool = False


INITIAL_VIEW = ViewState()


@dataclass
class Upload:
    token: int
    state: UploadState = UploadState.IDLE
    error: Optional[Exception] = None


class CanvasController:
    def __init__(
        self,
        sessions_provider: Optional[Callable[[], ModelSessions]] = None,
        settings: Optional[config.Settings] = None,
        canvas: Optional[Canvas] = None,
    ) -> None:
        self._settings = settings or config.get_settings()
        self._sessions_provider = sessions_provider or (
            lambda: get_model_sessions(self._settings)
        )
        self.canvas = canvas or Canvas()
        self._view = INITIAL_VIEW
        self._token = 0
        self._last_upload: Optional[Upload] = None
        self._lock = Lock()

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def last_upload(self) -> Optional[Upload]:
        return self._last_upload

    def _is_current(self, upload: Upload) -> bool:
        return upload.token == self._token

    def _set_state(self, upload: Upload, state: UploadState) -> None:
        with self._lock:
            if self._is_current(upload):
                upload.state = state

    def _supersede(self, upload: Upload) -> Upload:
        upload.state = UploadState.SUPERSEDED
        logger.info("controller: upload %d superseded, discarding its result", upload.token)
        return upload

    def _is_in_flight(self) -> bool:
        upload = self._last_upload
        return upload is not None and upload.state in (UploadState.LOADING, UploadState.MASK_READY)

    def _fail(self, upload: Upload, exc: Exception) -> None:
        with self._lock:
            upload.error = exc
            if not self._is_current(upload):
                self._supersede(upload)
                return
            upload.state = UploadState.FAILED
            self._view = ViewState(
                spinner_visible=False, drop_area_visible=False, remove_button_visible=False
            )

    def on_file_selected(self, image_bytes: bytes) -> Upload:
        """
        Run one upload through decode -> segmentation -> resize -> composite.

        Returns the finished `Upload` (COMPOSITED, or SUPERSEDED when a newer
        upload or a remove request arrived meanwhile).

        Raises:
            ImageDecodeError: the file could not be decoded; canvas, view and
                any upload still in flight are left untouched.
            InferenceError: a model failed; the painted image stays opaque,
                the spinner is hidden and the remove button is not shown.
            Any other error from session loading or compositing ends the upload
            the same way before propagating.
        """
        try:
            image = decode_image_bytes(image_bytes, max_bytes=self._settings.max_upload_bytes)
        except ImageDecodeError as exc:
            logger.warning("controller: upload rejected: %s", exc)
            with self._lock:
                rejected = Upload(token=self._token, state=UploadState.FAILED, error=exc)
                if not self._is_in_flight():
                    self._last_upload = rejected
            raise

        with self._lock:
            self._token += 1
            upload = Upload(token=self._token, state=UploadState.LOADING)
            self._last_upload = upload
            self._view = ViewState(
                spinner_visible=True, drop_area_visible=False, remove_button_visible=False
            )
            self.canvas.paint(image)

        try:
            sessions = self._sessions_provider()
            mask = predict_mask(
                image,
                sessions,
                self._settings,
                on_state=lambda state: self._set_state(upload, state),
            )
            with self._lock:
                if not self._is_current(upload):
                    return self._supersede(upload)
                self.canvas.apply_mask(mask)
                upload.state = UploadState.COMPOSITED
                self._view = ViewState(
                    spinner_visible=False, drop_area_visible=False, remove_button_visible=True
                )
        except Exception as exc:  # noqa: BLE001
            logger.exception("controller: upload %d failed", upload.token)
            self._fail(upload, exc)
            raise

        logger.info("controller: upload %d composited at %dx%d", upload.token, *self.canvas.size)
        return upload

    def render_png(self, upload: Optional[Upload] = None) -> Optional[bytes]:
        """
        Encode the canvas as PNG, or None when there is nothing to show.

        With `upload` given, only its own composited result is returned.
        """
        with self._lock:
            if upload is not None and (
                not self._is_current(upload) or upload.state is not UploadState.COMPOSITED
            ):
                return None
            if self.canvas.is_empty:
                return None
            return self.canvas.to_png()

    def on_remove_requested(self) -> ViewState:
        """Clear the canvas, cancel any in-flight upload and restore the empty view."""
        with self._lock:
            self._token += 1
            self.canvas.clear()
            self._last_upload = None
            self._view = INITIAL_VIEW
        return self._view
