"""
FastAPI layer exposing U^2-Net background removal.

Endpoints:
 - GET /health
 - POST /remove-bg        stateless: image in, RGBA PNG out
 - POST /canvas           upload an image onto the shared canvas
 - GET /canvas            current canvas contents as PNG
 - GET /canvas/view       visibility flags + last upload state
 - DELETE /canvas         clear the canvas
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from . import config
from .controller import CanvasController
from .errors import ImageDecodeError, InferenceError
from .model_loader import ModelSessions, get_model_sessions
from .pipeline import process_image_bytes

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="U2Net Background Removal Service", version="0.1.0")


def _sessions() -> ModelSessions:
    return get_model_sessions(settings)


controller = CanvasController(sessions_provider=_sessions, settings=settings)


class ViewResponse(BaseModel):
    spinnerVisible: bool
    dropAreaVisible: bool
    removeButtonVisible: bool
    uploadState: Optional[str] = None


def _view_response() -> ViewResponse:
    view = controller.view
    upload = controller.last_upload
    return ViewResponse(
        spinnerVisible=view.spinner_visible,
        dropAreaVisible=view.drop_area_visible,
        removeButtonVisible=view.remove_button_visible,
        uploadState=upload.state.value if upload is not None else None,
    )


def _png_response(png_bytes: bytes) -> Response:
    return Response(content=png_bytes, media_type="image/png")


def _read_upload(file: UploadFile) -> bytes:
    # one byte past the limit is enough for the decoder to reject it
    return file.file.read(settings.max_upload_bytes + 1)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/remove-bg")
def remove_bg(file: UploadFile = File(...)):
    image_bytes = _read_upload(file)
    try:
        png_bytes = process_image_bytes(image_bytes, sessions=None, settings=settings)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InferenceError as exc:
        logger.exception("Background removal failed: %s", exc)
        raise HTTPException(status_code=500, detail="Background removal failed") from exc
    return _png_response(png_bytes)


@app.post("/canvas")
def upload_to_canvas(file: UploadFile = File(...)):
    image_bytes = _read_upload(file)
    try:
        upload = controller.on_file_selected(image_bytes)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InferenceError as exc:
        raise HTTPException(status_code=500, detail="Background removal failed") from exc

    png_bytes = controller.render_png(upload)
    if png_bytes is None:
        raise HTTPException(status_code=409, detail=f"Upload {upload.state.value}")
    return _png_response(png_bytes)


@app.get("/canvas")
def get_canvas():
    png_bytes = controller.render_png()
    if png_bytes is None:
        raise HTTPException(status_code=404, detail="Canvas is empty")
    return _png_response(png_bytes)


@app.get("/canvas/view", response_model=ViewResponse)
def get_view():
    return _view_response()


@app.delete("/canvas", response_model=ViewResponse)
def remove_canvas():
    controller.on_remove_requested()
    return _view_response()
