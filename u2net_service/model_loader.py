"""
Inference session loading for the two ONNX models.

The loader:
 - makes sure both model artifacts exist locally (downloading them once when
   a URL is configured),
 - creates the segmentation session on the preferred GPU backend with a CPU
   fallback, and the mask-resize session on CPU,
 - keeps a single shared `ModelSessions` pair unless caching is disabled,
 - exposes `get_model_sessions()` for inference callers.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from threading import Lock
from typing import Any, List, Optional, Sequence

import onnxruntime as ort
import requests

from . import config
from .errors import InferenceError

logger = logging.getLogger(__name__)

CPU_PROVIDER = "CPUExecutionProvider"

_SESSIONS: Optional["ModelSessions"] = None
_LOCK = Lock()


@dataclass
class ModelSessions:
    segmentation: Any  # ort.InferenceSession
    processor: Any  # ort.InferenceSession


def resolve_providers(requested: Sequence[str]) -> List[str]:
    """Keep the requested providers this onnxruntime build offers, in order."""
    available = set(ort.get_available_providers())
    providers = [p for p in requested if p in available]
    if not providers:
        logger.warning(
            "None of the requested providers %s are available, falling back to %s",
            list(requested),
            CPU_PROVIDER,
        )
        providers = [CPU_PROVIDER]
    return providers


def _download_model(url: str, model_path: Path, timeout: int) -> None:
    logger.info("Downloading model from %s to %s", url, model_path)
    resp = requests.get(url, timeout=(5, timeout))
    resp.raise_for_status()
    model_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = model_path.with_suffix(model_path.suffix + ".part")
    tmp_path.write_bytes(resp.content)
    tmp_path.replace(model_path)


def ensure_model_file(model_path: Path, url: Optional[str], timeout: int) -> Path:
    """Return `model_path`, fetching it from `url` first if it is missing."""
    if model_path.exists():
        return model_path
    if not url:
        raise InferenceError(f"Model not found at {model_path}")
    try:
        _download_model(url, model_path, timeout)
    except requests.RequestException as exc:
        raise InferenceError(f"Could not download model from {url}") from exc
    except OSError as exc:
        raise InferenceError(f"Could not save model to {model_path}") from exc
    return model_path


def _create_session(model_path: Path, providers: Sequence[str]) -> ort.InferenceSession:
    providers = resolve_providers(providers)
    try:
        session = ort.InferenceSession(str(model_path), providers=providers)
    except Exception as exc:  # noqa: BLE001
        raise InferenceError(f"Failed to create inference session for {model_path}") from exc
    logger.info("Loaded %s with providers %s", model_path.name, session.get_providers())
    return session


def load_model_sessions(settings: Optional[config.Settings] = None) -> ModelSessions:
    """Create both inference sessions from scratch."""
    settings = settings or config.get_settings()
    timeout = settings.request_timeout_seconds
    seg_path = ensure_model_file(
        settings.segmentation_model_path, settings.segmentation_model_url, timeout
    )
    proc_path = ensure_model_file(
        settings.processor_model_path, settings.processor_model_url, timeout
    )
    return ModelSessions(
        segmentation=_create_session(seg_path, settings.segmentation_providers),
        processor=_create_session(proc_path, settings.processor_providers),
    )


def get_model_sessions(settings: Optional[config.Settings] = None) -> ModelSessions:
    """
    Return the shared session pair.

    Sessions are loaded once on first access and reused across uploads. With
    CACHE_SESSIONS disabled a fresh pair is built for every call instead.
    """
    global _SESSIONS
    settings = settings or config.get_settings()
    if not settings.cache_sessions:
        return load_model_sessions(settings)
    if _SESSIONS is not None:
        return _SESSIONS

    with _LOCK:
        if _SESSIONS is None:
            _SESSIONS = load_model_sessions(settings)
    return _SESSIONS


def reset_model_sessions() -> None:
    """Drop the cached sessions; the next caller reloads them."""
    global _SESSIONS
    with _LOCK:
        _SESSIONS = None
