"""Tests for inference session creation and caching."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_mock
import requests

from u2net_service import model_loader
from u2net_service.config import Settings
from u2net_service.errors import InferenceError
from u2net_service.model_loader import (
    ModelSessions,
    ensure_model_file,
    get_model_sessions,
    load_model_sessions,
    resolve_providers,
)


@pytest.fixture
def model_files(tmp_path: Path) -> Settings:
    seg = tmp_path / "u2netp.onnx"
    proc = tmp_path / "output_processor.onnx"
    seg.write_bytes(b"seg")
    proc.write_bytes(b"proc")
    return Settings(segmentation_model_path=seg, processor_model_path=proc)


def test_resolve_providers_prefers_gpu_when_available(mocker: pytest_mock.MockerFixture) -> None:
    mocker.patch.object(
        model_loader.ort,
        "get_available_providers",
        return_value=["CUDAExecutionProvider", "CPUExecutionProvider"],
    )

    providers = resolve_providers(["CUDAExecutionProvider", "CPUExecutionProvider"])

    assert providers == ["CUDAExecutionProvider", "CPUExecutionProvider"]


def test_resolve_providers_falls_back_to_cpu(mocker: pytest_mock.MockerFixture) -> None:
    mocker.patch.object(
        model_loader.ort, "get_available_providers", return_value=["CPUExecutionProvider"]
    )

    assert resolve_providers(["CUDAExecutionProvider", "CPUExecutionProvider"]) == [
        "CPUExecutionProvider"
    ]
    assert resolve_providers(["TensorrtExecutionProvider"]) == ["CPUExecutionProvider"]


def test_load_model_sessions_uses_configured_backends(
    model_files: Settings, mocker: pytest_mock.MockerFixture
) -> None:
    mocker.patch.object(
        model_loader.ort,
        "get_available_providers",
        return_value=["CUDAExecutionProvider", "CPUExecutionProvider"],
    )
    session_cls = mocker.patch.object(model_loader.ort, "InferenceSession")

    sessions = load_model_sessions(model_files)

    assert isinstance(sessions, ModelSessions)
    calls = session_cls.call_args_list
    assert calls[0].args == (str(model_files.segmentation_model_path),)
    assert calls[0].kwargs["providers"] == ["CUDAExecutionProvider", "CPUExecutionProvider"]
    assert calls[1].args == (str(model_files.processor_model_path),)
    assert calls[1].kwargs["providers"] == ["CPUExecutionProvider"]


def test_session_creation_failure_raises_inference_error(
    model_files: Settings, mocker: pytest_mock.MockerFixture
) -> None:
    mocker.patch.object(
        model_loader.ort, "InferenceSession", side_effect=RuntimeError("bad protobuf")
    )

    with pytest.raises(InferenceError):
        load_model_sessions(model_files)


def test_missing_model_without_url_raises(tmp_path: Path) -> None:
    with pytest.raises(InferenceError, match="Model not found"):
        ensure_model_file(tmp_path / "missing.onnx", None, timeout=5)


def test_missing_model_is_downloaded(tmp_path: Path, mocker: pytest_mock.MockerFixture) -> None:
    response = mocker.Mock(content=b"onnx-bytes")
    get = mocker.patch.object(model_loader.requests, "get", return_value=response)
    target = tmp_path / "assets" / "u2netp.onnx"

    path = ensure_model_file(target, "https://models.test/u2netp.onnx", timeout=7)

    assert path == target
    assert target.read_bytes() == b"onnx-bytes"
    get.assert_called_once_with("https://models.test/u2netp.onnx", timeout=(5, 7))
    response.raise_for_status.assert_called_once()


def test_download_failure_raises_inference_error(
    tmp_path: Path, mocker: pytest_mock.MockerFixture
) -> None:
    mocker.patch.object(
        model_loader.requests, "get", side_effect=requests.ConnectionError("offline")
    )
    target = tmp_path / "u2netp.onnx"

    with pytest.raises(InferenceError):
        ensure_model_file(target, "https://models.test/u2netp.onnx", timeout=7)
    assert not target.exists()


def test_get_model_sessions_caches_pair(mocker: pytest_mock.MockerFixture) -> None:
    loader = mocker.patch.object(
        model_loader, "load_model_sessions", side_effect=lambda s: ModelSessions("seg", "proc")
    )
    settings = Settings(cache_sessions=True)

    first = get_model_sessions(settings)
    second = get_model_sessions(settings)

    assert first is second
    loader.assert_called_once()


def test_get_model_sessions_without_cache_reloads(mocker: pytest_mock.MockerFixture) -> None:
    loader = mocker.patch.object(
        model_loader, "load_model_sessions", side_effect=lambda s: ModelSessions("seg", "proc")
    )
    settings = Settings(cache_sessions=False)

    first = get_model_sessions(settings)
    second = get_model_sessions(settings)

    assert first is not second
    assert loader.call_count == 2


def test_reset_model_sessions_forces_reload(mocker: pytest_mock.MockerFixture) -> None:
    loader = mocker.patch.object(
        model_loader, "load_model_sessions", side_effect=lambda s: ModelSessions("seg", "proc")
    )
    settings = Settings()

    get_model_sessions(settings)
    model_loader.reset_model_sessions()
    get_model_sessions(settings)

    assert loader.call_count == 2


def test_unwritable_model_dir_raises_inference_error(
    tmp_path: Path, mocker: pytest_mock.MockerFixture
) -> None:
    blocker = tmp_path / "assets"
    blocker.write_bytes(b"not a directory")
    mocker.patch.object(model_loader.requests, "get", return_value=mocker.Mock(content=b"onnx"))

    with pytest.raises(InferenceError, match="Could not save model"):
        ensure_model_file(blocker / "u2netp.onnx", "https://models.test/u2netp.onnx", timeout=7)
