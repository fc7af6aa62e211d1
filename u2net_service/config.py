"""
Configuration loader for the U^2-Net background-removal service.

Environment variables are centralized here to keep the rest of the code
focused on the inference flow and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Model artifacts
    segmentation_model_path: Path = Field(Path("assets/u2netp.onnx"), env="SEGMENTATION_MODEL_PATH")
    processor_model_path: Path = Field(
        Path("assets/output_processor.onnx"), env="PROCESSOR_MODEL_PATH"
    )
    segmentation_model_url: Optional[str] = Field(None, env="SEGMENTATION_MODEL_URL")
    processor_model_url: Optional[str] = Field(None, env="PROCESSOR_MODEL_URL")

    # Network input + normalization
    input_width: int = Field(320, env="INPUT_WIDTH")
    input_height: int = Field(320, env="INPUT_HEIGHT")
    normalize_mean: Tuple[float, float, float] = Field((0.485, 0.456, 0.406), env="NORMALIZE_MEAN")
    normalize_std: Tuple[float, float, float] = Field((0.229, 0.224, 0.225), env="NORMALIZE_STD")

    # Execution backends, in order of preference
    segmentation_providers: List[str] = Field(
        ["CUDAExecutionProvider", "CPUExecutionProvider"], env="SEGMENTATION_PROVIDERS"
    )
    processor_providers: List[str] = Field(["CPUExecutionProvider"], env="PROCESSOR_PROVIDERS")
    cache_sessions: bool = Field(True, env="CACHE_SESSIONS")

    # API
    max_upload_bytes: int = Field(20 * 1024 * 1024, env="MAX_UPLOAD_BYTES")
    request_timeout_seconds: int = Field(30, env="REQUEST_TIMEOUT_SECONDS")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    # Debugging
    debug: bool = Field(False, env="DEBUG")
    debug_output_dir: Path = Field(Path("/tmp/u2net_debug"), env="DEBUG_OUTPUT_DIR")

    class Config:
        env_file = ".env"
        case_sensitive = False

    @validator("input_width", "input_height")
    def validate_input_size(cls, v: int) -> int:  # noqa: B902
        if v <= 0:
            raise ValueError("INPUT_WIDTH and INPUT_HEIGHT must be positive")
        return v

    @validator("normalize_std")
    def validate_std(cls, v: Tuple[float, float, float]) -> Tuple[float, float, float]:  # noqa: B902
        if any(s == 0 for s in v):
            raise ValueError("NORMALIZE_STD entries must be non-zero")
        return v

    @validator("segmentation_providers", "processor_providers")
    def validate_providers(cls, v: List[str]) -> List[str]:  # noqa: B902
        if not v:
            raise ValueError("at least one execution provider is required")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def input_size(settings: Optional[Settings] = None) -> Tuple[int, int]:
    """Network input size as (width, height)."""
    settings = settings or get_settings()
    return settings.input_width, settings.input_height
