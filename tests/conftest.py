from __future__ import annotations

import pytest

from u2net_service import model_loader
from u2net_service.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _clean_state():
    get_settings.cache_clear()
    model_loader.reset_model_sessions()
    yield
    get_settings.cache_clear()
    model_loader.reset_model_sessions()


@pytest.fixture
def settings() -> Settings:
    return Settings(input_width=16, input_height=16)
