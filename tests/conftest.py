from __future__ import annotations

import pytest

from pipedrive_bff.config import Settings

from .stubs import PIPELINES, STAGES, FakeCrm


@pytest.fixture
def settings() -> Settings:
    return Settings(api_token="test-token", base_url="https://acme.pipedrive.com/api/v1")


@pytest.fixture
def fake_crm(settings: Settings) -> FakeCrm:
    return FakeCrm(settings, stages=STAGES, pipelines=PIPELINES)
