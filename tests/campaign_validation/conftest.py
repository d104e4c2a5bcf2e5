"""Shared fixtures for campaign_validation tests."""

from __future__ import annotations

import pytest

from campaign_validation.logging import reset_logging
from campaign_validation.testing import create_sample_snapshot


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture
def snapshot():
    return create_sample_snapshot()
