"""Pytest configuration — ensures the project root is importable."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from school_pipeline.geocoder import CachedGeocoder, DisabledGeocoder  # noqa: E402


@pytest.fixture(autouse=True)
def _no_real_geocoding():
    """Pipelines built from settings never reach Nominatim during tests."""
    with patch(
        "school_pipeline.pipeline.build_geocoder",
        side_effect=lambda settings: CachedGeocoder(DisabledGeocoder()),
    ):
        yield
