"""
GridSeries - Shared Test Fixtures
"""

import pytest

from gridseries.utils.performance import get_timings


@pytest.fixture(autouse=True)
def reset_stage_timings():
    """Stage timings are process-wide; start every test empty."""
    get_timings().clear()
    yield
    get_timings().clear()
