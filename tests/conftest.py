import pytest
from structlog.testing import capture_logs

from src.sbhs.config import reset_config


@pytest.fixture(autouse=True)
def _captured_logs():
    """Keep structlog output off stdout so CLI tests can parse it as JSON."""
    with capture_logs() as logs:
        yield logs


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()
