import os
import tempfile

import pytest

# keep JSON log files out of the working tree
os.environ.setdefault("ORB_LOG_DIR", tempfile.mkdtemp(prefix="orb-logs-"))


@pytest.fixture(autouse=True)
def _fresh_settings():
    from orb.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
