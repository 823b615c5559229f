import os
import pytest
from satlandcover.config import get_settings

@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # evita fuga de estado entre tests
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()

def pytest_collection_modifyitems(items):
    for item in items:
        if "gdal" in item.keywords and os.environ.get("CI") == "true":
            item.add_marker(pytest.mark.slow)
