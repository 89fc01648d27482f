import pytest
from fastapi.testclient import TestClient

from describer.config import DescriberConfig

VALID_OPENAI_KEY = "sk-validkeyabcdefghijklmnop"
VALID_GEMINI_KEY = "AIzaSyAbc123def456ghi789jkl"


@pytest.fixture
def config(tmp_path):
    return DescriberConfig(
        db_path=tmp_path / "data" / "database.db",
        uploads_dir=tmp_path / "uploads",
        max_upload_mb=1,
    )


@pytest.fixture
def app_module(config):
    import app as app_module

    app_module.configure_services(config)
    yield app_module
    app_module.configure_services(config)


@pytest.fixture
def client(app_module):
    with TestClient(app_module.app) as test_client:
        yield test_client
