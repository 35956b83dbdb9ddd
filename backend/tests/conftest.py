"""Shared fixtures: isolated settings, a store on tmp_path, an authenticated client."""
import pytest
from fastapi.testclient import TestClient

from mch_tracker.config import Settings
from mch_tracker.main import create_app
from mch_tracker.store import RecordStore


class FakeGenerator:
    """Text generator double: replays canned replies, or raises when given an exception."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def generate(self, prompt, *, max_new_tokens, temperature, top_p):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def settings(tmp_path):
    return Settings(
        app_env="test",
        huggingface_api_key="",
        jwt_secret="test-secret",
        data_dir=tmp_path / "data",
        upload_dir=tmp_path / "uploads",
        load_demo_data=True,
        persist_data=True,
    )


@pytest.fixture
def store(tmp_path):
    s = RecordStore(tmp_path / "data")
    yield s
    s.engine.dispose()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(client):
    r = client.post("/api/auth/login", json={"email": "demo@healthai.com", "password": "password123"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['token']}"}
