"""
Shared fixtures.

Every service reaches the database through its module-level
get_admin_client; the `db` fixture points all of them at one MockSupabase.
"""

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sermonforge.api.main import app  # noqa: E402
from sermonforge.lib import rate_limit  # noqa: E402
from sermonforge.lib.auth import get_current_user  # noqa: E402

from fakes import (  # noqa: E402
    USER,
    MockGenerator,
    MockMailer,
    MockSupabase,
    MockTranscriber,
    RecordingDispatcher,
)


@pytest.fixture
def db(monkeypatch):
    mock = MockSupabase()
    mock.auth.admin.emails[USER["id"]] = USER["email"]
    for name, module in list(sys.modules.items()):
        if name.startswith("sermonforge") and hasattr(module, "get_admin_client"):
            monkeypatch.setattr(module, "get_admin_client", lambda: mock)
    return mock


@pytest.fixture
def dispatcher(monkeypatch):
    recorder = RecordingDispatcher()
    monkeypatch.setattr("sermonforge.lib.sermons.JobDispatcher", lambda: recorder)
    monkeypatch.setattr("sermonforge.lib.jobs.JobDispatcher", lambda: recorder)
    return recorder


@pytest.fixture
def generator(monkeypatch):
    mock = MockGenerator()
    monkeypatch.setattr("sermonforge.lib.generators.ContentGenerator", lambda: mock)
    return mock


@pytest.fixture
def transcriber(monkeypatch):
    mock = MockTranscriber()
    monkeypatch.setattr("sermonforge.lib.transcription.TranscriptionService", lambda: mock)
    return mock


@pytest.fixture
def mailer(monkeypatch):
    mock = MockMailer()
    monkeypatch.setattr("sermonforge.lib.jobs.EmailService", lambda: mock)
    monkeypatch.setattr("sermonforge.lib.subscriptions.EmailService", lambda: mock)
    return mock


@pytest.fixture
def client(db, dispatcher, monkeypatch):
    """API client authenticated as USER, with logo downloads disabled."""
    monkeypatch.setattr("sermonforge.api.routes.exports.fetch_logo", lambda url: None)
    rate_limit.reset()
    app.dependency_overrides[get_current_user] = lambda: USER
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    rate_limit.reset()
