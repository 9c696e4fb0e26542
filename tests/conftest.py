"""Shared test fixtures for the task board."""

import sys
from pathlib import Path
from urllib.parse import urlsplit

import pytest

# Ensure the repository root is importable without an install
sys.path.insert(0, str(Path(__file__).parent.parent))

import dashboard_server
from dashboard.taskboard.client import TaskApiClient
from dashboard.taskboard.config import Settings
from dashboard.taskboard.store import TaskStore
from dashboard.taskboard.sync import BoardSynchronizer

OWNER = "alice"


class _Response:
    """The parts of requests.Response the API client uses."""

    def __init__(self, flask_response):
        self.status_code = flask_response.status_code
        self._flask_response = flask_response

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        data = self._flask_response.get_json(silent=True)
        if data is None:
            raise ValueError("response body is not JSON")
        return data


class FlaskSession:
    """requests.Session stand-in that routes calls to the Flask test client."""

    def __init__(self, test_client):
        self.test_client = test_client
        self.headers = {}
        self.calls = []

    def request(self, method, url, json=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path, json))
        resp = self.test_client.open(path, method=method, json=json, headers=dict(self.headers))
        return _Response(resp)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "tasks.db")


@pytest.fixture
def store(db_path):
    return TaskStore(db_path)


@pytest.fixture
def settings(db_path):
    return Settings(db_path=db_path, default_owner=OWNER)


@pytest.fixture
def http(settings):
    """Flask test client bound to a temporary database."""
    config = dashboard_server.app.config
    previous = {key: config.pop(key, None) for key in ("SETTINGS", "TASK_STORE")}
    config["SETTINGS"] = settings
    try:
        yield dashboard_server.app.test_client()
    finally:
        for key, value in previous.items():
            config.pop(key, None)
            if value is not None:
                config[key] = value


@pytest.fixture
def session(http):
    return FlaskSession(http)


@pytest.fixture
def api(session):
    return TaskApiClient("http://dashboard.test", owner_id=OWNER, session=session)


@pytest.fixture
def board(api):
    return BoardSynchronizer(api)
