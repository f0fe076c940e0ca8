"""
Pytest configuration file for the EPS Citas test suite.

This file defines shared fixtures and helpers used across the test files.
It includes:
- `FakeHTTPSession`, a stand-in for `requests.Session` that records every request
  and answers from a script of canned responses (or raises `requests` exceptions),
  so no test ever needs a running backend.
- Fixtures for isolated settings, encrypted session storage in a temporary
  directory, the API client, the service registry and the session store.
"""
import json

import pytest
import requests
from cryptography.fernet import Fernet

from epscitas.config import Settings
from epscitas.context import build_context
from epscitas.http_client import ApiClient
from epscitas.services import ServiceRegistry
from epscitas.session import SessionStore
from epscitas.storage import SessionStorage, session_path

SESSION_ID = "0f8fad5bd9cb469fa16570867728950e"


class FakeResponse:
    """Minimal `requests.Response` replacement."""

    def __init__(self, status_code=200, body=None, content=None):
        self.status_code = status_code
        if content is not None:
            self.content = content
        elif body is None:
            self.content = b""
        else:
            self.content = json.dumps(body).encode("utf-8")

    def json(self):
        return json.loads(self.content.decode("utf-8"))


class FakeHTTPSession:
    """Records requests and answers them from a routing table.

    Routes are keyed by `(METHOD, path)` where `path` is relative to the API
    base URL. A route value is a `FakeResponse`, an exception instance to raise,
    or a list of those consumed in order. Unrouted requests answer 404.
    """

    def __init__(self, base_url="http://api.test/api"):
        self.base_url = base_url
        self.headers = {}
        self.calls = []
        self.routes = {}

    def add(self, method, path, response):
        self.routes[(method.upper(), path)] = response

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        path = url[len(self.base_url):] if url.startswith(self.base_url) else url
        self.calls.append({
            "method": method, "path": path, "json": json, "params": params,
            "headers": dict(headers or {}), "timeout": timeout,
        })
        route = self.routes.get((method.upper(), path))
        if isinstance(route, list):
            route = route.pop(0) if route else None
        if route is None:
            return FakeResponse(404, {"success": False, "message": "Ruta no encontrada"})
        if isinstance(route, BaseException):
            raise route
        return route

    def calls_to(self, method, path):
        return [c for c in self.calls if c["method"] == method.upper() and c["path"] == path]


def ok(data=None, message=None, status=200):
    """Builds a successful backend envelope response."""
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return FakeResponse(status, body)


def error(status, message=None):
    body = {"success": False}
    if message:
        body["message"] = message
    return FakeResponse(status, body)


def network_down():
    return requests.exceptions.ConnectionError("Connection refused")


def timed_out():
    return requests.exceptions.ReadTimeout("Read timed out")


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fake base URL and a temporary session directory."""
    return Settings(
        api_url="http://api.test/api/",
        timeout=5,
        session_dir=str(tmp_path / "sessions"),
        key_file=str(tmp_path / "secret.key"),
    )


@pytest.fixture
def encryptor():
    return Fernet(Fernet.generate_key())


@pytest.fixture
def storage(settings, encryptor):
    """Encrypted storage of one browser session, isolated to the test's temporary directory."""
    return SessionStorage(session_path(settings.session_dir, SESSION_ID), encryptor=encryptor)


@pytest.fixture
def http():
    return FakeHTTPSession()


@pytest.fixture
def client(settings, storage, http):
    return ApiClient(settings, storage, session=http)


@pytest.fixture
def services(client):
    return ServiceRegistry(client)


@pytest.fixture
def session_store(storage, services, client):
    store = SessionStore(storage, services.auth, client=client)
    store.hydrate()
    return store


@pytest.fixture
def context(settings, storage, http):
    """A fully wired `AppContext` over the fake HTTP session."""
    return build_context(settings, SESSION_ID, storage=storage, http_session=http)


@pytest.fixture
def logged_in(storage):
    """Returns a helper persisting a session for the given role."""

    def _login(tipo="paciente", user_id=1, token="tok-123", **fields):
        user = {"id": user_id, "nombre": "Ana", "apellido": "Gómez", "email": "ana@test.com", "tipo": tipo}
        user.update(fields)
        storage.save_session(token, user)
        return user

    return _login
