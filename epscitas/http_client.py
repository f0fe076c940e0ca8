"""
This module is the single configured HTTP client used to talk to the backend.

`ApiClient` wraps a `requests.Session` with two interceptors:
- before sending, the persisted session token (if any) is attached as a bearer
  credential;
- on a 401 answer, the persisted token and user record are purged and every
  registered `on_unauthorized` listener is notified before the error propagates.

Every call is fire-once: no retry, no backoff and no de-duplication. Failures
are raised as `epscitas.errors.ApiError` subclasses for the services to handle.
"""
# epscitas/http_client.py

import logging
import threading
from typing import Any, Callable, List, Optional

import requests

from epscitas.config import Settings
from epscitas.errors import (
    ApiError,
    InvalidResponse,
    NetworkError,
    RequestCancelled,
    RequestTimeout,
    error_for_status,
)
from epscitas.storage import SessionStorage

logger = logging.getLogger(__name__)


class CancelToken:
    """Marks a request as abandoned by the screen that issued it.

    The underlying request is not aborted; the client only refuses to hand a
    response back once the token has been cancelled.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled()


class ApiClient:
    """Backend client with bearer-token and session-expiry interceptors."""

    def __init__(self, settings: Settings, storage: SessionStorage, session: Optional[requests.Session] = None):
        """Initializes the client.

        Args:
            settings: Configuration supplying base URL, timeout and headers.
            storage: Persisted session storage the token is read from and purged in.
            session: Optional pre-built `requests.Session` (tests inject a fake one).
        """
        self.base_url = settings.api_url
        self.timeout = settings.timeout
        self.storage = storage
        self._session = session or requests.Session()
        self._session.headers.update(settings.headers)
        self._unauthorized_listeners: List[Callable[[], None]] = []

    def add_unauthorized_listener(self, listener: Callable[[], None]) -> None:
        """Registers a callable invoked after a 401 has purged the persisted session."""
        if listener not in self._unauthorized_listeners:
            self._unauthorized_listeners.append(listener)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _auth_headers(self) -> dict:
        try:
            token = self.storage.get_token()
        except OSError as exc:
            logger.error("Could not read session token: %s", exc)
            token = None
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _handle_unauthorized(self) -> None:
        try:
            self.storage.clear_session()
            logger.info("Session expired (401); persisted credentials removed")
        except OSError as exc:
            logger.error("Could not clear persisted session after 401: %s", exc)
        for listener in list(self._unauthorized_listeners):
            listener()

    @staticmethod
    def _decode(response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponse("La respuesta del servidor no es JSON válido", response.status_code) from exc

    def request(self, method: str, path: str, json: Any = None, params: Optional[dict] = None,
                cancel_token: Optional[CancelToken] = None) -> Any:
        """Sends one request and returns the decoded JSON body.

        Args:
            method: HTTP verb.
            path: Path relative to the API base URL.
            json: Optional JSON body.
            params: Optional query-string parameters.
            cancel_token: Optional token; a cancelled token discards the response.

        Returns:
            The decoded body (dict or list), or None for an empty body.

        Raises:
            ApiError: A subclass describing the failure kind.
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        url = self._url(path)
        logger.debug("%s %s", method.upper(), url)
        try:
            response = self._session.request(
                method.upper(),
                url,
                json=json,
                params=params,
                headers=self._auth_headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise RequestTimeout(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise NetworkError(str(exc)) from exc

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        if response.status_code == 401:
            self._handle_unauthorized()
        if response.status_code >= 400:
            try:
                body = self._decode(response)
            except InvalidResponse:
                body = None
            message = body.get("message") if isinstance(body, dict) else None
            raise error_for_status(response.status_code, message)
        return self._decode(response)

    def get(self, path: str, params: Optional[dict] = None, **kwargs) -> Any:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs) -> Any:
        return self.request("PUT", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)

    def check_connection(self) -> bool:
        """Probes the backend's `/test` endpoint."""
        try:
            self.get("/test")
        except ApiError as exc:
            logger.warning("Backend connection check failed: %s", exc)
            return False
        return True
