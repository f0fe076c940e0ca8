"""
This module provides the client's persisted "device storage".

`SessionStorage` is a small key/value store kept as a single encrypted JSON
document on disk. The client only ever stores two keys in it:
- `userToken`: the opaque bearer token returned at login.
- `userData`: the serialized user record, including the backend-assigned `tipo`.

Each browser session gets its own document, named after an opaque session id
(`session_path`), so one visitor's login, logout or 401 never touches another
visitor's token. It is read when the session starts, written on login and
cleared on logout or when the backend answers 401.
"""
# epscitas/storage.py

import json
import logging
import os
import threading
import uuid
from typing import Optional

from cryptography.fernet import InvalidToken

from epscitas.encryption import get_encryptor

logger = logging.getLogger(__name__)

TOKEN_KEY = "userToken"
USER_KEY = "userData"


def new_session_id() -> str:
    return uuid.uuid4().hex


def session_path(session_dir: str, session_id: str) -> str:
    """Returns the document path for one browser session.

    Raises:
        ValueError: If `session_id` is not a session id issued by `new_session_id`.
    """
    return os.path.join(session_dir, uuid.UUID(hex=str(session_id)).hex + ".dat")


class SessionStorage:
    """Encrypted key/value storage backed by a single file."""

    def __init__(self, path: str, encryptor=None, key_file: Optional[str] = None):
        """Initializes the storage.

        Args:
            path: File holding the encrypted document.
            encryptor: Object with `encrypt`/`decrypt`; built from `key_file` when omitted.
            key_file: Fernet key path, used only when `encryptor` is not supplied.
        """
        self.path = path
        self._encryptor = encryptor or get_encryptor(key_file or path + ".key")
        self._lock = threading.Lock()

    def _load(self) -> dict:
        """Loads and decrypts the document.

        Returns:
            dict: The stored items, or an empty dict if the file is missing or unreadable.
        """
        try:
            with open(self.path, "rb") as fh:
                encrypted = fh.read()
        except FileNotFoundError:
            return {}
        if not encrypted:
            return {}
        try:
            data = json.loads(self._encryptor.decrypt(encrypted).decode("utf-8"))
        except (InvalidToken, ValueError) as exc:
            logger.warning("Session storage %s is unreadable (%s); treating it as empty", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        payload = self._encryptor.encrypt(json.dumps(data).encode("utf-8"))
        with open(self.path, "wb") as fh:
            fh.write(payload)

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)

    def clear_session(self) -> None:
        """Removes both session keys in one write."""
        with self._lock:
            data = self._load()
            data.pop(TOKEN_KEY, None)
            data.pop(USER_KEY, None)
            self._save(data)

    # Typed helpers for the two session keys.

    def get_token(self) -> Optional[str]:
        return self.get_item(TOKEN_KEY)

    def get_user(self) -> Optional[dict]:
        """Returns the stored user record, or None if absent or not valid JSON."""
        raw = self.get_item(USER_KEY)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            logger.warning("Stored user record is not valid JSON; removing it")
            self.remove_item(USER_KEY)
            return None
        return user if isinstance(user, dict) else None

    def save_session(self, token: str, user: dict) -> None:
        with self._lock:
            data = self._load()
            data[TOKEN_KEY] = token
            data[USER_KEY] = json.dumps(user)
            self._save(data)
