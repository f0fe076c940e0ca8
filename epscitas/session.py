"""
This module holds the client-side session: who is logged in and with which role.

It defines the `SessionStore` class, which is responsible for:
- Restoring a persisted session when the app starts (`hydrate`).
- Logging in through the backend and persisting the returned token and user.
- Logging out, which always succeeds client-side.
- Dropping to anonymous when the HTTP client reports a 401.

The store is created once per Streamlit session and passed explicitly to the
screens; there is no module-level session.
"""
# epscitas/session.py

import logging
from enum import Enum
from typing import Optional

from epscitas.models import Role, User
from epscitas.results import ServiceResult
from epscitas.storage import SessionStorage

logger = logging.getLogger(__name__)

INCOMPLETE_RESPONSE_MESSAGE = "Datos de respuesta incompletos del servidor"
INVALID_CREDENTIALS_MESSAGE = "Credenciales inválidas"


class SessionPhase(str, Enum):
    INIT = "init"
    HYDRATING = "hydrating"
    READY = "ready"


class SessionStore:
    """Current user, role and authentication flags of the client.

    Attributes:
        user (User or None): The authenticated user.
        role (Role or None): Role assigned by the backend.
        is_authenticated (bool): Whether a session is active.
        loading (bool): True until the persisted session has been checked.
        phase (SessionPhase): Lifecycle position, `init` -> `hydrating` -> `ready`.
    """

    def __init__(self, storage: SessionStorage, auth_service, client=None):
        """Initializes an empty store.

        Args:
            storage: Persisted storage holding the token and user record.
            auth_service: Object exposing `login(email, password, tipo)`.
            client: Optional `ApiClient`; when given, the store listens for its 401s.
        """
        self.storage = storage
        self.auth_service = auth_service
        self.user: Optional[User] = None
        self.role: Optional[Role] = None
        self.is_authenticated = False
        self.loading = True
        self.phase = SessionPhase.INIT
        if client is not None:
            client.add_unauthorized_listener(self.expire)

    def _set_authenticated(self, user: User, role: Role) -> None:
        self.user = user
        self.role = role
        self.is_authenticated = True

    def _clear(self) -> None:
        self.user = None
        self.role = None
        self.is_authenticated = False

    def hydrate(self) -> bool:
        """Restores the persisted session, if there is a usable one.

        Returns:
            bool: True if the store ends up authenticated.
        """
        self.phase = SessionPhase.HYDRATING
        self.loading = True
        try:
            token = self.storage.get_token()
            user_data = self.storage.get_user()
            role = Role.parse(user_data.get("tipo")) if user_data else None
            if token and user_data and role is not None:
                self._set_authenticated(User.from_dict(user_data), role)
                logger.info("Restored session for user %s as %s", self.user.id, role.value)
            else:
                self._clear()
                if token or user_data:
                    logger.warning("Discarding incomplete persisted session")
                    self.storage.clear_session()
        except OSError as exc:
            logger.error("Could not read persisted session: %s", exc)
            self._clear()
        finally:
            self.loading = False
            self.phase = SessionPhase.READY
        return self.is_authenticated

    def login(self, email: str, password: str, role_hint: str = "paciente") -> ServiceResult:
        """Authenticates against the backend and persists the session.

        The role hint only selects the backend's authentication path; the role
        stored in the session is the one the backend returns.

        Args:
            email: Login email.
            password: Plaintext password.
            role_hint: `paciente`, `medico` or `admin`.

        Returns:
            ServiceResult: On success, `data` holds the `User`; on failure, `message`
            is the backend's message unmodified.
        """
        hint = Role.parse(role_hint)
        result = self.auth_service.login(email, password, hint.value if hint else role_hint)
        if not result.success:
            return ServiceResult.fail(result.message or INVALID_CREDENTIALS_MESSAGE, result.error_kind or "unknown")

        payload = result.data if isinstance(result.data, dict) else {}
        # Some backends nest the payload one level deeper than the envelope.
        if isinstance(payload.get("data"), dict):
            payload = payload["data"]
        user_data = payload.get("user")
        token = payload.get("token")
        role = Role.parse(payload.get("tipo"))
        if not isinstance(user_data, dict) or not token or role is None:
            logger.error("Login response missing user, token or tipo")
            return ServiceResult.fail(INCOMPLETE_RESPONSE_MESSAGE, "invalid_response")

        record = dict(user_data)
        record["tipo"] = role.value
        try:
            self.storage.save_session(token, record)
        except OSError as exc:
            logger.error("Could not persist session: %s", exc)
            return ServiceResult.fail("No se pudo guardar la sesión", "storage")

        user = User.from_dict(record)
        self._set_authenticated(user, role)
        self.loading = False
        self.phase = SessionPhase.READY
        logger.info("Login completed for user %s as %s", user.id, role.value)
        return ServiceResult.ok(user)

    def logout(self) -> None:
        """Purges the persisted session and clears the in-memory state."""
        try:
            self.storage.clear_session()
        except OSError as exc:
            logger.error("Could not clear persisted session on logout: %s", exc)
        self._clear()
        logger.info("Session closed")

    def expire(self) -> None:
        """Called after a 401; the HTTP client has already purged storage."""
        if self.is_authenticated:
            logger.info("Session expired by the backend")
        self._clear()

    def refresh_from_storage(self) -> bool:
        """Drops to anonymous if the persisted token has disappeared.

        Returns:
            bool: Whether the store is still authenticated.
        """
        if self.is_authenticated:
            try:
                token = self.storage.get_token()
            except OSError as exc:
                logger.error("Could not read session token: %s", exc)
                token = None
            if not token:
                self._clear()
        return self.is_authenticated

    def update_user(self, changes: dict) -> None:
        """Merges profile edits into the current user and its persisted record."""
        if not self.is_authenticated or self.user is None:
            return
        record = self.user.to_dict()
        record.update({k: v for k, v in changes.items() if k not in ("id", "tipo", "password")})
        self.user = User.from_dict(record)
        token = self.storage.get_token()
        if token:
            self.storage.save_session(token, record)

    @property
    def user_id(self):
        return self.user.id if self.user else None

    def to_dict(self) -> dict:
        return {
            "user": self.user.to_dict() if self.user else None,
            "role": self.role.value if self.role else None,
            "isAuthenticated": self.is_authenticated,
            "loading": self.loading,
        }
