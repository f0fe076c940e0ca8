"""
Wiring of the client's collaborators for one UI session.

`build_context` creates the persisted storage of one browser session, the
HTTP client, the service registry and the session store in the right order,
and hydrates the store. The UI keeps the resulting `AppContext` in its
per-session state, so nothing here is shared between visitors.
"""
# epscitas/context.py

from dataclasses import dataclass

from epscitas.config import Settings
from epscitas.http_client import ApiClient
from epscitas.services import ServiceRegistry
from epscitas.session import SessionStore
from epscitas.storage import SessionStorage, session_path


@dataclass
class AppContext:
    settings: Settings
    session_id: str
    storage: SessionStorage
    client: ApiClient
    services: ServiceRegistry
    session: SessionStore


def build_context(settings: Settings, session_id: str, storage: SessionStorage = None, http_session=None,
                  hydrate: bool = True) -> AppContext:
    """Builds every collaborator for one UI session.

    Args:
        settings: Client configuration.
        session_id: Id of the browser session; selects its storage document.
        storage: Optional pre-built storage; built from `settings` and `session_id` when omitted.
        http_session: Optional `requests.Session` replacement for the client.
        hydrate: Whether to restore the persisted session immediately.

    Returns:
        AppContext: The wired collaborators.

    Raises:
        ValueError: If `session_id` is malformed and no storage was given.
    """
    if storage is None:
        storage = SessionStorage(session_path(settings.session_dir, session_id), key_file=settings.key_file)
    client = ApiClient(settings, storage, session=http_session)
    services = ServiceRegistry(client)
    session = SessionStore(storage, services.auth, client=client)
    if hydrate:
        session.hydrate()
    return AppContext(settings=settings, session_id=session_id, storage=storage, client=client,
                      services=services, session=session)
