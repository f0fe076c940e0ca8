"""
This module provides every service the screens call to reach the backend.

It defines:
- `ResourceService`: uniform CRUD over one REST collection (citas, pacientes,
  medicos, especialidades, administradores, consultorios, eps).
- `AuthService` and `ProfileService`: login, patient self-registration,
  profile edits and password changes.
- `MedicoService`, `PacienteService` and `AdminService`: the role-scoped endpoints.
- `StatisticsService`: dashboard counters computed from the list endpoints.
- `ServiceRegistry`: builds all of the above over one `ApiClient`.
- `fetch_parallel`: runs independent loads concurrently and joins them.

No service method raises. Every outcome, including transport failures, comes
back as a `ServiceResult`.
"""
# epscitas/services.py

import concurrent.futures
import datetime
import logging
from typing import Any, Callable, Dict, Optional

from epscitas.errors import ApiError
from epscitas.http_client import ApiClient, CancelToken
from epscitas.models import AppointmentStatus
from epscitas.results import ServiceResult, failure_from_error

logger = logging.getLogger(__name__)


def unwrap_envelope(body: Any) -> Any:
    """Returns the payload of a backend response.

    A dict carrying a `data` key is unwrapped; any other body is returned as is.
    """
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _log_failure(action: str, exc: ApiError) -> None:
    if exc.kind in ("validation", "unauthorized", "cancelled"):
        logger.warning("%s failed (%s): %s", action, exc.kind, exc.message or exc.status_code)
    else:
        logger.error("%s failed (%s): %s", action, exc.kind, exc)


def call_backend(action: str, default_message: str, send: Callable[[], Any], unwrap: bool = True) -> ServiceResult:
    """Runs one backend call and folds every outcome into a `ServiceResult`.

    Args:
        action: Short description used in log lines.
        default_message: Message used when the backend gives none (and always for 5xx).
        send: Zero-argument callable performing the request.
        unwrap: Whether to strip the `data` envelope from the body.

    Returns:
        ServiceResult: Success with the (unwrapped) payload, or failure with a message.
    """
    try:
        body = send()
    except ApiError as exc:
        _log_failure(action, exc)
        return failure_from_error(exc, default_message)
    if isinstance(body, dict) and body.get("success") is False:
        logger.warning("%s rejected by backend: %s", action, body.get("message"))
        return ServiceResult.fail(body.get("message") or default_message, "rejected")
    return ServiceResult.ok(unwrap_envelope(body) if unwrap else body)


class ResourceService:
    """CRUD operations over one backend collection.

    Attributes:
        endpoint (str): Collection path segment, e.g. `citas`.
        label (str): Singular noun used in default error messages, e.g. `cita`.
    """

    def __init__(self, client: ApiClient, endpoint: str, label: str, plural: Optional[str] = None):
        self.client = client
        self.endpoint = endpoint.strip("/")
        self.label = label
        self.plural = plural or f"{label}s"

    def get_all(self, params: Optional[dict] = None, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            f"GET /{self.endpoint}",
            f"Error al obtener {self.plural}",
            lambda: self.client.get(f"/{self.endpoint}", params=params, cancel_token=cancel_token),
        )

    def get_by_id(self, item_id, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            f"GET /{self.endpoint}/{item_id}",
            f"Error al obtener {self.label}",
            lambda: self.client.get(f"/{self.endpoint}/{item_id}", cancel_token=cancel_token),
        )

    def create(self, payload: dict, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            f"POST /{self.endpoint}",
            f"Error al crear {self.label}",
            lambda: self.client.post(f"/{self.endpoint}", json=payload, cancel_token=cancel_token),
        )

    def update(self, item_id, payload: dict, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            f"PUT /{self.endpoint}/{item_id}",
            f"Error al actualizar {self.label}",
            lambda: self.client.put(f"/{self.endpoint}/{item_id}", json=payload, cancel_token=cancel_token),
        )

    def delete(self, item_id, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            f"DELETE /{self.endpoint}/{item_id}",
            f"Error al eliminar {self.label}",
            lambda: self.client.delete(f"/{self.endpoint}/{item_id}", cancel_token=cancel_token),
        )


class AuthService:
    def __init__(self, client: ApiClient):
        self.client = client

    def login(self, email: str, password: str, tipo: str = "paciente") -> ServiceResult:
        """Authenticates against `/login`.

        `tipo` only tells the backend which account table to check. The role the
        session ends up with is whatever the backend returns.
        """
        return call_backend(
            "POST /login",
            "Error en el login",
            lambda: self.client.post("/login", json={"email": email, "password": password, "tipo": tipo}),
        )

    def register_paciente(self, data: dict) -> ServiceResult:
        payload = dict(data)
        payload.setdefault("activo", 1)
        return call_backend(
            "POST /pacientes (registro)",
            "Error en el registro",
            lambda: self.client.post("/pacientes", json=payload),
        )


class ProfileService:
    def __init__(self, client: ApiClient):
        self.client = client

    def update_profile(self, data: dict) -> ServiceResult:
        return call_backend(
            "PUT /profile/update",
            "Error al actualizar perfil",
            lambda: self.client.put("/profile/update", json=data),
        )

    def change_password(self, data: dict) -> ServiceResult:
        return call_backend(
            "PUT /profile/change-password",
            "Error al cambiar contraseña",
            lambda: self.client.put("/profile/change-password", json=data),
        )


class MedicoService:
    """Endpoints scoped to the logged-in doctor."""

    def __init__(self, client: ApiClient):
        self.client = client

    def mis_citas(self, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /medico/mis-citas", "Error al obtener mis citas",
            lambda: self.client.get("/medico/mis-citas", cancel_token=cancel_token),
        )

    def mis_pacientes(self, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /medico/mis-pacientes", "Error al obtener mis pacientes",
            lambda: self.client.get("/medico/mis-pacientes", cancel_token=cancel_token),
        )

    def mi_agenda(self, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /medico/mi-agenda", "Error al obtener mi agenda",
            lambda: self.client.get("/medico/mi-agenda", cancel_token=cancel_token),
        )

    def reportes(self, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /medico/reportes", "Error al obtener reportes",
            lambda: self.client.get("/medico/reportes", cancel_token=cancel_token),
        )

    def actualizar_estado_cita(self, cita_id, estado) -> ServiceResult:
        value = estado.value if isinstance(estado, AppointmentStatus) else estado
        return call_backend(
            f"PUT /medico/citas/{cita_id}/estado", "Error al actualizar estado de cita",
            lambda: self.client.put(f"/medico/citas/{cita_id}/estado", json={"estado": value}),
        )

    def agregar_observaciones(self, cita_id, observaciones: str) -> ServiceResult:
        return call_backend(
            f"PUT /medico/citas/{cita_id}/observaciones", "Error al agregar observaciones",
            lambda: self.client.put(f"/medico/citas/{cita_id}/observaciones", json={"observaciones": observaciones}),
        )


class PacienteService:
    """Endpoints scoped to the logged-in patient."""

    def __init__(self, client: ApiClient):
        self.client = client

    def mis_citas(self, paciente_id, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /paciente/mis-citas", "Error al obtener mis citas",
            lambda: self.client.get("/paciente/mis-citas", params={"paciente_id": paciente_id}, cancel_token=cancel_token),
        )

    def agendar_cita(self, data: dict) -> ServiceResult:
        return call_backend(
            "POST /paciente/agendar-cita", "Error al agendar cita",
            lambda: self.client.post("/paciente/agendar-cita", json=data),
        )

    def cancelar_cita(self, cita_id) -> ServiceResult:
        return call_backend(
            f"PUT /paciente/citas/{cita_id}/cancelar", "Error al cancelar cita",
            lambda: self.client.put(f"/paciente/citas/{cita_id}/cancelar"),
        )

    def proxima_cita(self, paciente_id, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /paciente/proxima-cita", "Error al obtener próxima cita",
            lambda: self.client.get("/paciente/proxima-cita", params={"paciente_id": paciente_id}, cancel_token=cancel_token),
        )

    def mi_historial(self, paciente_id, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /paciente/mi-historial", "Error al obtener mi historial",
            lambda: self.client.get("/paciente/mi-historial", params={"paciente_id": paciente_id}, cancel_token=cancel_token),
        )

    def medicos_disponibles(self, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /paciente/medicos-disponibles", "Error al obtener médicos disponibles",
            lambda: self.client.get("/paciente/medicos-disponibles", cancel_token=cancel_token),
        )


class AdminService:
    def __init__(self, client: ApiClient):
        self.client = client

    def estadisticas(self, cancel_token: Optional[CancelToken] = None) -> ServiceResult:
        return call_backend(
            "GET /admin/estadisticas", "Error al obtener estadísticas",
            lambda: self.client.get("/admin/estadisticas", cancel_token=cancel_token),
        )


def fetch_parallel(calls: Dict[str, Callable[[], ServiceResult]], max_workers: int = 4) -> Dict[str, ServiceResult]:
    """Runs independent service calls concurrently and waits for all of them.

    Args:
        calls: Mapping of a name to a zero-argument callable returning a `ServiceResult`.
        max_workers: Upper bound on concurrent requests.

    Returns:
        dict: The same names mapped to their results.
    """
    if not calls:
        return {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=min(max_workers, len(calls))) as pool:
        futures = {name: pool.submit(call) for name, call in calls.items()}
        return {name: future.result() for name, future in futures.items()}


def _is_active(record: dict) -> bool:
    return record.get("activo") in (1, True, "1")


def _is_inactive(record: dict) -> bool:
    return record.get("activo") in (0, False, "0")


class StatisticsService:
    """Dashboard counters derived from the collection endpoints."""

    def __init__(self, registry: "ServiceRegistry"):
        self.registry = registry

    @staticmethod
    def _active_counts(result: ServiceResult) -> dict:
        records = result.as_list()
        return {
            "total": len(records),
            "activos": sum(1 for r in records if _is_active(r)),
            "inactivos": sum(1 for r in records if _is_inactive(r)),
        }

    @staticmethod
    def count_citas(citas: list, today: Optional[datetime.date] = None) -> dict:
        """Counts appointments in total, for today and per status."""
        today = (today or datetime.date.today()).isoformat()
        counts = {"total": len(citas), "hoy": 0}
        for status in AppointmentStatus:
            counts[status.value + "s"] = 0
        for cita in citas:
            if str(cita.get("fecha", ""))[:10] == today:
                counts["hoy"] += 1
            status = AppointmentStatus.parse(cita.get("estado"))
            if status is not None:
                counts[status.value + "s"] += 1
        return counts

    def resumen(self) -> dict:
        """Loads every counter in parallel."""
        results = fetch_parallel({
            "medicos": self.registry.medicos.get_all,
            "pacientes": self.registry.pacientes.get_all,
            "citas": self.registry.citas.get_all,
            "especialidades": self.registry.especialidades.get_all,
        })
        return {
            "medicos": self._active_counts(results["medicos"]),
            "pacientes": self._active_counts(results["pacientes"]),
            "citas": self.count_citas(results["citas"].as_list()),
            "especialidades": {"total": len(results["especialidades"].as_list())},
        }


class ServiceRegistry:
    """Every service the screens use, built over one shared client."""

    def __init__(self, client: ApiClient):
        self.client = client
        self.citas = ResourceService(client, "citas", "cita")
        self.pacientes = ResourceService(client, "pacientes", "paciente")
        self.medicos = ResourceService(client, "medicos", "médico")
        self.especialidades = ResourceService(client, "especialidades", "especialidad", plural="especialidades")
        self.administradores = ResourceService(client, "administradores", "administrador", plural="administradores")
        self.consultorios = ResourceService(client, "consultorios", "consultorio")
        self.eps = ResourceService(client, "eps", "EPS", plural="EPS")
        self.auth = AuthService(client)
        self.profile = ProfileService(client)
        self.medico = MedicoService(client)
        self.paciente = PacienteService(client)
        self.admin = AdminService(client)
        self.estadisticas = StatisticsService(self)

    def resource(self, name: str) -> ResourceService:
        service = getattr(self, name, None)
        if not isinstance(service, ResourceService):
            raise KeyError(name)
        return service
