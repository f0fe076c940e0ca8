"""
Unit tests for the EPS Citas client.

These tests focus on verifying individual functions and classes in isolation:
the models and their date/time normalization, the error-to-message policy,
encrypted storage, the HTTP client's interceptors, the generic resource
service, the status lifecycle, the router, form validation and configuration.
"""
import datetime
import os
import threading

import pytest

from conftest import FakeResponse, error, network_down, ok, timed_out
from epscitas import encryption as encryption_module
from epscitas import lifecycle, router, validation
from epscitas.config import DEFAULT_API_URL, Settings, load_settings
from epscitas.demo import SAMPLE_EPS, load_eps
from epscitas.errors import ServerError, Unauthorized, ValidationFailed, error_for_status
from epscitas.http_client import CancelToken
from epscitas.models import (
    Appointment,
    AppointmentStatus,
    Role,
    User,
    normalize_date,
    normalize_time,
)
from epscitas.results import (
    NETWORK_MESSAGE,
    TIMEOUT_MESSAGE,
    ServiceResult,
    message_for_error,
)
from epscitas.services import ResourceService, StatisticsService, fetch_parallel, unwrap_envelope
from epscitas.storage import TOKEN_KEY, USER_KEY, SessionStorage, new_session_id, session_path


def _cita(estado="programada", **extra):
    record = {
        "id": 10, "paciente_id": 1, "medico_id": 7, "especialidad_id": 2,
        "fecha": "2026-11-02", "hora": "09:30:00", "motivo": "Control", "estado": estado,
    }
    record.update(extra)
    return record


# Models

@pytest.mark.parametrize("value, expected", [
    ("09:30", "09:30:00"),
    ("09:30:15", "09:30:15"),
    ("00:00", "00:00:00"),
    ("23:59:59", "23:59:59"),
    (datetime.time(14, 5), "14:05:00"),
])
def test_normalize_time_canonical_form(value, expected):
    assert normalize_time(value) == expected


@pytest.mark.parametrize("value", ["9:30", "24:00", "12:60", "abc", "", None, "09:30:00:00"])
def test_normalize_time_rejects_invalid(value):
    with pytest.raises(ValueError):
        normalize_time(value)


def test_normalize_date_accepts_timestamps_and_dates():
    assert normalize_date("2026-11-02T00:00:00.000Z") == "2026-11-02"
    assert normalize_date(datetime.date(2026, 1, 5)) == "2026-01-05"
    assert normalize_date(datetime.datetime(2026, 1, 5, 10, 0)) == "2026-01-05"
    with pytest.raises(ValueError, match="La fecha no es válida"):
        normalize_date("2026-02-30")
    with pytest.raises(ValueError, match="YYYY-MM-DD"):
        normalize_date("02/11/2026")


def test_role_and_status_parse_unknown_values():
    assert Role.parse("MEDICO") is Role.MEDICO
    assert Role.parse("superuser") is None
    assert Role.parse(None) is None
    assert AppointmentStatus.parse(" Confirmada ") is AppointmentStatus.CONFIRMADA
    assert AppointmentStatus.parse("pendiente") is None
    assert AppointmentStatus.COMPLETADA.label == "Completada"


def test_user_round_trip_keeps_extra_fields():
    user = User.from_dict({"id": 3, "nombre": "Luis", "apellido": "Pérez", "email": "l@p.co",
                           "tipo": "medico", "especialidad_id": 4})
    assert user.role is Role.MEDICO
    assert user.full_name == "Luis Pérez"
    assert user.to_dict()["especialidad_id"] == 4


def test_appointment_from_dict_tolerates_bad_values():
    cita = Appointment.from_dict(_cita(fecha="no-date", hora="25:99", estado="raro",
                                       medico={"nombre": "Luis", "apellido": "Pérez"}))
    assert cita.fecha is None
    assert cita.hora is None
    assert cita.estado is None
    assert cita.medico == "Luis Pérez"


def test_appointment_from_dict_reads_flat_name_fields():
    cita = Appointment.from_dict(_cita(
        medico_nombre="Juan", medico_apellido="Rojas",
        paciente_nombre="Ana", paciente_apellido="Gómez",
        especialidad_nombre="Cardiología",
    ))
    assert cita.medico == "Juan Rojas"
    assert cita.paciente == "Ana Gómez"
    assert cita.especialidad == "Cardiología"
    assert cita.consultorio is None


def test_appointment_nested_names_win_over_flat_fields():
    cita = Appointment.from_dict(_cita(medico={"nombre": "Luis"}, medico_nombre="Otro"))
    assert cita.medico == "Luis"


def test_appointment_payload_uses_canonical_time():
    cita = Appointment.from_dict(_cita(hora="09:30", consultorio_id=5))
    payload = cita.to_payload()
    assert payload["hora"] == "09:30:00"
    assert payload["fecha"] == "2026-11-02"
    assert payload["estado"] == "programada"
    assert payload["consultorio_id"] == 5


# Errors and results

def test_error_for_status_classification():
    assert isinstance(error_for_status(401, None), Unauthorized)
    assert isinstance(error_for_status(422, "x"), ValidationFailed)
    assert isinstance(error_for_status(503, None), ServerError)


def test_message_policy_per_error_kind():
    from epscitas.errors import NetworkError, RequestTimeout

    assert message_for_error(NetworkError("boom"), "Error al obtener citas") == NETWORK_MESSAGE
    assert message_for_error(RequestTimeout("slow"), "Error al obtener citas") == TIMEOUT_MESSAGE
    assert message_for_error(ServerError("stack trace", 500), "Error al eliminar cita") == "Error al eliminar cita"
    assert message_for_error(ValidationFailed("Email duplicado", 400), "Error al crear paciente") == "Email duplicado"
    assert message_for_error(ValidationFailed(None, 400), "Error al crear paciente") == "Error al crear paciente"


def test_service_result_helpers():
    assert ServiceResult.ok([1, 2]).as_list() == [1, 2]
    assert ServiceResult.ok({"a": 1}).as_list() == []
    assert ServiceResult.fail("x").as_list() == []
    assert ServiceResult.fail("x").to_dict() == {"success": False, "message": "x"}
    assert ServiceResult.ok([1]).to_dict() == {"success": True, "data": [1]}


def test_unwrap_envelope():
    assert unwrap_envelope({"success": True, "data": [1]}) == [1]
    assert unwrap_envelope([1, 2]) == [1, 2]
    assert unwrap_envelope({"id": 1}) == {"id": 1}


# Encryption and storage

def test_get_encryptor_generates_key_once(tmp_path):
    key_file = tmp_path / "keys" / "secret.key"
    first = encryption_module.get_encryptor(str(key_file))
    assert key_file.exists()
    second = encryption_module.get_encryptor(str(key_file))
    assert second.decrypt(first.encrypt(b"hola")) == b"hola"


def test_storage_is_encrypted_on_disk(storage):
    storage.save_session("secret-token", {"id": 1, "tipo": "admin"})
    raw = open(storage.path, "rb").read()
    assert b"secret-token" not in raw
    assert storage.get_token() == "secret-token"
    assert storage.get_user() == {"id": 1, "tipo": "admin"}


def test_storage_clear_session_removes_both_keys(storage):
    storage.save_session("t", {"id": 1})
    storage.set_item("theme", "dark")
    storage.clear_session()
    assert storage.get_item(TOKEN_KEY) is None
    assert storage.get_item(USER_KEY) is None
    assert storage.get_item("theme") == "dark"


def test_storage_treats_corrupt_file_as_empty(tmp_path, encryptor):
    path = tmp_path / "corrupt.dat"
    path.write_bytes(b"not a fernet token")
    storage = SessionStorage(str(path), encryptor=encryptor)
    assert storage.get_token() is None
    storage.set_item(TOKEN_KEY, "fresh")
    assert storage.get_token() == "fresh"


def test_storage_invalid_user_json_is_removed(storage):
    storage.save_session("t", {"id": 1})
    storage.set_item(USER_KEY, "{not json")
    assert storage.get_user() is None
    assert storage.get_item(USER_KEY) is None
    assert storage.get_token() == "t"


def test_session_path_is_scoped_per_session_id(tmp_path):
    first = session_path(str(tmp_path), new_session_id())
    second = session_path(str(tmp_path), new_session_id())
    assert first != second
    assert os.path.dirname(first) == str(tmp_path)
    for bad in ("../../etc/passwd", "", None, "abc"):
        with pytest.raises(ValueError):
            session_path(str(tmp_path), bad)


# HTTP client

def test_bearer_header_only_when_token_stored(client, http, storage):
    http.add("GET", "/citas", ok([]))
    client.get("/citas")
    assert "Authorization" not in http.calls[-1]["headers"]

    storage.save_session("abc", {"id": 1, "tipo": "admin"})
    client.get("/citas")
    assert http.calls[-1]["headers"]["Authorization"] == "Bearer abc"
    assert http.calls[-1]["timeout"] == 5


def test_client_strips_trailing_slash_from_base_url(client, http):
    http.add("GET", "/test", ok())
    client.get("test")
    assert http.calls[-1]["path"] == "/test"


def test_401_purges_storage_and_notifies_listeners(client, http, storage):
    storage.save_session("abc", {"id": 1, "tipo": "admin"})
    http.add("GET", "/citas", error(401, "Token inválido"))
    notified = []
    client.add_unauthorized_listener(lambda: notified.append(True))

    with pytest.raises(Unauthorized) as exc_info:
        client.get("/citas")

    assert exc_info.value.message == "Token inválido"
    assert storage.get_token() is None
    assert storage.get_user() is None
    assert notified == [True]


def test_client_translates_transport_failures(client, http):
    from epscitas.errors import InvalidResponse, NetworkError, RequestTimeout

    http.add("GET", "/a", network_down())
    http.add("GET", "/b", timed_out())
    http.add("GET", "/c", FakeResponse(200, content=b"<html>"))
    with pytest.raises(NetworkError):
        client.get("/a")
    with pytest.raises(RequestTimeout):
        client.get("/b")
    with pytest.raises(InvalidResponse):
        client.get("/c")


def test_cancelled_token_discards_response(client, http):
    from epscitas.errors import RequestCancelled

    token = CancelToken()
    http.add("GET", "/citas", ok([]))
    token.cancel()
    with pytest.raises(RequestCancelled):
        client.get("/citas", cancel_token=token)
    assert http.calls == []


def test_check_connection(client, http):
    assert client.check_connection() is False
    http.add("GET", "/test", ok({"status": "ok"}))
    assert client.check_connection() is True


# Resource services

def test_get_all_is_idempotent(client, http):
    service = ResourceService(client, "especialidades", "especialidad", plural="especialidades")
    http.add("GET", "/especialidades", [ok([{"id": 1}]), ok([{"id": 1}])])
    first = service.get_all()
    second = service.get_all()
    assert first == second
    assert first.success and first.data == [{"id": 1}]


def test_get_by_id_hits_item_url_and_unwraps(services, http):
    http.add("GET", "/citas/42", ok({"id": 42, "estado": "programada"}))
    result = services.citas.get_by_id(42)
    assert http.calls[-1]["method"] == "GET"
    assert http.calls[-1]["path"] == "/citas/42"
    assert result.success
    assert result.data == {"id": 42, "estado": "programada"}


def test_get_by_id_server_error_uses_default_message(services, http):
    http.add("GET", "/citas/42", error(500, "Unknown column"))
    result = services.citas.get_by_id(42)
    assert result.success is False
    assert result.message == "Error al obtener cita"


def test_delete_server_error_uses_default_message(services, http):
    http.add("DELETE", "/citas/42", error(500, "SQLSTATE[23000] integrity constraint"))
    result = services.citas.delete(42)
    assert result.success is False
    assert result.message == "Error al eliminar cita"
    assert result.error_kind == "server"


def test_validation_error_surfaces_backend_message(services, http):
    http.add("POST", "/pacientes", error(400, "El email ya está registrado"))
    result = services.pacientes.create({"email": "x@y.co"})
    assert result.message == "El email ya está registrado"
    assert result.error_kind == "validation"


def test_transport_failure_never_raises(services, http):
    http.add("GET", "/medicos", network_down())
    result = services.medicos.get_all()
    assert result.success is False
    assert result.message == NETWORK_MESSAGE


def test_success_false_body_is_a_failure(services, http):
    http.add("PUT", "/consultorios/3", FakeResponse(200, {"success": False, "message": "Sin cambios"}))
    result = services.consultorios.update(3, {"nombre": "A"})
    assert result.success is False
    assert result.message == "Sin cambios"


def test_registry_resource_lookup(services):
    assert services.resource("eps") is services.eps
    with pytest.raises(KeyError):
        services.resource("auth")


def test_fetch_parallel_runs_concurrently():
    barrier = threading.Barrier(3, timeout=5)

    def call(value):
        def _run():
            barrier.wait()
            return ServiceResult.ok(value)
        return _run

    results = fetch_parallel({"a": call(1), "b": call(2), "c": call(3)})
    assert {name: r.data for name, r in results.items()} == {"a": 1, "b": 2, "c": 3}
    assert fetch_parallel({}) == {}


def test_count_citas_by_status_and_today():
    today = datetime.date(2026, 11, 2)
    counts = StatisticsService.count_citas([
        _cita("programada"), _cita("confirmada"), _cita("completada", fecha="2026-10-01"),
        _cita("cancelada"), _cita("desconocido"),
    ], today=today)
    assert counts["total"] == 5
    assert counts["hoy"] == 4
    assert counts["programadas"] == 1
    assert counts["confirmadas"] == 1
    assert counts["completadas"] == 1
    assert counts["canceladas"] == 1


# Lifecycle

def test_programada_has_no_complete_action():
    actions = lifecycle.actions_for(_cita("programada"), Role.MEDICO)
    targets = [target for _, target in actions]
    assert AppointmentStatus.COMPLETADA not in targets
    assert targets == [AppointmentStatus.CONFIRMADA, AppointmentStatus.CANCELADA]


def test_confirmada_can_complete_or_cancel():
    actions = lifecycle.actions_for(_cita("confirmada"), Role.ADMIN)
    assert actions == [("Completar", AppointmentStatus.COMPLETADA), ("Cancelar", AppointmentStatus.CANCELADA)]


@pytest.mark.parametrize("estado", ["completada", "cancelada", "otro"])
@pytest.mark.parametrize("role", list(Role))
def test_terminal_and_unknown_states_have_no_actions(estado, role):
    assert lifecycle.actions_for(_cita(estado), role, user_id=1) == []


def test_patient_may_only_cancel_own_programada():
    assert lifecycle.allowed_transitions(_cita("programada"), "paciente", user_id="1") == [AppointmentStatus.CANCELADA]
    assert lifecycle.allowed_transitions(_cita("programada"), "paciente", user_id=2) == []
    assert lifecycle.allowed_transitions(_cita("confirmada"), "paciente", user_id=1) == []


def test_patient_row_without_owner_id_can_be_cancelled():
    row = _cita("programada")
    del row["paciente_id"]
    assert lifecycle.actions_for(row, Role.PACIENTE, user_id=1) == [("Cancelar", AppointmentStatus.CANCELADA)]
    assert lifecycle.actions_for(_cita("confirmada", paciente_id=None), Role.PACIENTE, user_id=1) == []


def test_can_edit_only_admin_non_terminal():
    assert lifecycle.can_edit(_cita("programada"), Role.ADMIN)
    assert not lifecycle.can_edit(_cita("completada"), Role.ADMIN)
    assert not lifecycle.can_edit(_cita("programada"), Role.MEDICO)


def test_invalid_transition_sends_no_request(services, http):
    result = lifecycle.transition(services, _cita("programada"), "completada", Role.MEDICO)
    assert result.success is False
    assert result.error_kind == "invalid_transition"
    assert http.calls == []


def test_transition_uses_role_endpoint(services, http):
    http.add("PUT", "/medico/citas/10/estado", ok({"id": 10, "estado": "confirmada"}))
    http.add("PUT", "/paciente/citas/10/cancelar", ok())
    http.add("PUT", "/citas/10", ok())

    assert lifecycle.transition(services, _cita("programada"), "confirmada", "medico").success
    assert http.calls[-1]["json"] == {"estado": "confirmada"}

    assert lifecycle.transition(services, _cita("programada"), "cancelada", "paciente", user_id=1).success
    assert http.calls[-1]["path"] == "/paciente/citas/10/cancelar"

    assert lifecycle.transition(services, _cita("confirmada"), "completada", "admin").success
    assert http.calls[-1]["json"]["estado"] == "completada"
    assert http.calls[-1]["json"]["hora"] == "09:30:00"


# Router

def test_dashboard_for_defaults_to_paciente():
    assert router.dashboard_for("admin") is router.Dashboard.ADMIN
    assert router.dashboard_for(Role.MEDICO) is router.Dashboard.MEDICO
    assert router.dashboard_for("otro") is router.Dashboard.PACIENTE
    assert router.dashboard_for(None) is router.Dashboard.PACIENTE


def test_can_access_requires_exact_role():
    assert router.can_access("admin", "administradores")
    assert not router.can_access("medico", "administradores")
    assert not router.can_access("paciente", "citas")
    assert router.can_access("medico", "pacientes")
    assert not router.can_access("admin", "no_existe")
    assert not router.can_access(None, "perfil")


def test_available_screens_per_role():
    paciente_keys = {s.key for s in router.available_screens("paciente")}
    assert paciente_keys == {"paciente_citas", "paciente_agendar", "paciente_historial", "perfil", "cambiar_password"}
    assert router.available_screens("otro") == []


# Validation

def test_validate_record_messages():
    data = {"nombre": "A", "apellido": "B", "email": "bad", "telefono": "1"}
    assert validation.validate_record("administrador", data) == "El formato del email no es válido"
    data["email"] = "a@b.co"
    assert validation.validate_record("administrador", data, require_password=True) == "La contraseña es obligatoria"
    data["password"] = "123"
    assert "al menos 6" in validation.validate_record("administrador", data)
    data["password"] = "123456"
    assert validation.validate_record("administrador", data) is None
    assert validation.validate_record("especialidad", {"nombre": " "}) == "El nombre es obligatorio"


def test_validate_registration_requires_everything():
    assert validation.validate_registration({"nombre": "A"}) == "Todos los campos son obligatorios"


def test_validate_appointment_checks_time_format():
    data = {"paciente_id": 1, "medico_id": 2, "fecha": "2026-11-02", "hora": "9:3", "motivo": "x"}
    assert validation.validate_appointment(data) == "La hora debe estar en formato HH:MM o HH:MM:SS"
    data["hora"] = "09:30"
    assert validation.validate_appointment(data) is None
    assert validation.validate_appointment({}, form="agendar") == "Por favor selecciona un médico"


def test_validate_password_change():
    assert validation.validate_password_change("", "a", "a") == "Todos los campos son obligatorios"
    assert validation.validate_password_change("old", "abcdef", "abcdeg") == "Las contraseñas nuevas no coinciden"
    assert validation.validate_password_change("old", "abc", "abc").startswith("La nueva contraseña")
    assert validation.validate_password_change("old", "abcdef", "abcdef") is None


# Configuration and demo data

def test_load_settings_from_environment(monkeypatch):
    monkeypatch.setenv("EPS_CITAS_API_URL", "https://eps.example.com/api/")
    monkeypatch.setenv("EPS_CITAS_TIMEOUT", "12.5")
    monkeypatch.setenv("EPS_CITAS_DEMO_MODE", "yes")
    monkeypatch.setenv("EPS_CITAS_LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.api_url == "https://eps.example.com/api"
    assert settings.timeout == 12.5
    assert settings.demo_mode is True
    assert settings.log_level == "DEBUG"


def test_settings_defaults(monkeypatch):
    for name in ("EPS_CITAS_API_URL", "EPS_CITAS_DEMO_MODE", "EPS_CITAS_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.api_url == DEFAULT_API_URL
    assert settings.demo_mode is False
    assert settings.timeout == 30.0
    assert Settings().headers["Content-Type"] == "application/json"


def test_demo_data_only_in_demo_mode(services, http):
    http.add("GET", "/eps", network_down())
    result, used_sample = load_eps(services, demo_mode=False)
    assert result.success is False and used_sample is False

    result, used_sample = load_eps(services, demo_mode=True)
    assert result.success is True and used_sample is True
    assert len(result.data) == len(SAMPLE_EPS)


def test_demo_mode_prefers_real_data(services, http):
    http.add("GET", "/eps", ok([{"id": 9, "nombre": "Real"}]))
    result, used_sample = load_eps(services, demo_mode=True)
    assert used_sample is False
    assert result.data == [{"id": 9, "nombre": "Real"}]
