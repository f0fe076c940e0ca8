"""
Checks run on form data before anything is submitted to the backend.

These are presence and format checks only; the backend stays the authority on
business rules and its validation messages are shown verbatim. Each function
returns the first problem found as a user-facing message, or None.
"""
# epscitas/validation.py

import re
from typing import Optional

from epscitas.models import normalize_date, normalize_time

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

# Per form: (field, message shown when it is missing), in display order.
REQUIRED_FIELDS = {
    "paciente": [
        ("nombre", "El nombre es obligatorio"),
        ("apellido", "El apellido es obligatorio"),
        ("email", "El email es obligatorio"),
        ("telefono", "El teléfono es obligatorio"),
        ("fecha_nacimiento", "La fecha de nacimiento es obligatoria"),
        ("tipo_documento", "El tipo de documento es obligatorio"),
        ("numero_documento", "El número de documento es obligatorio"),
        ("direccion", "La dirección es obligatoria"),
    ],
    "medico": [
        ("nombre", "El nombre es obligatorio"),
        ("apellido", "El apellido es obligatorio"),
        ("email", "El email es obligatorio"),
        ("telefono", "El teléfono es obligatorio"),
        ("numero_licencia", "El número de licencia es obligatorio"),
        ("especialidad_id", "Debe seleccionar una especialidad"),
    ],
    "administrador": [
        ("nombre", "El nombre es obligatorio"),
        ("apellido", "El apellido es obligatorio"),
        ("email", "El email es obligatorio"),
        ("telefono", "El teléfono es obligatorio"),
    ],
    "especialidad": [
        ("nombre", "El nombre es obligatorio"),
    ],
    "consultorio": [
        ("nombre", "El nombre es obligatorio"),
        ("ubicacion", "La ubicación es obligatoria"),
        ("telefono", "El teléfono es obligatorio"),
        ("numero", "El número es obligatorio"),
    ],
    "eps": [
        ("nombre", "El nombre es obligatorio"),
        ("nit", "El NIT es obligatorio"),
        ("direccion", "La dirección es obligatoria"),
        ("telefono", "El teléfono es obligatorio"),
        ("email", "El email es obligatorio"),
    ],
    "cita": [
        ("paciente_id", "Debes seleccionar un paciente"),
        ("medico_id", "Debes seleccionar un médico"),
        ("fecha", "La fecha es obligatoria"),
        ("hora", "La hora es obligatoria"),
        ("motivo", "El motivo es obligatorio"),
    ],
    "agendar": [
        ("medico_id", "Por favor selecciona un médico"),
        ("especialidad_id", "Por favor selecciona una especialidad"),
        ("fecha", "Por favor ingresa la fecha"),
        ("hora", "Por favor ingresa la hora"),
        ("motivo", "Por favor ingresa el motivo de la consulta"),
    ],
}


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def first_missing(data: dict, form: str) -> Optional[str]:
    """Returns the message for the first required field of `form` missing in `data`."""
    for field, message in REQUIRED_FIELDS[form]:
        if _is_blank(data.get(field)):
            return message
    return None


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match((email or "").strip()))


def validate_record(form: str, data: dict, require_password: bool = False) -> Optional[str]:
    """Validates a create/edit form for one of the managed entities.

    Args:
        form: Key of `REQUIRED_FIELDS`.
        data: Submitted values.
        require_password: Whether a password must be present (creation forms).

    Returns:
        str or None: The first problem found.
    """
    missing = first_missing(data, form)
    if missing:
        return missing
    if "email" in data and not is_valid_email(data.get("email")):
        return "El formato del email no es válido"
    password = data.get("password")
    if require_password and _is_blank(password):
        return "La contraseña es obligatoria"
    if password and len(password) < MIN_PASSWORD_LENGTH:
        return f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres"
    return None


def validate_registration(data: dict) -> Optional[str]:
    """Patient self-registration: every field, including the password, is mandatory."""
    fields = [field for field, _ in REQUIRED_FIELDS["paciente"]] + ["password"]
    if any(_is_blank(data.get(field)) for field in fields):
        return "Todos los campos son obligatorios"
    return validate_record("paciente", data, require_password=True)


def validate_appointment(data: dict, form: str = "cita") -> Optional[str]:
    """Checks an appointment form, including the date and time formats."""
    missing = first_missing(data, form)
    if missing:
        return missing
    try:
        normalize_date(data.get("fecha"))
        normalize_time(data.get("hora"))
    except ValueError as exc:
        return str(exc)
    return None


def validate_password_change(current: str, new: str, confirm: str) -> Optional[str]:
    if _is_blank(current) or _is_blank(new) or _is_blank(confirm):
        return "Todos los campos son obligatorios"
    if new != confirm:
        return "Las contraseñas nuevas no coinciden"
    if len(new) < MIN_PASSWORD_LENGTH:
        return f"La nueva contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres"
    return None


def validate_login(email: str, password: str) -> Optional[str]:
    if _is_blank(email) or _is_blank(password):
        return "Por favor ingresa email y contraseña"
    return None
