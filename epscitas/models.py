"""
This module defines the data models consumed by the EPS Citas client.

The backend owns every record; these classes only give the client a clear,
validated view of what it receives and sends:
- `Role` and `AppointmentStatus`: the closed sets of user roles and appointment states.
- `User`: the authenticated person held by the session.
- `Appointment`: a cita, with its date and time normalized at the boundary.

Date and time values are validated once, here. Appointment times are always
sent to the backend as `HH:MM:SS`.
"""
# epscitas/models.py

import datetime
import re
from enum import Enum

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Role(str, Enum):
    ADMIN = "admin"
    MEDICO = "medico"
    PACIENTE = "paciente"

    @classmethod
    def parse(cls, value):
        """Returns the matching role, or None for an unknown or empty value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class AppointmentStatus(str, Enum):
    PROGRAMADA = "programada"
    CONFIRMADA = "confirmada"
    COMPLETADA = "completada"
    CANCELADA = "cancelada"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def label(self) -> str:
        return self.value.capitalize()


TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETADA, AppointmentStatus.CANCELADA})


def normalize_time(value) -> str:
    """Converts an appointment time to the canonical `HH:MM:SS` form.

    Args:
        value (str or datetime.time): `HH:MM`, `HH:MM:SS` or a `time` object.

    Returns:
        str: The time as `HH:MM:SS`.

    Raises:
        ValueError: If the value is not a valid time of day in one of those forms.
    """
    if isinstance(value, datetime.time):
        return value.strftime("%H:%M:%S")
    match = _TIME_RE.match(str(value or "").strip())
    if not match:
        raise ValueError("La hora debe estar en formato HH:MM o HH:MM:SS")
    hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValueError("La hora no es válida")
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def parse_time(value) -> datetime.time:
    return datetime.time.fromisoformat(normalize_time(value))


def normalize_date(value) -> str:
    """Converts an appointment date to `YYYY-MM-DD`.

    Raises:
        ValueError: If the value is not a real calendar date in that form.
    """
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    text = str(value or "").strip()
    # Backends often return full timestamps for date columns.
    if "T" in text:
        text = text.split("T", 1)[0]
    if not _DATE_RE.match(text):
        raise ValueError("La fecha debe estar en formato YYYY-MM-DD")
    try:
        return datetime.date.fromisoformat(text).isoformat()
    except ValueError as exc:
        raise ValueError("La fecha no es válida") from exc


def parse_date(value) -> datetime.date:
    return datetime.date.fromisoformat(normalize_date(value))


class User:
    """Represents the authenticated user held by the session.

    Attributes:
        id: Backend identifier.
        nombre (str): First name.
        apellido (str): Last name.
        email (str): Login email.
        telefono (str): Optional phone number.
        tipo (str): Role assigned by the backend at login.
        extra (dict): Any other fields the backend returned, kept for round-tripping.
    """
    _FIELDS = ("id", "nombre", "apellido", "email", "telefono", "tipo")

    def __init__(self, id, nombre, apellido, email, telefono=None, tipo=None, extra=None):
        self.id = id
        self.nombre = nombre
        self.apellido = apellido
        self.email = email
        self.telefono = telefono
        self.tipo = tipo
        self.extra = extra or {}

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        data = dict(data or {})
        extra = {k: v for k, v in data.items() if k not in cls._FIELDS}
        return cls(
            id=data.get("id"),
            nombre=data.get("nombre") or data.get("name") or "",
            apellido=data.get("apellido") or "",
            email=data.get("email") or "",
            telefono=data.get("telefono"),
            tipo=data.get("tipo"),
            extra=extra,
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "nombre": self.nombre,
            "apellido": self.apellido,
            "email": self.email,
            "telefono": self.telefono,
            "tipo": self.tipo,
        })
        return data

    @property
    def full_name(self) -> str:
        return f"{self.nombre} {self.apellido}".strip() or self.email

    @property
    def role(self):
        return Role.parse(self.tipo)


def _display_name(data, prefix):
    """Name of a related record, nested (`medico: {nombre, apellido}`) or flat (`medico_nombre`)."""
    value = data.get(prefix)
    if isinstance(value, dict):
        value = f"{value.get('nombre') or ''} {value.get('apellido') or ''}".strip()
    if value:
        return value
    flat = f"{data.get(prefix + '_nombre') or ''} {data.get(prefix + '_apellido') or ''}".strip()
    return flat or None


class Appointment:
    """Represents a cita as listed by the backend.

    Attributes:
        id: Backend identifier.
        paciente_id, medico_id, especialidad_id, consultorio_id: Foreign keys.
        fecha (datetime.date or None): Appointment date.
        hora (datetime.time or None): Appointment time.
        motivo (str): Reason for the visit.
        estado (AppointmentStatus or None): Current lifecycle state.
        observaciones (str): Doctor's notes, if any.
        paciente, medico, especialidad, consultorio (str): Display names sent alongside the keys.
    """

    def __init__(self, id, paciente_id, medico_id, especialidad_id=None, consultorio_id=None,
                 fecha=None, hora=None, motivo="", estado=AppointmentStatus.PROGRAMADA,
                 observaciones="", paciente=None, medico=None, especialidad=None, consultorio=None):
        self.id = id
        self.paciente_id = paciente_id
        self.medico_id = medico_id
        self.especialidad_id = especialidad_id
        self.consultorio_id = consultorio_id
        self.fecha = fecha
        self.hora = hora
        self.motivo = motivo
        self.estado = estado
        self.observaciones = observaciones
        self.paciente = paciente
        self.medico = medico
        self.especialidad = especialidad
        self.consultorio = consultorio

    @classmethod
    def from_dict(cls, data: dict) -> "Appointment":
        """Builds an appointment from a backend record.

        Unparseable dates or times are kept as None rather than rejected, since
        the record is only being displayed.
        """
        data = data or {}
        try:
            fecha = parse_date(data.get("fecha")) if data.get("fecha") else None
        except ValueError:
            fecha = None
        try:
            hora = parse_time(data.get("hora")) if data.get("hora") else None
        except ValueError:
            hora = None
        return cls(
            id=data.get("id"),
            paciente_id=data.get("paciente_id"),
            medico_id=data.get("medico_id"),
            especialidad_id=data.get("especialidad_id"),
            consultorio_id=data.get("consultorio_id"),
            fecha=fecha,
            hora=hora,
            motivo=data.get("motivo") or data.get("motivo_consulta") or "",
            estado=AppointmentStatus.parse(data.get("estado")),
            observaciones=data.get("observaciones") or "",
            paciente=_display_name(data, "paciente"),
            medico=_display_name(data, "medico"),
            especialidad=_display_name(data, "especialidad"),
            consultorio=_display_name(data, "consultorio"),
        )

    def to_payload(self) -> dict:
        """Returns the body sent to the backend when creating or updating this appointment."""
        payload = {
            "paciente_id": self.paciente_id,
            "medico_id": self.medico_id,
            "especialidad_id": self.especialidad_id,
            "fecha": normalize_date(self.fecha) if self.fecha else None,
            "hora": normalize_time(self.hora) if self.hora else None,
            "motivo": self.motivo,
            "estado": self.estado.value if self.estado else None,
        }
        if self.consultorio_id is not None:
            payload["consultorio_id"] = self.consultorio_id
        if self.observaciones:
            payload["observaciones"] = self.observaciones
        return payload

    @property
    def is_terminal(self) -> bool:
        return self.estado in TERMINAL_STATUSES
