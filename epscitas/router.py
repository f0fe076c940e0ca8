"""
Role-based routing for the authenticated part of the app.

`dashboard_for` picks the dashboard mounted for a role, and `SCREENS` lists
every other screen with the roles allowed to open it. The UI renders menus
from `available_screens` and refuses to mount a screen when `can_access` says no.
"""
# epscitas/router.py

from enum import Enum
from typing import List

from epscitas.models import Role


class Dashboard(str, Enum):
    ADMIN = "admin_dashboard"
    MEDICO = "medico_dashboard"
    PACIENTE = "paciente_dashboard"


_DASHBOARDS = {
    Role.ADMIN: Dashboard.ADMIN,
    Role.MEDICO: Dashboard.MEDICO,
    Role.PACIENTE: Dashboard.PACIENTE,
}

DASHBOARD_TITLES = {
    Dashboard.ADMIN: "Panel Admin",
    Dashboard.MEDICO: "Panel Médico",
    Dashboard.PACIENTE: "Panel Paciente",
}


class Screen:
    """One navigable screen of the authenticated app.

    Attributes:
        key (str): Page key stored in the session state.
        title (str): Menu label.
        description (str): Caption shown under the menu entry.
        roles (frozenset): Roles allowed to open it.
    """

    def __init__(self, key, title, description, roles):
        self.key = key
        self.title = title
        self.description = description
        self.roles = frozenset(roles)


_ALL = (Role.ADMIN, Role.MEDICO, Role.PACIENTE)

SCREENS = [
    # Management screens
    Screen("citas", "Citas Médicas", "Consulta, edita y gestiona todas las citas.", [Role.ADMIN]),
    Screen("medicos", "Médicos", "Administra el personal médico.", [Role.ADMIN]),
    Screen("pacientes", "Pacientes", "Consulta y gestiona los pacientes registrados.", [Role.ADMIN, Role.MEDICO]),
    Screen("especialidades", "Especialidades", "Gestiona las especialidades médicas.", [Role.ADMIN]),
    Screen("consultorios", "Consultorios", "Gestiona los consultorios disponibles.", [Role.ADMIN]),
    Screen("eps", "EPS", "Gestiona las entidades promotoras de salud.", [Role.ADMIN]),
    Screen("administradores", "Administradores", "Gestiona las cuentas de administración.", [Role.ADMIN]),
    Screen("estadisticas", "Estadísticas", "Resumen general del sistema.", [Role.ADMIN]),
    # Doctor screens
    Screen("medico_citas", "Mis Citas", "Confirma y completa las citas asignadas.", [Role.MEDICO]),
    Screen("medico_agenda", "Mi Agenda", "Revisa tu agenda de atención.", [Role.MEDICO]),
    Screen("medico_reportes", "Reportes", "Indicadores de tu actividad.", [Role.MEDICO]),
    # Patient screens
    Screen("paciente_citas", "Mis Citas", "Consulta y cancela tus citas.", [Role.PACIENTE]),
    Screen("paciente_agendar", "Agendar Cita", "Solicita una nueva cita médica.", [Role.PACIENTE]),
    Screen("paciente_historial", "Mi Historial", "Revisa tus citas anteriores.", [Role.PACIENTE]),
    # Shared
    Screen("perfil", "Mi Perfil", "Actualiza tus datos personales.", _ALL),
    Screen("cambiar_password", "Cambiar Contraseña", "Actualiza tu contraseña de acceso.", _ALL),
]

_SCREENS_BY_KEY = {screen.key: screen for screen in SCREENS}


def dashboard_for(role) -> Dashboard:
    """Returns the dashboard for `role`, defaulting to the patient dashboard."""
    return _DASHBOARDS.get(Role.parse(role), Dashboard.PACIENTE)


def can_access(role, key: str) -> bool:
    """True only if `key` is a known screen and `role` matches one of its roles exactly."""
    screen = _SCREENS_BY_KEY.get(key)
    role = Role.parse(role)
    return screen is not None and role is not None and role in screen.roles


def available_screens(role) -> List[Screen]:
    role = Role.parse(role)
    if role is None:
        return []
    return [screen for screen in SCREENS if role in screen.roles]
