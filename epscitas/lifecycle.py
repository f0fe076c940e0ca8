"""
This module is the single authority on appointment status transitions.

Every screen that shows actions on a cita asks `actions_for` which buttons to
render, and every transition goes through `transition`, which refuses anything
the lifecycle does not allow before a request is sent.

    programada -> confirmada -> completada
    programada | confirmada -> cancelada

`completada` and `cancelada` are terminal. Doctors and administrators may move
an appointment forward or cancel it; a patient may only cancel their own
`programada` appointment.
"""
# epscitas/lifecycle.py

import logging
from typing import List

from epscitas.models import Appointment, AppointmentStatus, Role, TERMINAL_STATUSES
from epscitas.results import ServiceResult

logger = logging.getLogger(__name__)

_FORWARD = {
    AppointmentStatus.PROGRAMADA: AppointmentStatus.CONFIRMADA,
    AppointmentStatus.CONFIRMADA: AppointmentStatus.COMPLETADA,
}

_CANCELLABLE = (AppointmentStatus.PROGRAMADA, AppointmentStatus.CONFIRMADA)

ACTION_LABELS = {
    AppointmentStatus.CONFIRMADA: "Confirmar",
    AppointmentStatus.COMPLETADA: "Completar",
    AppointmentStatus.CANCELADA: "Cancelar",
}


def _as_appointment(appointment) -> Appointment:
    if isinstance(appointment, Appointment):
        return appointment
    return Appointment.from_dict(appointment)


def _same_id(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def _owned_by_patient(cita: Appointment, user_id) -> bool:
    # Patient lists come from the patient-scoped endpoints, which may omit paciente_id.
    return cita.paciente_id is None or _same_id(cita.paciente_id, user_id)


def allowed_transitions(appointment, role, user_id=None) -> List[AppointmentStatus]:
    """Returns the statuses the given role may move this appointment to.

    Args:
        appointment (Appointment or dict): The appointment being displayed.
        role (Role or str): Role of the current session.
        user_id: Id of the current user; patients may only act on their own appointments.
            A row without `paciente_id` is taken as the patient's own.

    Returns:
        list[AppointmentStatus]: Possible targets, empty for terminal or unknown states.
    """
    cita = _as_appointment(appointment)
    role = Role.parse(role)
    current = cita.estado
    if current is None or current in TERMINAL_STATUSES or role is None:
        return []
    if role in (Role.MEDICO, Role.ADMIN):
        targets = [_FORWARD[current]] if current in _FORWARD else []
        if current in _CANCELLABLE:
            targets.append(AppointmentStatus.CANCELADA)
        return targets
    if role == Role.PACIENTE:
        if current == AppointmentStatus.PROGRAMADA and _owned_by_patient(cita, user_id):
            return [AppointmentStatus.CANCELADA]
    return []


def can_transition(appointment, target, role, user_id=None) -> bool:
    target = AppointmentStatus.parse(target)
    return target is not None and target in allowed_transitions(appointment, role, user_id)


def can_edit(appointment, role) -> bool:
    """Only administrators edit appointment details, and only before a terminal state."""
    cita = _as_appointment(appointment)
    return Role.parse(role) == Role.ADMIN and cita.estado is not None and cita.estado not in TERMINAL_STATUSES


def actions_for(appointment, role, user_id=None) -> List[tuple]:
    """Returns `(label, target_status)` pairs for the buttons a screen should render."""
    return [(ACTION_LABELS[target], target) for target in allowed_transitions(appointment, role, user_id)]


def transition(services, appointment, target, role, user_id=None) -> ServiceResult:
    """Moves an appointment to `target` after checking the lifecycle.

    The request goes to the endpoint of the acting role: doctors use
    `/medico/citas/{id}/estado`, patients `/paciente/citas/{id}/cancelar` and
    administrators update the appointment resource itself. The caller is
    expected to reload its list afterwards regardless of the outcome.

    Args:
        services (ServiceRegistry): Services bound to the current client.
        appointment (Appointment or dict): The appointment to move.
        target (AppointmentStatus or str): Desired status.
        role (Role or str): Role of the current session.
        user_id: Id of the current user.

    Returns:
        ServiceResult: The backend outcome, or a failure with kind `invalid_transition`.
    """
    cita = _as_appointment(appointment)
    target_status = AppointmentStatus.parse(target)
    role = Role.parse(role)
    if target_status is None or not can_transition(cita, target_status, role, user_id):
        current = cita.estado.value if cita.estado else "desconocido"
        wanted = target_status.value if target_status else target
        logger.warning("Rejected transition %s -> %s for role %s on cita %s", current, wanted, role, cita.id)
        return ServiceResult.fail(
            f"No se puede pasar una cita {current} a {wanted}",
            "invalid_transition",
        )
    if role == Role.MEDICO:
        return services.medico.actualizar_estado_cita(cita.id, target_status)
    if role == Role.PACIENTE:
        return services.paciente.cancelar_cita(cita.id)
    payload = cita.to_payload()
    payload["estado"] = target_status.value
    return services.citas.update(cita.id, payload)
