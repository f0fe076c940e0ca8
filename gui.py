"""
This module defines the graphical user interface (GUI) of EPS Citas using Streamlit.

It includes functions for rendering the public pages (welcome, login, patient
registration), the three role dashboards (administrator, doctor, patient) and
every screen reachable from them: entity management, appointment lists with
their status actions, scheduling, history, reports, profile and password change.

The main entry point for the authenticated UI is `show_main_app`, which mounts
the dashboard chosen by `epscitas.router` for the session's role. Which
appointment actions a screen offers is always decided by `epscitas.lifecycle`.
"""
# gui.py

import datetime

import pandas as pd
import streamlit as st
from streamlit_autorefresh import st_autorefresh

from epscitas import lifecycle, router, validation
from epscitas.demo import load_eps
from epscitas.http_client import CancelToken
from epscitas.models import Appointment, AppointmentStatus, Role, normalize_date, normalize_time
from epscitas.results import NETWORK_MESSAGE, SESSION_EXPIRED_MESSAGE
from epscitas.services import fetch_parallel

LOGIN_ROLES = [
    ("paciente", "Paciente"),
    ("medico", "Médico"),
    ("admin", "Administrador"),
]
DOCUMENT_TYPES = ["CC", "TI", "CE", "PA", "RC"]

# Field specs per managed collection: (field, label, kind).
ENTITY_FIELDS = {
    "medicos": [
        ("nombre", "Nombre", "text"),
        ("apellido", "Apellido", "text"),
        ("email", "Email", "text"),
        ("telefono", "Teléfono", "text"),
        ("numero_licencia", "Número de licencia", "text"),
        ("especialidad_id", "Especialidad", "especialidad"),
    ],
    "pacientes": [
        ("nombre", "Nombre", "text"),
        ("apellido", "Apellido", "text"),
        ("email", "Email", "text"),
        ("telefono", "Teléfono", "text"),
        ("fecha_nacimiento", "Fecha de nacimiento", "date"),
        ("tipo_documento", "Tipo de documento", "document"),
        ("numero_documento", "Número de documento", "text"),
        ("direccion", "Dirección", "text"),
    ],
    "administradores": [
        ("nombre", "Nombre", "text"),
        ("apellido", "Apellido", "text"),
        ("email", "Email", "text"),
        ("telefono", "Teléfono", "text"),
        ("password", "Contraseña", "password"),
    ],
    "especialidades": [
        ("nombre", "Nombre", "text"),
        ("descripcion", "Descripción", "textarea"),
    ],
    "consultorios": [
        ("nombre", "Nombre", "text"),
        ("ubicacion", "Ubicación", "text"),
        ("telefono", "Teléfono", "text"),
        ("numero", "Número", "text"),
        ("piso", "Piso", "text"),
        ("edificio", "Edificio", "text"),
        ("descripcion", "Descripción", "textarea"),
    ],
    "eps": [
        ("nombre", "Nombre", "text"),
        ("nit", "NIT", "text"),
        ("direccion", "Dirección", "text"),
        ("telefono", "Teléfono", "text"),
        ("email", "Email", "text"),
    ],
}

# Managed collection -> validation form and whether creation requires a password.
ENTITY_VALIDATION = {
    "medicos": ("medico", False),
    "pacientes": ("paciente", True),
    "administradores": ("administrador", True),
    "especialidades": ("especialidad", False),
    "consultorios": ("consultorio", False),
    "eps": ("eps", False),
}

STATUS_ICONS = {
    AppointmentStatus.PROGRAMADA: "🗓️",
    AppointmentStatus.CONFIRMADA: "✅",
    AppointmentStatus.COMPLETADA: "🏁",
    AppointmentStatus.CANCELADA: "❌",
}


def _rerun():
    """Triggers a rerun of the Streamlit app to refresh the UI."""
    st.rerun()


def _format_date(value):
    """Formats an appointment date for display.

    Args:
        value (datetime.date or str): The date to format.

    Returns:
        str: A formatted string (e.g., "Jan 01, 2024") or a placeholder.
    """
    if not value:
        return "Sin fecha"
    if isinstance(value, str):
        try:
            value = datetime.date.fromisoformat(normalize_date(value))
        except ValueError:
            return value
    return value.strftime("%b %d, %Y")


def _format_time(value):
    if not value:
        return "Sin hora"
    if isinstance(value, str):
        try:
            return normalize_time(value)[:5]
        except ValueError:
            return value
    return value.strftime("%H:%M")


def _page_cancel_token(page):
    """Returns the cancel token of `page`, cancelling the previous page's token on navigation.

    Args:
        page (str): Key of the page being rendered.

    Returns:
        CancelToken: Token to pass to every request issued by this page.
    """
    token = st.session_state.get("page_token")
    if st.session_state.get("page_token_owner") != page or token is None:
        if token is not None:
            token.cancel()
        token = CancelToken()
        st.session_state.page_token = token
        st.session_state.page_token_owner = page
    return token


def _show_failure(result):
    """Displays a failed service result, leaving the app on a session expiry.

    Args:
        result (ServiceResult): The failed result.
    """
    if result.error_kind == "cancelled":
        return
    if result.error_kind == "unauthorized":
        st.session_state.session_notice = SESSION_EXPIRED_MESSAGE
        st.session_state.page = None
        _rerun()
    st.error(result.message)


def _records_table(records, columns):
    """Renders a list of records as a table with the given columns.

    Args:
        records (list): Record dictionaries.
        columns (list): `(field, label)` pairs to show.
    """
    frame = pd.DataFrame(records)
    for field, _ in columns:
        if field not in frame.columns:
            frame[field] = None
    frame = frame[[field for field, _ in columns]].rename(columns=dict(columns))
    st.dataframe(frame, use_container_width=True, hide_index=True)


def _schedule_auto_refresh(key, interval_seconds):
    """Schedules a periodic rerun so appointment lists stay fresh.

    Args:
        key (str): A unique key for the autorefresh component.
        interval_seconds (int): The refresh interval in seconds.
    """
    st_autorefresh(interval=int(interval_seconds * 1000), key=key)
    st.caption(f"La lista se actualiza automáticamente cada {int(interval_seconds)} segundos.")


# Page navigation helpers
def set_page_welcome():
    """Sets the session state to display the welcome page."""
    st.session_state.auth_page = 'welcome'

def set_page_login():
    """Sets the session state to display the login page."""
    st.session_state.auth_page = 'login'

def set_page_register():
    """Sets the session state to display the registration page."""
    st.session_state.auth_page = 'register'


# Authentication Pages
def show_welcome_page():
    """Displays the welcome screen with login and registration options."""
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h1 style='text-align: center;'>Bienvenido a EPS Citas</h1>", unsafe_allow_html=True)
        st.markdown("<p style='text-align: center;'>Gestiona tus citas médicas de forma sencilla.</p>", unsafe_allow_html=True)
        notice = st.session_state.pop("session_notice", None)
        if notice:
            st.warning(notice)

        st.button("Iniciar Sesión", on_click=set_page_login, use_container_width=True, type="primary")
        st.button("Registrarse como Paciente", on_click=set_page_register, use_container_width=True)


def show_login_form(ctx):
    """Displays the login form and handles authentication.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
    """
    st.button("← Volver", on_click=set_page_welcome)
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h2 style='text-align: center;'>Iniciar Sesión</h2>", unsafe_allow_html=True)
        if "backend_online" not in st.session_state:
            st.session_state.backend_online = ctx.client.check_connection()
        if not st.session_state.backend_online:
            st.warning(NETWORK_MESSAGE)
        notice = st.session_state.pop("session_notice", None)
        if notice:
            st.warning(notice)
        with st.form("login_form"):
            email = st.text_input("Email")
            password = st.text_input("Contraseña", type="password")
            role_hint = st.selectbox(
                "Ingresar como",
                [value for value, _ in LOGIN_ROLES],
                format_func=lambda value: dict(LOGIN_ROLES)[value],
            )
            submitted = st.form_submit_button("Ingresar", use_container_width=True)

            if submitted:
                problem = validation.validate_login(email, password)
                if problem:
                    st.error(problem)
                else:
                    with st.spinner("Iniciando sesión..."):
                        result = ctx.session.login(email.strip(), password, role_hint)
                    if result.success:
                        st.session_state.auth_page = 'welcome'
                        st.session_state.page = None
                        _rerun()
                    else:
                        st.error(result.message)


def show_register_form(ctx):
    """Displays the patient self-registration form.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
    """
    st.button("← Volver", on_click=set_page_welcome)
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h2 style='text-align: center;'>Registro de Paciente</h2>", unsafe_allow_html=True)
        with st.form("register_form"):
            nombre = st.text_input("Nombre")
            apellido = st.text_input("Apellido")
            email = st.text_input("Email")
            telefono = st.text_input("Teléfono")
            password = st.text_input("Contraseña", type="password", help="Mínimo 6 caracteres.")
            fecha_nacimiento = st.date_input(
                "Fecha de nacimiento", value=None,
                min_value=datetime.date(1900, 1, 1), max_value=datetime.date.today(),
            )
            tipo_documento = st.selectbox("Tipo de documento", DOCUMENT_TYPES)
            numero_documento = st.text_input("Número de documento")
            direccion = st.text_input("Dirección")
            submitted = st.form_submit_button("Registrarse", use_container_width=True)

            if submitted:
                data = {
                    "nombre": nombre, "apellido": apellido, "email": email, "telefono": telefono,
                    "password": password,
                    "fecha_nacimiento": fecha_nacimiento.isoformat() if fecha_nacimiento else "",
                    "tipo_documento": tipo_documento, "numero_documento": numero_documento,
                    "direccion": direccion,
                }
                problem = validation.validate_registration(data)
                if problem:
                    st.error(problem)
                else:
                    with st.spinner("Registrando..."):
                        result = ctx.services.auth.register_paciente(data)
                    if result.success:
                        st.success("Paciente registrado correctamente. Ya puedes iniciar sesión.")
                    else:
                        st.error(result.message)


# Main Application UI
def show_main_app(ctx):
    """
    The main application router that displays the dashboard of the session's role.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
    """
    session = ctx.session
    user = session.user
    role = session.role

    if 'page' not in st.session_state:
        st.session_state.page = None

    # Reset the page if the role changes or on the first load.
    if st.session_state.get('current_role') != role:
        st.session_state.page = None
        st.session_state.current_role = role

    dashboard = router.dashboard_for(role)
    page = st.session_state.page

    if page is None:
        _page_cancel_token("dashboard")
        _show_dashboard_header(ctx, dashboard)
        if dashboard == router.Dashboard.ADMIN:
            _render_admin_summary(ctx)
        elif dashboard == router.Dashboard.MEDICO:
            _render_medico_summary(ctx)
        else:
            _render_paciente_summary(ctx)
        _show_main_menu(ctx, router.available_screens(role))
        return

    if not router.can_access(role, page):
        st.session_state.page = None
        _rerun()

    if st.button("← Volver al Panel"):
        st.session_state.page = None
        _rerun()

    renderer = PAGE_RENDERERS.get(page)
    if renderer is None:
        st.session_state.page = None
        _rerun()
    renderer(ctx)


def _show_dashboard_header(ctx, dashboard):
    user = ctx.session.user
    st.markdown(f"## {router.DASHBOARD_TITLES[dashboard]} · {user.full_name}")
    st.caption(user.email)
    st.divider()


def _show_main_menu(ctx, screens):
    """
    Renders the menu of the current dashboard.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
        screens (list): The `router.Screen` entries available to the role.
    """
    role = ctx.session.role
    cols = st.columns(2)
    for idx, screen in enumerate(screens):
        with cols[idx % 2]:
            if st.button(screen.title, key=f"{role.value}_menu_{screen.key}", use_container_width=True):
                st.session_state.page = screen.key
                _rerun()
            st.caption(screen.description)
    st.divider()
    if st.button("Cerrar Sesión", key=f"{role.value}_logout_btn", use_container_width=True):
        with st.spinner("Cerrando sesión..."):
            ctx.session.logout()
        st.session_state.page = None
        st.session_state.auth_page = 'welcome'
        _rerun()


def _render_admin_summary(ctx):
    """Shows the headline counters on the administrator dashboard."""
    with st.spinner("Cargando estadísticas..."):
        summary = ctx.services.estadisticas.resumen()
    cols = st.columns(4)
    cols[0].metric("Médicos", summary["medicos"]["total"])
    cols[1].metric("Pacientes", summary["pacientes"]["total"])
    cols[2].metric("Citas", summary["citas"]["total"])
    cols[3].metric("Citas hoy", summary["citas"]["hoy"])
    st.divider()


def _render_medico_summary(ctx):
    token = _page_cancel_token("dashboard")
    result = ctx.services.medico.mis_citas(cancel_token=token)
    if not result.success:
        _show_failure(result)
        return
    counts = ctx.services.estadisticas.count_citas(_as_list(result.data))
    cols = st.columns(3)
    cols[0].metric("Citas hoy", counts["hoy"])
    cols[1].metric("Por confirmar", counts["programadas"])
    cols[2].metric("Confirmadas", counts["confirmadas"])
    st.divider()


def _render_paciente_summary(ctx):
    token = _page_cancel_token("dashboard")
    result = ctx.services.paciente.proxima_cita(ctx.session.user_id, cancel_token=token)
    st.subheader("Próxima cita")
    if not result.success:
        _show_failure(result)
        return
    if not result.data:
        st.info("No tienes citas próximas.")
    else:
        cita = Appointment.from_dict(result.data)
        st.write(f"**{_format_date(cita.fecha)}** a las **{_format_time(cita.hora)}**")
        if cita.medico:
            st.write(f"Médico: {cita.medico}")
        if cita.especialidad:
            st.write(f"Especialidad: {cita.especialidad}")
    st.divider()


def _as_list(data):
    """Some role endpoints answer with a bare list, others wrap it once more."""
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return data if isinstance(data, list) else []


# Appointment screens
def _render_appointment_entry(ctx, cita_data, reload_key, show_patient=True, show_doctor=True):
    """Renders one appointment with the actions the lifecycle allows for the session.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
        cita_data (dict): The appointment record as listed by the backend.
        reload_key (str): Prefix for widget keys on this page.
        show_patient (bool): Whether to show the patient name.
        show_doctor (bool): Whether to show the doctor name.
    """
    session = ctx.session
    cita = Appointment.from_dict(cita_data)
    icon = STATUS_ICONS.get(cita.estado, "•")
    estado_label = cita.estado.label if cita.estado else "Desconocido"
    title = f"{icon} {_format_date(cita.fecha)} · {_format_time(cita.hora)} · {estado_label}"
    with st.expander(title):
        if show_patient and cita.paciente:
            st.write(f"**Paciente:** {cita.paciente}")
        if show_doctor and cita.medico:
            st.write(f"**Médico:** {cita.medico}")
        if cita.especialidad:
            st.write(f"**Especialidad:** {cita.especialidad}")
        if cita.consultorio:
            st.write(f"**Consultorio:** {cita.consultorio}")
        st.write(f"**Motivo:** {cita.motivo or 'N/A'}")
        if cita.observaciones:
            st.info(cita.observaciones)

        actions = lifecycle.actions_for(cita, session.role, session.user_id)
        if actions:
            cols = st.columns(len(actions))
            for col, (label, target) in zip(cols, actions):
                if col.button(label, key=f"{reload_key}_{cita.id}_{target.value}"):
                    with st.spinner("Actualizando cita..."):
                        result = lifecycle.transition(ctx.services, cita, target, session.role, session.user_id)
                    if result.success:
                        st.session_state.flash = f"Cita {target.value} correctamente"
                    else:
                        st.session_state.flash_error = result.message
                        if result.error_kind == "unauthorized":
                            _show_failure(result)
                    # Reload the whole list whatever the outcome.
                    _rerun()

        if session.role == Role.MEDICO and not cita.is_terminal:
            with st.form(f"{reload_key}_obs_{cita.id}", clear_on_submit=True):
                observaciones = st.text_area("Agregar observaciones")
                if st.form_submit_button("Guardar observaciones"):
                    if not observaciones.strip():
                        st.error("Las observaciones no pueden estar vacías")
                    else:
                        result = ctx.services.medico.agregar_observaciones(cita.id, observaciones.strip())
                        if result.success:
                            st.session_state.flash = "Observaciones guardadas"
                            _rerun()
                        else:
                            _show_failure(result)

        if session.role == Role.ADMIN:
            _render_admin_appointment_controls(ctx, cita, reload_key)


def _show_flash():
    message = st.session_state.pop("flash", None)
    if message:
        st.success(message)
    error = st.session_state.pop("flash_error", None)
    if error:
        st.error(error)


def _load_appointment_lookups(ctx):
    """Loads patients, doctors, specialties and offices in parallel for appointment forms."""
    services = ctx.services
    results = fetch_parallel({
        "pacientes": services.pacientes.get_all,
        "medicos": services.medicos.get_all,
        "especialidades": services.especialidades.get_all,
        "consultorios": services.consultorios.get_all,
    })
    return {name: _as_options(result.as_list()) for name, result in results.items()}


def _as_options(records):
    options = {}
    for record in records:
        name = f"{record.get('nombre', '')} {record.get('apellido', '')}".strip()
        options[record.get("id")] = name or str(record.get("id"))
    return options


def _select_option(label, options, current=None, key=None):
    ids = list(options.keys())
    index = ids.index(current) if current in ids else None
    return st.selectbox(label, ids, index=index, format_func=lambda value: options.get(value, value), key=key)


def _appointment_form(ctx, form_key, lookups, cita=None):
    """Renders the create/edit appointment form.

    Returns:
        dict or None: The submitted payload once it passes validation.
    """
    with st.form(form_key):
        paciente_id = _select_option("Paciente", lookups["pacientes"], cita.paciente_id if cita else None)
        medico_id = _select_option("Médico", lookups["medicos"], cita.medico_id if cita else None)
        especialidad_id = _select_option("Especialidad", lookups["especialidades"], cita.especialidad_id if cita else None)
        consultorio_id = _select_option("Consultorio", lookups["consultorios"], cita.consultorio_id if cita else None)
        fecha = st.date_input("Fecha", value=cita.fecha if cita and cita.fecha else datetime.date.today())
        hora = st.time_input("Hora", value=cita.hora if cita and cita.hora else datetime.time(8, 0), step=900)
        motivo = st.text_area("Motivo", value=cita.motivo if cita else "")
        submitted = st.form_submit_button("Guardar")
    if not submitted:
        return None
    data = {
        "paciente_id": paciente_id, "medico_id": medico_id, "especialidad_id": especialidad_id,
        "consultorio_id": consultorio_id, "fecha": fecha, "hora": hora, "motivo": motivo,
    }
    problem = validation.validate_appointment(data)
    if problem:
        st.error(problem)
        return None
    payload = Appointment(
        id=cita.id if cita else None, paciente_id=paciente_id, medico_id=medico_id,
        especialidad_id=especialidad_id, consultorio_id=consultorio_id, fecha=fecha, hora=hora,
        motivo=motivo.strip(), estado=cita.estado if cita else AppointmentStatus.PROGRAMADA,
    ).to_payload()
    return payload


def _render_admin_appointment_controls(ctx, cita, reload_key):
    cols = st.columns(2)
    if lifecycle.can_edit(cita, ctx.session.role):
        if cols[0].button("Editar", key=f"{reload_key}_edit_{cita.id}"):
            st.session_state.editing_cita = cita.id
            _rerun()
    if cols[1].button("Eliminar", key=f"{reload_key}_delete_{cita.id}", type="secondary"):
        result = ctx.services.citas.delete(cita.id)
        if result.success:
            st.session_state.flash = "Cita eliminada correctamente"
            _rerun()
        else:
            _show_failure(result)

    if st.session_state.get("editing_cita") == cita.id:
        lookups = _load_appointment_lookups(ctx)
        payload = _appointment_form(ctx, f"edit_cita_{cita.id}", lookups, cita)
        if payload:
            result = ctx.services.citas.update(cita.id, payload)
            if result.success:
                st.session_state.editing_cita = None
                st.session_state.flash = "Cita actualizada correctamente"
                _rerun()
            else:
                _show_failure(result)


def _render_citas_page(ctx):
    """Renders the administrator's list of every appointment.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
    """
    st.markdown("<h2 style='text-align: center;'>Citas Médicas</h2>", unsafe_allow_html=True)
    _show_flash()
    token = _page_cancel_token("citas")
    with st.spinner("Cargando citas..."):
        result = ctx.services.citas.get_all(cancel_token=token)
    if not result.success:
        _show_failure(result)
        return

    status_filter = st.selectbox(
        "Filtrar por estado", [None] + list(AppointmentStatus),
        format_func=lambda value: "Todas" if value is None else value.label,
    )
    citas = result.as_list()
    if status_filter is not None:
        citas = [c for c in citas if AppointmentStatus.parse(c.get("estado")) == status_filter]
    if not citas:
        st.info("No hay citas registradas.")
    for cita in citas:
        _render_appointment_entry(ctx, cita, "admin_citas")

    st.divider()
    with st.expander("Crear nueva cita"):
        lookups = _load_appointment_lookups(ctx)
        payload = _appointment_form(ctx, "create_cita_form", lookups)
        if payload:
            created = ctx.services.citas.create(payload)
            if created.success:
                st.session_state.flash = "Cita creada correctamente"
                _rerun()
            else:
                _show_failure(created)
    _schedule_auto_refresh("admin_citas_refresh", ctx.settings.refresh_seconds)


def _render_medico_citas_page(ctx):
    st.markdown("<h2 style='text-align: center;'>Mis Citas</h2>", unsafe_allow_html=True)
    _show_flash()
    token = _page_cancel_token("medico_citas")
    with st.spinner("Cargando citas..."):
        result = ctx.services.medico.mis_citas(cancel_token=token)
    if not result.success:
        _show_failure(result)
        return
    citas = _as_list(result.data)
    if not citas:
        st.info("No tienes citas asignadas.")
    for cita in citas:
        _render_appointment_entry(ctx, cita, "medico_citas", show_doctor=False)
    _schedule_auto_refresh("medico_citas_refresh", ctx.settings.refresh_seconds)


def _render_medico_agenda_page(ctx):
    """Renders the doctor's agenda grouped by day."""
    st.markdown("<h2 style='text-align: center;'>Mi Agenda</h2>", unsafe_allow_html=True)
    token = _page_cancel_token("medico_agenda")
    with st.spinner("Cargando agenda..."):
        result = ctx.services.medico.mi_agenda(cancel_token=token)
    if not result.success:
        _show_failure(result)
        return
    citas = [Appointment.from_dict(c) for c in _as_list(result.data)]
    if not citas:
        st.info("Tu agenda está vacía.")
        return
    by_day = {}
    for cita in citas:
        by_day.setdefault(cita.fecha, []).append(cita)
    for day in sorted(by_day, key=lambda d: d or datetime.date.max):
        st.subheader(_format_date(day))
        rows = [
            {"hora": _format_time(c.hora), "paciente": c.paciente, "motivo": c.motivo,
             "estado": c.estado.label if c.estado else ""}
            for c in sorted(by_day[day], key=lambda c: c.hora or datetime.time.max)
        ]
        _records_table(rows, [("hora", "Hora"), ("paciente", "Paciente"), ("motivo", "Motivo"), ("estado", "Estado")])


def _render_medico_reportes_page(ctx):
    """Renders the doctor's activity report with a CSV export."""
    st.markdown("<h2 style='text-align: center;'>Reportes</h2>", unsafe_allow_html=True)
    token = _page_cancel_token("medico_reportes")
    results = fetch_parallel({
        "reportes": lambda: ctx.services.medico.reportes(cancel_token=token),
        "citas": lambda: ctx.services.medico.mis_citas(cancel_token=token),
    })
    citas_result = results["citas"]
    if not citas_result.success:
        _show_failure(citas_result)
        return
    citas = _as_list(citas_result.data)
    counts = ctx.services.estadisticas.count_citas(citas)
    cols = st.columns(4)
    cols[0].metric("Total", counts["total"])
    cols[1].metric("Completadas", counts["completadas"])
    cols[2].metric("Canceladas", counts["canceladas"])
    cols[3].metric("Pendientes", counts["programadas"] + counts["confirmadas"])

    reportes = results["reportes"]
    if reportes.success and isinstance(reportes.data, dict) and reportes.data:
        st.subheader("Indicadores del servidor")
        st.json(reportes.data)

    if citas:
        frame = pd.DataFrame(citas)
        st.download_button(
            "Descargar citas (CSV)", frame.to_csv(index=False).encode("utf-8"),
            f"eps_citas_reporte_{datetime.date.today()}.csv", "text/csv",
        )


def _render_paciente_citas_page(ctx):
    st.markdown("<h2 style='text-align: center;'>Mis Citas</h2>", unsafe_allow_html=True)
    _show_flash()
    token = _page_cancel_token("paciente_citas")
    with st.spinner("Cargando citas..."):
        result = ctx.services.paciente.mis_citas(ctx.session.user_id, cancel_token=token)
    if not result.success:
        _show_failure(result)
        return
    citas = _as_list(result.data)
    if not citas:
        st.info("No tienes citas registradas.")
    for cita in citas:
        _render_appointment_entry(ctx, cita, "paciente_citas", show_patient=False)
    _schedule_auto_refresh("paciente_citas_refresh", ctx.settings.refresh_seconds)


def _render_paciente_agendar_page(ctx):
    """Renders the patient's appointment request form."""
    st.markdown("<h2 style='text-align: center;'>Agendar Cita</h2>", unsafe_allow_html=True)
    _show_flash()
    token = _page_cancel_token("paciente_agendar")
    results = fetch_parallel({
        "medicos": lambda: ctx.services.paciente.medicos_disponibles(cancel_token=token),
        "especialidades": lambda: ctx.services.especialidades.get_all(cancel_token=token),
    })
    for result in results.values():
        if not result.success:
            _show_failure(result)
            return
    medicos = _as_options(_as_list(results["medicos"].data))
    especialidades = _as_options(results["especialidades"].as_list())

    with st.form("agendar_cita_form"):
        especialidad_id = _select_option("Especialidad", especialidades)
        medico_id = _select_option("Médico", medicos)
        fecha = st.date_input("Fecha", min_value=datetime.date.today())
        hora = st.time_input("Hora", value=datetime.time(8, 0), step=900)
        motivo = st.text_area("Motivo de la consulta")
        submitted = st.form_submit_button("Agendar")

    if submitted:
        data = {"medico_id": medico_id, "especialidad_id": especialidad_id,
                "fecha": fecha, "hora": hora, "motivo": motivo}
        problem = validation.validate_appointment(data, form="agendar")
        if problem:
            st.error(problem)
            return
        payload = {
            "paciente_id": ctx.session.user_id,
            "medico_id": medico_id,
            "especialidad_id": especialidad_id,
            "fecha": normalize_date(fecha),
            "hora": normalize_time(hora),
            "motivo": motivo.strip(),
        }
        with st.spinner("Agendando cita..."):
            result = ctx.services.paciente.agendar_cita(payload)
        if result.success:
            st.session_state.flash = "Cita agendada correctamente"
            _rerun()
        else:
            _show_failure(result)


def _render_paciente_historial_page(ctx):
    st.markdown("<h2 style='text-align: center;'>Mi Historial Médico</h2>", unsafe_allow_html=True)
    token = _page_cancel_token("paciente_historial")
    with st.spinner("Cargando historial..."):
        result = ctx.services.paciente.mi_historial(ctx.session.user_id, cancel_token=token)
    if not result.success:
        _show_failure(result)
        return
    citas = [Appointment.from_dict(c) for c in _as_list(result.data)]
    if not citas:
        st.info("Aún no tienes historial de citas.")
        return
    rows = [
        {"fecha": _format_date(c.fecha), "hora": _format_time(c.hora), "medico": c.medico,
         "especialidad": c.especialidad, "motivo": c.motivo,
         "estado": c.estado.label if c.estado else "", "observaciones": c.observaciones}
        for c in citas
    ]
    _records_table(rows, [
        ("fecha", "Fecha"), ("hora", "Hora"), ("medico", "Médico"), ("especialidad", "Especialidad"),
        ("motivo", "Motivo"), ("estado", "Estado"), ("observaciones", "Observaciones"),
    ])


# Entity management screens
def _entity_form(form_key, fields, record=None, lookups=None, creating=False):
    """Renders a create/edit form for one managed record.

    Args:
        form_key (str): Unique form key.
        fields (list): `(field, label, kind)` specs from `ENTITY_FIELDS`.
        record (dict, optional): Current values when editing.
        lookups (dict, optional): Options for selector fields.
        creating (bool): Whether this is a creation form.

    Returns:
        dict or None: Submitted values, or None if the form was not submitted.
    """
    record = record or {}
    lookups = lookups or {}
    values = {}
    with st.form(form_key, clear_on_submit=creating):
        for field, label, kind in fields:
            current = record.get(field)
            widget_key = f"{form_key}_{field}"
            if kind == "textarea":
                values[field] = st.text_area(label, value=current or "", key=widget_key)
            elif kind == "password":
                hint = "Mínimo 6 caracteres." if creating else "Déjala vacía para conservar la actual."
                values[field] = st.text_input(label, type="password", help=hint, key=widget_key)
            elif kind == "date":
                try:
                    default = datetime.date.fromisoformat(normalize_date(current)) if current else None
                except ValueError:
                    default = None
                picked = st.date_input(label, value=default, min_value=datetime.date(1900, 1, 1), key=widget_key)
                values[field] = picked.isoformat() if picked else ""
            elif kind == "document":
                index = DOCUMENT_TYPES.index(current) if current in DOCUMENT_TYPES else 0
                values[field] = st.selectbox(label, DOCUMENT_TYPES, index=index, key=widget_key)
            elif kind == "especialidad":
                values[field] = _select_option(label, lookups.get("especialidades", {}), current, key=widget_key)
            else:
                values[field] = st.text_input(label, value=str(current or ""), key=widget_key)
        submitted = st.form_submit_button("Crear" if creating else "Guardar cambios")
    if not submitted:
        return None
    if not creating and not values.get("password"):
        values.pop("password", None)
    return {k: v.strip() if isinstance(v, str) else v for k, v in values.items()}


def _render_resource_page(ctx, resource, title):
    """Renders the list, edit and create UI for one managed collection.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
        resource (str): Collection name, a key of `ENTITY_FIELDS`.
        title (str): Page title.
    """
    st.markdown(f"<h2 style='text-align: center;'>{title}</h2>", unsafe_allow_html=True)
    _show_flash()
    service = ctx.services.resource(resource)
    fields = ENTITY_FIELDS[resource]
    form_name, password_on_create = ENTITY_VALIDATION[resource]
    token = _page_cancel_token(resource)

    used_sample = False
    with st.spinner(f"Cargando {title.lower()}..."):
        if resource == "eps":
            result, used_sample = load_eps(ctx.services, ctx.settings.demo_mode, cancel_token=token)
        else:
            result = service.get_all(cancel_token=token)
    if not result.success:
        _show_failure(result)
        return
    if used_sample:
        st.warning("Modo demostración: el servidor no respondió, se muestran datos de ejemplo.")

    lookups = {}
    if any(kind == "especialidad" for _, _, kind in fields):
        lookups["especialidades"] = _as_options(ctx.services.especialidades.get_all(cancel_token=token).as_list())

    records = result.as_list()
    search = st.text_input("Buscar", key=f"{resource}_search")
    if search:
        term = search.strip().lower()
        records = [r for r in records if any(term in str(v).lower() for v in r.values())]
    if not records:
        st.info("No hay registros para mostrar.")

    for record in records:
        record_id = record.get("id")
        name = f"{record.get('nombre', '')} {record.get('apellido', '')}".strip() or f"#{record_id}"
        with st.expander(name):
            for field, label, kind in fields:
                if kind == "password":
                    continue
                value = record.get(field)
                if kind == "especialidad":
                    value = lookups.get("especialidades", {}).get(value, value)
                st.write(f"**{label}:** {value if value not in (None, '') else 'N/A'}")
            if used_sample:
                continue
            cols = st.columns(2)
            if cols[0].button("Editar", key=f"{resource}_edit_{record_id}"):
                st.session_state[f"editing_{resource}"] = record_id
                _rerun()
            if cols[1].button("Eliminar", key=f"{resource}_delete_{record_id}", type="secondary"):
                deleted = service.delete(record_id)
                if deleted.success:
                    st.session_state.flash = f"{name} eliminado correctamente"
                    _rerun()
                else:
                    _show_failure(deleted)

            if st.session_state.get(f"editing_{resource}") == record_id:
                values = _entity_form(f"edit_{resource}_{record_id}", fields, record, lookups)
                if values is not None:
                    problem = validation.validate_record(form_name, values)
                    if problem:
                        st.error(problem)
                    else:
                        updated = service.update(record_id, values)
                        if updated.success:
                            st.session_state[f"editing_{resource}"] = None
                            st.session_state.flash = f"{name} actualizado correctamente"
                            _rerun()
                        else:
                            _show_failure(updated)

    if used_sample:
        return
    st.divider()
    with st.expander(f"Crear {service.label}"):
        create_fields = list(fields)
        if password_on_create and not any(kind == "password" for _, _, kind in fields):
            create_fields.append(("password", "Contraseña", "password"))
        values = _entity_form(f"create_{resource}", create_fields, lookups=lookups, creating=True)
        if values is not None:
            problem = validation.validate_record(form_name, values, require_password=password_on_create)
            if problem:
                st.error(problem)
            else:
                created = service.create(values)
                if created.success:
                    st.session_state.flash = f"{service.label.capitalize()} creado correctamente"
                    _rerun()
                else:
                    _show_failure(created)


def _render_pacientes_page(ctx):
    """Administrators manage every patient; doctors only list their own."""
    if ctx.session.role != Role.MEDICO:
        _render_resource_page(ctx, "pacientes", "Pacientes")
        return
    st.markdown("<h2 style='text-align: center;'>Mis Pacientes</h2>", unsafe_allow_html=True)
    token = _page_cancel_token("pacientes")
    result = ctx.services.medico.mis_pacientes(cancel_token=token)
    if not result.success:
        _show_failure(result)
        return
    pacientes = _as_list(result.data)
    if not pacientes:
        st.info("Aún no tienes pacientes asignados.")
        return
    _records_table(pacientes, [
        ("nombre", "Nombre"), ("apellido", "Apellido"), ("email", "Email"),
        ("telefono", "Teléfono"), ("numero_documento", "Documento"),
    ])


def _render_estadisticas_page(ctx):
    """Renders the administrator's statistics overview."""
    st.markdown("<h2 style='text-align: center;'>Estadísticas</h2>", unsafe_allow_html=True)
    with st.spinner("Cargando estadísticas..."):
        summary = ctx.services.estadisticas.resumen()
    st.subheader("Citas")
    citas = summary["citas"]
    cols = st.columns(3)
    cols[0].metric("Total", citas["total"])
    cols[1].metric("Hoy", citas["hoy"])
    cols[2].metric("Completadas", citas["completadas"])
    chart = pd.DataFrame(
        {"Citas": [citas[status.value + "s"] for status in AppointmentStatus]},
        index=[status.label for status in AppointmentStatus],
    )
    st.bar_chart(chart)

    st.subheader("Personas")
    cols = st.columns(3)
    cols[0].metric("Médicos activos", summary["medicos"]["activos"], f"de {summary['medicos']['total']}")
    cols[1].metric("Pacientes activos", summary["pacientes"]["activos"], f"de {summary['pacientes']['total']}")
    cols[2].metric("Especialidades", summary["especialidades"]["total"])

    server = ctx.services.admin.estadisticas(cancel_token=_page_cancel_token("estadisticas"))
    if server.success and isinstance(server.data, dict) and server.data:
        st.subheader("Indicadores del servidor")
        st.json(server.data)


# Profile screens
def _render_profile_page(ctx):
    """Renders the profile page for viewing and editing personal details.

    Args:
        ctx (AppContext): The wired collaborators of this UI session.
    """
    st.markdown("<h2 style='text-align: center;'>Mi Perfil</h2>", unsafe_allow_html=True)
    user = ctx.session.user
    st.write(f"**Rol:** {dict(LOGIN_ROLES).get(user.tipo, user.tipo)}")

    with st.form("profile_form"):
        nombre = st.text_input("Nombre", value=user.nombre or "")
        apellido = st.text_input("Apellido", value=user.apellido or "")
        email = st.text_input("Email", value=user.email or "")
        telefono = st.text_input("Teléfono", value=user.telefono or "")
        submitted = st.form_submit_button("Actualizar Perfil")
        if submitted:
            data = {"nombre": nombre.strip(), "apellido": apellido.strip(),
                    "email": email.strip(), "telefono": telefono.strip()}
            problem = validation.first_missing(data, "administrador")
            if not problem and not validation.is_valid_email(data["email"]):
                problem = "El formato del email no es válido"
            if problem:
                st.error(problem)
            else:
                payload = dict(data, user_id=user.id, user_type=user.tipo)
                with st.spinner("Actualizando perfil..."):
                    result = ctx.services.profile.update_profile(payload)
                if result.success:
                    ctx.session.update_user(data)
                    st.success("Perfil actualizado correctamente")
                else:
                    _show_failure(result)


def _render_change_password_page(ctx):
    st.markdown("<h2 style='text-align: center;'>Cambiar Contraseña</h2>", unsafe_allow_html=True)
    user = ctx.session.user
    with st.form("change_password_form", clear_on_submit=True):
        current = st.text_input("Contraseña actual", type="password")
        new = st.text_input("Nueva contraseña", type="password")
        confirm = st.text_input("Confirmar nueva contraseña", type="password")
        submitted = st.form_submit_button("Cambiar Contraseña")
    if submitted:
        problem = validation.validate_password_change(current, new, confirm)
        if problem:
            st.error(problem)
            return
        payload = {
            "email": user.email,
            "currentPassword": current,
            "newPassword": new,
            "user_id": user.id,
            "user_type": user.tipo,
        }
        with st.spinner("Cambiando contraseña..."):
            result = ctx.services.profile.change_password(payload)
        if result.success:
            st.success("Contraseña cambiada correctamente")
        else:
            _show_failure(result)


PAGE_RENDERERS = {
    "citas": _render_citas_page,
    "medicos": lambda ctx: _render_resource_page(ctx, "medicos", "Médicos"),
    "pacientes": _render_pacientes_page,
    "especialidades": lambda ctx: _render_resource_page(ctx, "especialidades", "Especialidades"),
    "consultorios": lambda ctx: _render_resource_page(ctx, "consultorios", "Consultorios"),
    "eps": lambda ctx: _render_resource_page(ctx, "eps", "EPS"),
    "administradores": lambda ctx: _render_resource_page(ctx, "administradores", "Administradores"),
    "estadisticas": _render_estadisticas_page,
    "medico_citas": _render_medico_citas_page,
    "medico_agenda": _render_medico_agenda_page,
    "medico_reportes": _render_medico_reportes_page,
    "paciente_citas": _render_paciente_citas_page,
    "paciente_agendar": _render_paciente_agendar_page,
    "paciente_historial": _render_paciente_historial_page,
    "perfil": _render_profile_page,
    "cambiar_password": _render_change_password_page,
}
