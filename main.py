"""
This is the main entry point for the EPS Citas Streamlit application.

This script handles the following key responsibilities:
- Sets the overall page configuration for the Streamlit app.
- Loads the client settings and configures logging.
- Builds the `AppContext` (storage, HTTP client, services, session store) once per
  browser session and restores that session's persisted login. The session id
  travels in the `sid` query parameter, so a reload keeps the login while other
  browsers get their own storage.
- Routes the user to the authentication pages or to the dashboard of their role.
"""
# main.py

import logging

import streamlit as st

import gui
from epscitas.config import load_settings
from epscitas.context import build_context
from epscitas.storage import new_session_id, session_path

# Set the basic configuration for the Streamlit page.
st.set_page_config(
    page_title="EPS Citas",
    layout="wide"
)

settings = load_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Session State Management
# Each browser session gets its own context and storage document; the persisted
# session is hydrated once, when the context is created.
if 'ctx' not in st.session_state:
    session_id = st.query_params.get("sid")
    try:
        session_path(settings.session_dir, session_id)
    except (TypeError, ValueError):
        session_id = new_session_id()
        st.query_params["sid"] = session_id
    st.session_state.ctx = build_context(settings, session_id)
if 'auth_page' not in st.session_state:
    st.session_state.auth_page = 'welcome'

ctx = st.session_state.ctx

# Main App Router
# A 401 on any earlier request purges storage; pick that up before rendering.
if ctx.session.refresh_from_storage():
    gui.show_main_app(ctx)
else:
    if st.session_state.auth_page == 'welcome':
        gui.show_welcome_page()
    elif st.session_state.auth_page == 'login':
        gui.show_login_form(ctx)
    elif st.session_state.auth_page == 'register':
        gui.show_register_form(ctx)
