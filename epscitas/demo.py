"""
Sample insurer records for demonstrations without a reachable backend.

They are only ever shown when demo mode is switched on explicitly
(`EPS_CITAS_DEMO_MODE=1`), and the screen labels them as sample data.
"""
# epscitas/demo.py

import logging

from epscitas.results import ServiceResult

logger = logging.getLogger(__name__)

SAMPLE_EPS = [
    {"id": 1, "nombre": "EPS Sura", "nit": "890123456-1", "direccion": "Calle 123 #45-67",
     "telefono": "6012345678", "email": "contacto@epssura.com"},
    {"id": 2, "nombre": "EPS Sanitas", "nit": "890123456-2", "direccion": "Carrera 78 #90-12",
     "telefono": "6012345679", "email": "contacto@epssanitas.com"},
    {"id": 3, "nombre": "EPS Coomeva", "nit": "890123456-3", "direccion": "Avenida 34 #56-78",
     "telefono": "6012345680", "email": "contacto@epscoomeva.com"},
    {"id": 4, "nombre": "EPS Compensar", "nit": "890123456-4", "direccion": "Calle 90 #12-34",
     "telefono": "6012345681", "email": "contacto@epscompensar.com"},
]


def load_eps(services, demo_mode: bool, cancel_token=None):
    """Lists insurers, substituting sample data only when demo mode allows it.

    Returns:
        tuple: `(ServiceResult, used_sample_data)`. Outside demo mode a failed
        load is returned unchanged.
    """
    result = services.eps.get_all(cancel_token=cancel_token)
    if result.success or not demo_mode or result.error_kind == "cancelled":
        return result, False
    logger.warning("EPS listing failed (%s); showing sample data in demo mode", result.message)
    return ServiceResult.ok([dict(record) for record in SAMPLE_EPS], result.message), True
