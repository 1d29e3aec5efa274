# app/main.py
import logging

from fastapi import FastAPI

from app.api.routes import groupme, health, internal, webhooks
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.appointment_poller import (
    get_appointment_poller,
    get_appointment_poller_if_built,
)
from app.services.crm_client import CrmClientError

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Application factory for the Appointment Relay service.
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Relays BuilderPrime CRM activity into a GroupMe channel.\n"
            "A background poller announces newly created appointments exactly once,\n"
            "and a webhook receiver forwards lead, appointment, project and estimate events."
        ),
        version="0.1.0",
    )

    # Routers
    app.include_router(health.router)
    app.include_router(webhooks.router)
    app.include_router(groupme.router)
    app.include_router(internal.router)

    @app.on_event("startup")
    async def on_startup() -> None:  # pragma: no cover
        if not settings.POLLING_ENABLED:
            logger.info("Appointment polling disabled (POLLING_ENABLED=false)")
            return
        try:
            poller = get_appointment_poller()
        except CrmClientError as exc:
            logger.warning("BuilderPrime not configured, appointment polling not started: %s", exc)
            return
        poller.start()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:  # pragma: no cover
        poller = get_appointment_poller_if_built()
        if poller is not None:
            poller.shutdown()

    return app


app = create_app()
