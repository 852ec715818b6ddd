"""
GST Billing Engine: FastAPI application.

This is the entry point for the application.
Logging is configured and all routers are registered here.

Handlers are plain (sync) functions; FastAPI runs them in its
threadpool, so a request waiting on the database never blocks
the event loop.
"""

from fastapi import FastAPI

from gst_billing.config import get_settings
from gst_billing.logging_config import configure_logging
from gst_billing.api.health import router as health_router
from gst_billing.api.ledger import router as ledger_router
from gst_billing.api.invoices import router as invoices_router
from gst_billing.api.payments import router as payments_router

settings = get_settings()

configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="GST-compliant invoicing and double-entry ledger engine",
)

# Register routers
app.include_router(health_router)
app.include_router(ledger_router)
app.include_router(invoices_router)
app.include_router(payments_router)
