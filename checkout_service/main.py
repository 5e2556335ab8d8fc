"""
main.py — FastAPI Entry Point for the Checkout Service

This module provides the HTTP interface the landing page's checkout form posts
to. It decodes the request, builds the integration clients from the current
environment and hands over to the submission workflow.

Responsibilities:
    • Accept orders via POST /api/submit-order
    • Answer CORS preflight requests and tag every response with
      the CORS headers (any origin, POST / OPTIONS, Content-Type)
    • Map malformed JSON and unexpected faults to Arabic error responses
    • Provide system health information
"""

import json

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .clients import EmailNotifier, SheetsLedger
from .config import Settings
from .logging_config import get_logger, setup_logging
from .workflow import process_order_submission

# Initialization
# Configure logging and initialize FastAPI app
setup_logging(Settings.from_env().log_file)
log = get_logger(__name__)
app = FastAPI(title="BS MONTERS Checkout Service")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

MSG_BAD_JSON = "خطأ في تنسيق البيانات المرسلة."
MSG_UNEXPECTED = "حدث خطأ غير متوقع. يرجى المحاولة مرة أخرى."


# Dependencies (overridden in tests)
def get_settings() -> Settings:
    return Settings.from_env()


def get_ledger(settings: Settings = Depends(get_settings)) -> SheetsLedger:
    return SheetsLedger(settings)


def get_notifier(settings: Settings = Depends(get_settings)) -> EmailNotifier:
    return EmailNotifier(settings)


def _json(status_code: int, body: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=CORS_HEADERS)


# API Endpoint: Storefront → Checkout Service
@app.post("/api/submit-order")
async def submit_order(
        request: Request,
        ledger: SheetsLedger = Depends(get_ledger),
        notifier: EmailNotifier = Depends(get_notifier),
):
    """
    Receives an order from the checkout form and runs the submission workflow.

    The body is decoded here rather than through a Pydantic request model so
    that schema violations are reported with the storefront's own error shape
    (`{success, error, details}`) and Arabic messages.

    Returns:
        JSONResponse: 200 / 400 / 409 / 500 as decided by the workflow, 400 for
        a body that is not valid JSON, 500 for unexpected internal errors.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log.warning(f"Rejected order with malformed JSON body: {e}")
        return _json(400, {"success": False, "error": MSG_BAD_JSON})

    try:
        result = await process_order_submission(body, ledger, notifier)
    except Exception as e:
        log.critical(f"Unexpected error while processing order: {e}", exc_info=True)
        return _json(500, {"success": False, "error": MSG_UNEXPECTED})

    return _json(result.status_code, result.body)


@app.options("/api/submit-order")
async def submit_order_preflight():
    """CORS preflight: 200 without a body."""
    return Response(status_code=200, headers=CORS_HEADERS)


# Health Check Endpoint
@app.get("/health")
def health_check(settings: Settings = Depends(get_settings)):
    """
    Simple health check endpoint.

    Reports which integrations are switched on; it does not contact them.

    Returns:
        dict: Service status plus the `sheets` / `email` switches.
    """
    return {"status": "ok", "sheets": settings.sheets_enabled, "email": settings.email_enabled}
