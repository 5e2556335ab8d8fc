"""
workflow.py — Core Orchestration Logic for Order Submission

This module contains the order submission pipeline behind the checkout form.
It coordinates validation, duplicate detection and the two integrations an
accepted order is dispatched to.

Workflow Overview:
1. Validate the raw submission (400 on failure)
2. Check the ledger for the same clientRequestId (409 on duplicate)
3. Refuse when both integrations are switched off (500)
4. Dispatch ledger append and staff email concurrently, wait for both
5. Fold both outcomes into one response (500 only when every enabled one failed)

Retries are owned by the integrations; nothing here is retried.
"""

import asyncio
import logging
from typing import Any, Dict, Union

from .clients import EmailNotifier, SheetsLedger
from .duplicates import DuplicateCheck, check_duplicate
from .models import DispatchOutcome, OrderResponse, ValidatedOrder
from .pricing import calculate_total
from .validation import validate_order

log = logging.getLogger(__name__)

SHEETS = "sheets"
EMAIL = "email"

MSG_SUCCESS = "✅ تم استلام طلبك بنجاح! سنتصل بك خلال 15 دقيقة لتأكيد الطلب."
MSG_DUPLICATE = "تم استلام هذا الطلب مسبقاً. يرجى المحاولة مرة أخرى."
MSG_ALL_DISABLED = "جميع خدمات الإشعارات معطلة. يرجى تفعيلها في الإعدادات."
MSG_PROCESSING_ERROR = "حدث خطأ في معالجة الطلب. يرجى المحاولة مرة أخرى أو الاتصال بالدعم."
MSG_INVALID_DATA = "بيانات غير صحيحة"


def _error_response(status_code: int, message: str, **extra: Any) -> OrderResponse:
    return OrderResponse(status_code=status_code, body={"success": False, "error": message, **extra})


def aggregate_outcomes(client_request_id: str, outcomes: Dict[str, DispatchOutcome]) -> OrderResponse:
    """
    Folds the per-integration outcomes into the final response.

    Skipped (switched off) integrations count as successful and are not
    considered when deciding whether everything failed.

    Args:
        client_request_id (str): Idempotency token echoed back on success.
        outcomes (dict): Outcome per channel (SHEETS, EMAIL).

    Returns:
        OrderResponse: 500 when no integration ran or every one that ran
        failed, otherwise 200 with the `sheetSaved` / `emailSent` flags.
    """
    dispatched = [o for o in outcomes.values() if not o.was_skipped]
    if not dispatched:
        return _error_response(500, MSG_ALL_DISABLED)
    if all(not o.success for o in dispatched):
        return _error_response(500, MSG_PROCESSING_ERROR)

    sheets = outcomes.get(SHEETS, DispatchOutcome.skipped())
    email = outcomes.get(EMAIL, DispatchOutcome.skipped())
    return OrderResponse(status_code=200, body={
        "success": True,
        "message": MSG_SUCCESS,
        "clientRequestId": client_request_id,
        "sheetSaved": sheets.success,
        "emailSent": email.success,
    })


def _settled(result: Union[DispatchOutcome, BaseException]) -> DispatchOutcome:
    if isinstance(result, BaseException):
        return DispatchOutcome.failed(str(result) or result.__class__.__name__)
    return result


def _warn_on_price_mismatch(order: ValidatedOrder, log_prefix: str):
    # The submitted total is trusted as-is; a mismatch is only reported.
    expected = calculate_total(order.deliveryOption)
    if order.totalPrice != expected:
        log.warning(
            f"{log_prefix} Submitted totalPrice {order.totalPrice} differs from "
            f"catalog total {expected} for delivery '{order.deliveryOption.value}'."
        )


async def dispatch(order: ValidatedOrder, ledger: SheetsLedger,
                   notifier: EmailNotifier) -> Dict[str, DispatchOutcome]:
    """
    Runs every enabled integration concurrently and waits for all of them.

    A failing integration never cancels its sibling. Integrations that are
    switched off get a skipped outcome without being called.
    """
    tasks = {}
    if ledger.enabled:
        tasks[SHEETS] = ledger.append(order)
    if notifier.enabled:
        tasks[EMAIL] = notifier.notify(order)

    results = await asyncio.gather(*tasks.values(), return_exceptions=True)

    outcomes = {SHEETS: DispatchOutcome.skipped(), EMAIL: DispatchOutcome.skipped()}
    for channel, result in zip(tasks, results):
        outcomes[channel] = _settled(result)
    return outcomes


async def process_order_submission(raw: Any, ledger: SheetsLedger,
                                   notifier: EmailNotifier) -> OrderResponse:
    """
    Executes the complete submission workflow for one checkout request.

    Args:
        raw: Decoded JSON body as sent by the storefront.
        ledger (SheetsLedger): Order ledger client.
        notifier (EmailNotifier): Staff notification client.

    Returns:
        OrderResponse: HTTP status code and JSON body for the storefront.
            - 200: order captured (possibly with one integration degraded)
            - 400: schema violation, body carries every field error
            - 409: clientRequestId already in the ledger
            - 500: both integrations switched off, or every enabled one failed
    """
    validation = validate_order(raw)
    if not validation.ok:
        first_message = validation.errors[0].message if validation.errors else MSG_INVALID_DATA
        log.warning(f"Order rejected by validation: {[e.field for e in validation.errors]}")
        return _error_response(400, first_message,
                               details=[e.model_dump() for e in validation.errors])

    order = validation.order
    log_prefix = f"[Order: {order.clientRequestId}]"
    log.info(f"{log_prefix} Received order (model {order.watchModelId}, {order.deliveryOption.value}).")
    _warn_on_price_mismatch(order, log_prefix)

    if await check_duplicate(ledger, order.clientRequestId) is DuplicateCheck.DUPLICATE:
        log.warning(f"{log_prefix} Duplicate order detected.")
        return _error_response(409, MSG_DUPLICATE, duplicate=True)

    if not ledger.enabled and not notifier.enabled:
        log.error(f"{log_prefix} Both Google Sheets and email are disabled, cannot capture order.")
        return _error_response(500, MSG_ALL_DISABLED)

    outcomes = await dispatch(order, ledger, notifier)

    for channel, outcome in outcomes.items():
        if outcome.was_skipped:
            continue
        if outcome.success:
            log.info(f"{log_prefix} {channel}: ok {outcome.metadata}")
        else:
            log.warning(f"{log_prefix} {channel}: FAILED ({outcome.error})")

    response = aggregate_outcomes(order.clientRequestId, outcomes)
    if response.status_code == 500:
        log.critical(f"{log_prefix} All enabled integrations failed, order NOT captured.")
    return response
