"""
models.py — Data Models for Order Submission

This module defines the data structures that flow through the order pipeline.
It uses Pydantic models so that the incoming order is validated in one place
and then handed to the integrations as an immutable value.

Models:
    - ValidatedOrder: A customer's order after schema validation (frozen).
    - FieldError: One schema violation, reported back to the storefront.
    - DispatchOutcome: Result of a single integration (ledger or notifier).
    - OrderResponse: HTTP status and JSON body produced by the orchestrator.
"""

import re
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .pricing import MAX_TOTAL_PRICE, MAX_WATCH_MODEL_ID, MIN_WATCH_MODEL_ID, DeliveryOption

# Algerian mobile numbers: 05, 06 or 07 followed by 8 digits
MOBILE_PREFIXES = ("05", "06", "07")
ALGERIAN_MOBILE_PATTERN = r"^(" + "|".join(MOBILE_PREFIXES) + r")[0-9]{8}$"

_INTERNATIONAL_PREFIXES = ("+213", "00213")
_WHITESPACE = re.compile(r"\s+")


def normalize_phone(value: str) -> str:
    """
    Maps a raw phone entry to the domestic 10-digit form.

    Whitespace is removed and an international prefix (+213 / 00213) is
    replaced by the domestic trunk prefix 0, e.g. "+213 555 12 34 56"
    becomes "0555123456". The result is not validated here.
    """
    phone = _WHITESPACE.sub("", value)
    for prefix in _INTERNATIONAL_PREFIXES:
        if phone.startswith(prefix):
            return "0" + phone[len(prefix):]
    return phone


class ValidatedOrder(BaseModel):
    """
    Represents an order accepted by the schema validator.

    Instances are immutable. Only `validation.validate_order` builds them from
    untrusted input; the ledger writer and the notifier each read the same
    instance without modifying it.

    Attributes:
        clientRequestId (str): Client generated UUID, the idempotency token.
        fullName (str): Customer name, 2–100 characters.
        phone (str): Normalized Algerian mobile number (10 digits).
        wilayaId (int | None): Optional province number.
        wilayaNameAr (str): Province name in Arabic.
        baladiya (str): Municipality identifier or name.
        baladiyaNameAr (str): Municipality name in Arabic.
        watchModelId (int): Catalog variant, 1–10.
        deliveryOption (DeliveryOption): "office" or "home".
        totalPrice (float): Total as shown to the customer, in DZD.
        notes (str | None): Free text from the customer.
        modelNumber (str | None): Model number typed by the customer as confirmation.
        quantity (int): Number of watches, defaults to 1.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    clientRequestId: str = Field(default_factory=lambda: str(uuid.uuid4()))
    fullName: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., pattern=ALGERIAN_MOBILE_PATTERN)
    wilayaId: Optional[int] = Field(None, gt=0)
    wilayaNameAr: str = Field(..., min_length=2)
    baladiya: str = Field(..., min_length=1)
    baladiyaNameAr: str = Field(..., min_length=2)
    watchModelId: int = Field(..., ge=MIN_WATCH_MODEL_ID, le=MAX_WATCH_MODEL_ID)
    deliveryOption: DeliveryOption
    totalPrice: float = Field(..., gt=0, le=MAX_TOTAL_PRICE, strict=True)
    notes: Optional[str] = Field(None, max_length=500)
    modelNumber: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(1, gt=0)

    @field_validator("clientRequestId")
    @classmethod
    def _check_uuid(cls, value: str) -> str:
        # only the hyphenated 8-4-4-4-12 form; braces, urn: prefixes and bare hex are rejected
        if str(uuid.UUID(value)) != value.lower():
            raise ValueError("clientRequestId must be a canonical UUID")
        return value

    @field_validator("wilayaId", "watchModelId", "quantity", mode="before")
    @classmethod
    def _require_json_number(cls, value):
        # 3 and 3.0 are the same JSON number; strings and booleans are not numbers
        if value is None:
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("must be a number")
        return value

    @field_validator("phone", mode="before")
    @classmethod
    def _normalize_phone(cls, value):
        if isinstance(value, str):
            return normalize_phone(value)
        return value


class FieldError(BaseModel):
    field: str
    message: str


class DispatchOutcome(BaseModel):
    """
    Result of one integration call.

    `metadata["skipped"]` marks an integration that was switched off and
    therefore succeeded without doing any work.
    """
    success: bool
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, **metadata) -> "DispatchOutcome":
        return cls(success=True, metadata=metadata)

    @classmethod
    def skipped(cls) -> "DispatchOutcome":
        return cls(success=True, metadata={"skipped": True})

    @classmethod
    def failed(cls, error: str) -> "DispatchOutcome":
        return cls(success=False, error=error)

    @property
    def was_skipped(self) -> bool:
        return bool(self.metadata.get("skipped"))


class OrderResponse(BaseModel):
    status_code: int
    body: Dict[str, Any]


class ValidationResult(BaseModel):
    """Either a validated order or the full list of field errors."""
    order: Optional[ValidatedOrder] = None
    errors: List[FieldError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.order is not None
