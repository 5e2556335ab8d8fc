"""
validation.py — Order Schema Validator

Turns an untrusted submission into a `ValidatedOrder` or a complete list of
field errors. Pydantic collects every violation in one pass; this module maps
each of them to the Arabic message shown in the checkout form.
"""

from typing import Any, Dict

from pydantic import ValidationError

from .models import FieldError, ValidatedOrder, ValidationResult

GENERIC_MESSAGE = "بيانات غير صحيحة"

# Per-field messages keyed by pydantic error type; "*" is the field fallback.
FIELD_MESSAGES: Dict[str, Dict[str, str]] = {
    "clientRequestId": {
        "*": "معرف الطلب غير صالح",
    },
    "fullName": {
        "string_too_short": "الاسم الكامل يجب أن يكون حرفين على الأقل",
        "string_too_long": "الاسم الكامل طويل جداً",
        "*": "الاسم الكامل مطلوب",
    },
    "phone": {
        "*": "رقم الهاتف غير صالح. يجب أن يبدأ بـ 05 أو 06 أو 07 ويحتوي على 10 أرقام (مثال: 0555123456)",
    },
    "wilayaId": {
        "*": "رقم الولاية غير صالح",
    },
    "wilayaNameAr": {
        "*": "اسم الولاية مطلوب (حرفان على الأقل)",
    },
    "baladiya": {
        "*": "البلدية مطلوبة",
    },
    "baladiyaNameAr": {
        "*": "اسم البلدية مطلوب (حرفان على الأقل)",
    },
    "watchModelId": {
        "less_than_equal": "موديل الساعة غير صالح",
        "*": "يجب اختيار موديل الساعة",
    },
    "deliveryOption": {
        "*": "يجب اختيار طريقة التوصيل",
    },
    "totalPrice": {
        "less_than_equal": "السعر الإجمالي كبير جداً",
        "*": "السعر الإجمالي يجب أن يكون أكبر من صفر",
    },
    "notes": {
        "*": "الملاحظات طويلة جداً (الحد الأقصى 500 حرف)",
    },
    "modelNumber": {
        "*": "رقم النموذج غير صالح",
    },
    "quantity": {
        "*": "الكمية يجب أن تكون عدداً صحيحاً موجباً",
    },
}


def _message_for(field: str, error_type: str) -> str:
    messages = FIELD_MESSAGES.get(field)
    if not messages:
        return GENERIC_MESSAGE
    return messages.get(error_type, messages["*"])


def validate_order(raw: Any) -> ValidationResult:
    """
    Validates a raw order submission.

    Every field is checked independently and all violations are returned,
    not only the first. The function has no side effects.

    Args:
        raw: Decoded JSON body of the request (any type).

    Returns:
        ValidationResult: `order` set on success, otherwise `errors` holds one
        FieldError per violation, in schema order. A body that is not a JSON
        object yields a single error with an empty field path.
    """
    try:
        order = ValidatedOrder.model_validate(raw)
    except ValidationError as exc:
        errors = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"])
            top_level = str(err["loc"][0]) if err["loc"] else ""
            errors.append(FieldError(field=field, message=_message_for(top_level, err["type"])))
        return ValidationResult(errors=errors)
    return ValidationResult(order=order)
