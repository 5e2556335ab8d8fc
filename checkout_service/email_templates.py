"""
email_templates.py — Staff notification content for a new order

Renders the plain-text and HTML (RTL, Arabic) bodies of the order alert.
Pure functions; every customer supplied value is HTML-escaped.
"""

from datetime import datetime, timedelta, timezone
from html import escape
from typing import Optional

from .models import ValidatedOrder
from .pricing import (
    BASE_PRICE,
    DELIVERY_LABELS,
    delivery_cost,
    watch_image_url,
    watch_model_label,
)

# Algeria observes CET all year round
ALGIERS_TZ = timezone(timedelta(hours=1))


def format_dzd(amount) -> str:
    if float(amount).is_integer():
        return f"{int(amount):,} دج"
    return f"{amount:,.2f} دج"


def delivery_text(order: ValidatedOrder) -> str:
    """E.g. "منزل (+800 دج)"."""
    cost = delivery_cost(order.deliveryOption)
    return f"{DELIVERY_LABELS[order.deliveryOption]} (+{cost} دج)"


def price_breakdown(order: ValidatedOrder) -> str:
    """basePrice + deliveryCost = totalPrice, with the submitted total."""
    cost = delivery_cost(order.deliveryOption)
    return f"{BASE_PRICE:,} + {cost:,} = {format_dzd(order.totalPrice)}"


def build_subject(order: ValidatedOrder) -> str:
    return f"طلب جديد - {order.fullName} - {watch_model_label(order.watchModelId)}"


def _order_time(now: Optional[datetime]) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(ALGIERS_TZ).strftime("%Y-%m-%d %H:%M")


def render_text(order: ValidatedOrder, base_url: str, store_name: str,
                image_ext: str = "webp", now: Optional[datetime] = None) -> str:
    image_url = watch_image_url(base_url, order.watchModelId, image_ext)
    lines = [
        f"طلب جديد - {store_name}",
        "",
        f"رقم الطلب: {order.clientRequestId}",
        f"الاسم: {order.fullName}",
        f"الهاتف: {order.phone}",
        f"الولاية: {order.wilayaNameAr}",
        f"البلدية: {order.baladiyaNameAr}",
        f"موديل الساعة: {order.watchModelId}",
    ]
    if order.modelNumber:
        lines.append(f"رقم النموذج المدخل: {order.modelNumber}")
    lines += [
        f"الكمية: {order.quantity}",
        f"طريقة التوصيل: {delivery_text(order)}",
        f"الحساب: {price_breakdown(order)}",
        f"الإجمالي: {format_dzd(order.totalPrice)}",
    ]
    if order.notes:
        lines.append(f"ملاحظات: {order.notes}")
    lines += [
        f"وقت الطلب: {_order_time(now)}",
        f"صورة المنتج: {image_url}",
    ]
    return "\n".join(lines)


_HTML_TEMPLATE = """<!DOCTYPE html>
<html dir="rtl" lang="ar">
<head>
  <meta charset="UTF-8">
  <title>طلب جديد - {store}</title>
  <style>
    body {{ font-family: Tahoma, Arial, sans-serif; color: #333; background: #f4f4f4; padding: 20px; }}
    .container {{ max-width: 600px; margin: 0 auto; background: #fff; border-radius: 10px; padding: 30px; }}
    .header {{ background: #dc2626; color: #fff; padding: 20px; border-radius: 8px; text-align: center; }}
    .product-image {{ text-align: center; margin: 20px 0; }}
    .product-image img {{ max-width: 300px; border-radius: 12px; }}
    table {{ width: 100%; border-collapse: collapse; }}
    th, td {{ padding: 12px; text-align: right; border-bottom: 1px solid #e5e5e5; }}
    .highlight {{ background: #fef2f2; font-weight: bold; color: #dc2626; }}
    .footer {{ margin-top: 30px; text-align: center; color: #6b7280; font-size: 14px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>طلب جديد - {store}</h1></div>
    <div class="product-image"><img src="{image_url}" alt="{model_label}" /></div>
    <table>
      <tr><th>المعلومات</th><th>التفاصيل</th></tr>
{rows}
    </table>
    <div class="footer">
      <p>تم استلام هذا الطلب تلقائياً من موقع {store}</p>
      <p>يرجى الاتصال بالعميل لتأكيد الطلب</p>
    </div>
  </div>
</body>
</html>"""


def _row(label: str, value: str, highlight: bool = False) -> str:
    css = ' class="highlight"' if highlight else ""
    return f"      <tr{css}><td>{label}</td><td>{value}</td></tr>"


def render_html(order: ValidatedOrder, base_url: str, store_name: str,
                image_ext: str = "webp", now: Optional[datetime] = None) -> str:
    image_url = watch_image_url(base_url, order.watchModelId, image_ext)
    phone = escape(order.phone)
    rows = [
        _row("رقم الطلب", escape(order.clientRequestId), highlight=True),
        _row("الاسم الكامل", escape(order.fullName)),
        _row("رقم الهاتف", f'<a href="tel:{phone}">{phone}</a>'),
        _row("الولاية", escape(order.wilayaNameAr)),
        _row("البلدية", escape(order.baladiyaNameAr)),
        _row("موديل الساعة", escape(watch_model_label(order.watchModelId))),
    ]
    if order.modelNumber:
        rows.append(_row("رقم النموذج المدخل", escape(order.modelNumber)))
    rows += [
        _row("الكمية", str(order.quantity)),
        _row("طريقة التوصيل", escape(delivery_text(order))),
        _row("سعر المنتج", f"{format_dzd(BASE_PRICE)} × {order.quantity}"),
        _row("تكلفة التوصيل", format_dzd(delivery_cost(order.deliveryOption))),
        _row("الحساب", escape(price_breakdown(order))),
        _row("الإجمالي", format_dzd(order.totalPrice), highlight=True),
    ]
    if order.notes:
        rows.append(_row("ملاحظات", escape(order.notes)))
    rows.append(_row("وقت الطلب", _order_time(now)))

    return _HTML_TEMPLATE.format(
        store=escape(store_name),
        image_url=escape(image_url),
        model_label=escape(watch_model_label(order.watchModelId)),
        rows="\n".join(rows),
    )
