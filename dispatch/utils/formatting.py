"""HTML rendering of orders for chat messages."""

import html
from datetime import datetime

from dispatch.engine.geo import looks_like_url, maps_search_link
from dispatch.models.order import STATUS_EMOJI, Order, PaymentMethod


def format_amount(value: object) -> str:
    if value is None:
        return ""
    return f"{value:.2f}" if not isinstance(value, str) else value


def format_date_short(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime("%d %b. %y %H:%M")


def user_link(user_id: int | None, name: str) -> str:
    label = html.escape(name or (str(user_id) if user_id else ""))
    if user_id:
        return f'<a href="tg://user?id={user_id}">{label}</a>'
    return label


def format_location(order: Order) -> str:
    location = order.location
    if location is None:
        return ""
    if location.point is not None:
        return f'<a href="{maps_search_link(location.point)}">map link</a>'
    text = location.text or ""
    if looks_like_url(text):
        return f'<a href="{html.escape(text)}">map link</a>'
    return html.escape(text)


def format_order(order: Order) -> str:
    """Render the order card shown to the operator and the driver."""
    lines = [f"{STATUS_EMOJI[order.status]} {order.label}"]
    lines.append(f"👤 {user_link(order.customer_id, order.customer_name)}")
    lines.append(f"📍 {format_location(order)}")

    payment = format_amount(order.total_amount)
    if order.paid:
        payment += " PAID"
    if order.payment_method:
        payment += f" by {order.payment_method.value}"
    lines.append(f"💲 {payment}".strip())

    if order.payment_method == PaymentMethod.CASH:
        lines.append(f"💰 {format_amount(order.given_cash)}")
        lines.append(f"💱 {format_amount(order.change_cash)}")

    if order.driver_assigned and order.driver_status is not None:
        driver_emoji = "🟡" if order.driver_status.value == "busy" else "🔵"
    else:
        driver_emoji = "🚀"
    lines.append(f"{driver_emoji} {user_link(order.driver_id, order.driver_name)}")

    lines.append(f"📃 {html.escape(order.items)}")
    if order.feedback:
        lines.append(f"⭐ {order.feedback}")
    lines.append(f"📅 {format_date_short(order.created_at)}")
    return "\n".join(lines)
