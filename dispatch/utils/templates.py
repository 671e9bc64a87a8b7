"""Centralized outbound message templates."""


class MessageTemplates:
    """Texts sent to drivers, customers and the operator."""

    # Registration and presence
    WELCOME = "Welcome {name}!\nUse the buttons to order or send items as text."
    REG_SENT = "Registration sent to admin for approval."
    REG_APPROVED = "Registration approved! You can now /connect"
    REG_REJECTED = "Your registration was not approved."
    NOT_REGISTERED = "You are not registered. Use /register"
    NOW_ONLINE = "You are now online 🟢"
    NOW_OFFLINE = "You are now offline 🔴"
    LANGUAGE_SET = "Language set to {lang}"
    DRIVER_CONNECTED = "Driver {name} connected"
    DRIVER_DISCONNECTED = "Driver {name} disconnected"
    NEW_DRIVER = "NEW DRIVER {name} wants to join."

    # Assignment and progress
    NEW_ASSIGNMENT = "Order for you:\n{order}"
    ASSIGNED_TO = "Order {label} assigned to {driver}"
    NO_DRIVER = "No available drivers - order {label} kept in queue"
    ASSIGN_BUSY = "Order {label} is already being assigned"
    PICKED_UP = "Your order {label} has been picked up. Your driver {driver} is on the way. 🚀"
    ORDER_ACTIVE = "Order {label} active"
    ARRIVED = "Hi, here's {driver}, I just arrived at your place for order {label}. Please come to get your order."
    AUTO_ARRIVED_DRIVER = "Auto-marked order {label} as arrived (within {distance}m)."
    AUTO_ARRIVED_ADMIN = "Order {label} auto-arrived (driver within {distance}m)."
    RATE_PROMPT = "Thank you for ordering! Please rate your delivery experience."
    FEEDBACK_DRIVER = "{customer} gave you {stars}⭐"
    FEEDBACK_ADMIN = "Feedback: {stars} for order {label}"
    DELAY = "Hi, here's {driver}, I am {minutes} minutes away."
    CANCELLED = "Order {label} cancelled"
    DELETED = "Order {label} deleted."
    ARCHIVED_ONE = "Order {label} archived."
    ARCHIVED_MANY = "Archived {count} orders older than {days} days."

    # Payment
    MARKED_PAID = "Marked as PAID"
    PAYMENT_RECEIVED = "Thanks - payment received for order {label}."
    PAID_BY_CUSTOMER = "Order {label} marked PAID by customer."
    PAID_VIA_QR = "Order {label} paid via QR by {customer}"
    QR_PAY_WITH = "QR code: {code}\nUse this to pay for order {label}"
    QR_SENT = "QR {code} sent to {customer}"
    QR_SAVED = "QR {kind} saved for {code}"
    QR_SEND_PROMPT = "Please send the QR image or code text for {code}."
    SEND_GIVEN_CASH = "Send $<amount> to set given cash for order {label}"

    # Live location
    LIVE_STARTED = "{name} started sharing live location (valid until {until})."
    LIVE_SHARED = "{name} shared live location (valid until {until})."
    LIVE_STOPPED = "{name} stopped sharing live location."
    LIVE_EXPIRED = "Live location session expired."
    LIVE_ENDED = "Driver live location sharing has ended."
    NO_ACTIVE_LIVE = "No active live session. Use START LIVE before sending location."
    ROUTE_PREVIEW = "🛵 Route preview:\nDistance: {distance}\nETA: {eta}"

    # Operator edits
    EDIT_PROMPTS = {
        "customer_name": "Please reply with the new customer name for order {label}",
        "total_amount": "Please send the new total as $<amount> to update order {label}",
        "given_cash": "Send $<amount> to set given cash for order {label}",
        "items": "Please send the updated items for order {label}",
        "media": "Send photo, document or text to attach to order {label}",
        "location": "Send location to attach to order {label}",
        "assign_customer": (
            "Order {label} has no customer id. Reply with a contact or send "
            "/setcustomer <user_id> or /setcustomer @username"
        ),
    }
    CUSTOMER_UPDATED = "Customer updated for order {label}"
    TOTAL_UPDATED = "Total updated: {total}"
    GIVEN_CASH_SET = "Given cash set: {given} - change: {change}"
    ITEMS_UPDATED = "Items updated for order {label}"
    LOCATION_UPDATED = "Location updated for order {label}"
    MEDIA_ATTACHED = "{kind} attached to order {label}"
    AMOUNT_EXPECTED = "Send the amount as $<number>, e.g. $12.50"
    UNSUPPORTED_PAYLOAD = "Unsupported payload. Send a photo, document, or text."
    LOCATION_SAVED = "Location saved to your order."
    ITEMS_ADDED = "Added to order items."
    NEW_ORDER_CREATED = "New order created. Opening for edit..."
    FORWARDED_ORDER = "Forwarded order created {label} from {customer}\nItems: {items}"

    # Generic
    ORDER_NOT_FOUND = "Order not found"
    NOT_ALLOWED = "Not allowed"
    SETTING_SET = "Setting {key} set to {value}"
    COUNTER_SET = "orderCounter set to {value:06d}{suffix}"
    COUNTER_REFUSED = (
        "Refusing to set {value} because max existing order id is {max_id}. "
        "To force this anyway, run: /setordercounter {value} force"
    )
    STATS = (
        "Stats\nTotal orders: {total_orders}\nActive: {active}\n"
        "Completed/archived: {completed}\nDrivers pending: {drivers_pending}"
    )
    DRIVER_STATS = "Stats: {completed} completed, {active} active"
    NO_ACTIVE_ORDERS = "No active orders"
