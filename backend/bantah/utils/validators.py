"""Request parsing and form validation helpers."""
import math
from datetime import datetime, timezone

from bson import ObjectId, errors
from werkzeug.datastructures import MultiDict


def safe_object_id(value):
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (errors.InvalidId, TypeError):
        return None


def parse_amount(value):
    """Parse a positive money amount; returns None when invalid."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount) or amount <= 0:
        return None
    return round(amount, 2)


def to_cents(amount) -> int:
    return int(round(float(amount) * 100))


def from_cents(cents: int) -> float:
    return round(cents / 100, 2)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what pymongo returns from the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value):
    """Parse an ISO-8601 string into a naive UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def bind_form(form_class, payload):
    """
    Bind a JSON payload to a wtforms form.

    Lists become indexed keys (``rules-0``, ``rules-1``) as FieldList expects;
    None values are dropped so that Optional() validators treat them as
    missing.
    """
    formdata = MultiDict()
    for key, value in (payload or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                formdata.add(f"{key}-{index}", item)
        else:
            formdata.add(key, value)
    return form_class(formdata=formdata)


def strip_filter(value):
    return value.strip() if isinstance(value, str) else value


def form_errors(form):
    """Flatten wtforms errors into {field: first_message}."""
    return {field: messages[0] for field, messages in form.errors.items() if messages}
