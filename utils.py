import csv
import math
import random
import string
import time
from datetime import date, datetime, timedelta
from io import StringIO

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from errors import AuthorizationError, ValidationError

BASE36 = string.digits + string.ascii_lowercase
DATE_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")

_email_adapter = TypeAdapter(EmailStr)


def to_base36(number: int) -> str:
    """Render a non-negative integer in base 36 (lowercase)."""
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def _random36(length: int) -> str:
    return "".join(random.choice(BASE36) for _ in range(length))


def generate_id() -> str:
    """Time-based id with a random suffix; not collision-free across writers."""
    return to_base36(int(time.time() * 1000)) + _random36(9)


def generate_booking_reference() -> str:
    """Human-shareable booking reference: BK<timestamp36><random4>."""
    timestamp = to_base36(int(time.time() * 1000)).upper()
    return f"BK{timestamp}{_random36(4).upper()}"


def now_iso() -> str:
    return datetime.now().isoformat()


def _naive(value: datetime) -> datetime:
    # Stored timestamps may carry an offset; comparisons happen in local time
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_date(date_str: str) -> datetime:
    """Parse a date string into a naive local datetime object."""
    if isinstance(date_str, datetime):
        return _naive(date_str)
    if isinstance(date_str, date):
        return datetime(date_str.year, date_str.month, date_str.day)
    text = str(date_str).strip()
    try:
        return _naive(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    raise ValidationError("Invalid date format")


def check_event_permission(event, current_user):
    """Check if the user has permission to modify an event."""
    if current_user is None or current_user.role != "organizer" or event.organizer_id != current_user.id:
        raise AuthorizationError("You do not have permission to modify this event")


def generate_csv(bookings):
    """Generate a CSV string from a list of bookings."""
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Reference", "Name", "Email", "Quantity", "Amount", "Status"])
    for b in bookings:
        writer.writerow([b.booking_reference, b.participant_name, b.participant_email,
                         b.quantity, f"{b.total_amount:.2f}", b.status])
    buffer.seek(0)
    return buffer


def format_date(value, fmt: str = "short") -> str:
    """Format a date like en-US locale output: short, long or time."""
    d = parse_date(value)
    clock = d.strftime("%I:%M %p")
    if fmt == "long":
        return f"{d:%B} {d.day}, {d.year} at {clock}"
    if fmt == "time":
        return clock
    return f"{d:%b} {d.day}, {d.year}"


def format_currency(amount, currency: str = "USD") -> str:
    symbol = {"USD": "$", "EUR": "€", "GBP": "£"}.get(currency, "")
    sign = "-" if amount < 0 else ""
    text = f"{sign}{symbol}{abs(amount):,.2f}"
    return text if symbol else f"{text} {currency}"


def validate_email(email) -> bool:
    if not email:
        return False
    try:
        _email_adapter.validate_python(email)
    except PydanticValidationError:
        return False
    return True


def validate_password(password) -> bool:
    return password is not None and len(password) >= 6


def days_between(first, second) -> int:
    delta = _naive(parse_date(first)) - _naive(parse_date(second))
    return round(abs(delta.total_seconds()) / 86400)


def is_past_date(value, today: date | None = None) -> bool:
    """True when the calendar day of ``value`` is before today."""
    today = today or date.today()
    return _naive(parse_date(value)).date() < today


def get_event_status(starts_at, now: datetime | None = None) -> str:
    """Classify an event as completed, upcoming (within a week) or active."""
    now = now or datetime.now()
    start = _naive(parse_date(starts_at))
    if start < now:
        return "completed"
    if days_between(now, start) <= 7:
        return "upcoming"
    return "active"


def truncate_text(text: str, max_length: int = 100) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def _field(obj, name):
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def search_objects(objects, term, fields):
    """Case-insensitive substring search over the given fields."""
    if not term:
        return list(objects)
    term = term.lower()
    return [
        obj for obj in objects
        if any(_field(obj, f) not in (None, "") and term in str(_field(obj, f)).lower() for f in fields)
    ]


def sort_objects(objects, sort_by: str, sort_order: str = "asc"):
    def key(obj):
        value = _field(obj, sort_by)
        if value is None:
            return (1, 0)
        if "date" in sort_by or "time" in sort_by or sort_by.endswith("_at"):
            return (0, _naive(parse_date(value)))
        if isinstance(value, str):
            try:
                return (0, float(value))
            except ValueError:
                return (0, value.lower())
        return (0, value)

    return sorted(objects, key=key, reverse=(sort_order == "desc"))


def filter_objects(objects, filters: dict):
    """Keep objects matching every filter; '' and 'all' match anything."""
    return [
        obj for obj in objects
        if all(value in ("", "all") or _field(obj, name) == value for name, value in filters.items())
    ]


def calculate_percentage(value, total) -> int:
    if total == 0:
        return 0
    return round(value / total * 100)


def get_user_initials(name: str) -> str:
    return "".join(word[0].upper() for word in name.split() if word)[:2]


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    return f"{float(f'{size / 1024 ** i:.2f}'):g} {units[i]}"


def time_ago(value, now: datetime | None = None) -> str:
    now = now or datetime.now()
    then = _naive(parse_date(value))
    seconds = int((now - then).total_seconds())

    def plural(n, unit):
        return f"{n} {unit}{'s' if n > 1 else ''} ago"

    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return plural(seconds // 60, "minute")
    if seconds < 86400:
        return plural(seconds // 3600, "hour")
    if seconds < 2592000:
        return plural(seconds // 86400, "day")
    return format_date(then, "short")


def tomorrow(today: date | None = None) -> str:
    return ((today or date.today()) + timedelta(days=1)).isoformat()


def simulate_latency(seconds: float):
    """Artificial delay standing in for a network round trip."""
    if seconds > 0:
        time.sleep(seconds)
