import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from datetime import datetime, date, timezone
import structlog

logger = structlog.get_logger()

_HTML_MARKERS = ("<!doctype", "<html", "<head", "<body")
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)

def utcnow() -> datetime:
    """Naive UTC timestamp, the format every datetime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def normalize_price(value: Union[str, int, float, Decimal, None]) -> Optional[str]:
    """Validate a price and return it as exact-decimal text, keeping the store's scale ("20.00" stays "20.00")"""
    amount = _parse_price(value)
    if amount is None:
        return None
    return format(amount, "f")

def price_key(value: Union[str, int, float, Decimal, None]) -> Optional[str]:
    """Canonical form of a price for comparisons ("19.990" and "19.99" share one key)"""
    amount = _parse_price(value)
    if amount is None:
        return None
    text = format(amount.normalize(), "f")
    return "0" if text in ("-0", "") else text

def _parse_price(value: Union[str, int, float, Decimal, None]) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None

    raw = value if isinstance(value, Decimal) else str(value).strip()
    if raw == "":
        return None

    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"Invalid price value: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Invalid price value: {value!r}")
    return amount

def parse_remote_datetime(value: Union[str, datetime, date]) -> datetime:
    """Parse a store timestamp and truncate it to whole seconds (naive UTC if an offset is given)"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.replace(microsecond=0)

def truncate_string(text: str, max_length: int = 255) -> str:
    """Truncate string to maximum length"""
    if not text:
        return ""

    if len(text) <= max_length:
        return text

    # Try to truncate at word boundary
    truncated = text[:max_length]
    last_space = truncated.rfind(' ')

    if last_space > max_length * 0.8:  # If we find a space in the last 20%
        return truncated[:last_space] + "..."
    else:
        return truncated[:max_length-3] + "..."

def is_html(body: str, content_type: str = "") -> bool:
    if "html" in (content_type or "").lower():
        return True
    head = (body or "").lstrip()[:64].lower()
    return head.startswith(_HTML_MARKERS)

def sanitize_error_body(body: str, content_type: str = "", max_length: int = 500) -> str:
    """Make a remote error body safe to show in the UI and the logs"""
    if not body:
        return ""

    if is_html(body, content_type):
        match = _TITLE_RE.search(body)
        title = re.sub(r"\s+", " ", match.group(1)).strip() if match else ""
        if title:
            return f"HTML error page returned by the store ({truncate_string(title, 120)})"
        return "HTML error page returned by the store"

    return truncate_string(body.strip(), max_length)

def build_attribute_name(parent_name: str, declinaisons: Optional[str]) -> str:
    """Variant display name: parent name followed by the declension suffix"""
    suffix = (declinaisons or "").strip()
    return f"{parent_name} {suffix}" if suffix else parent_name

def log_performance(func_name: str, start_time: datetime, end_time: datetime, **kwargs):
    """Log performance metrics for a function"""
    duration = (end_time - start_time).total_seconds()
    logger.info(
        "Performance metric",
        function=func_name,
        duration_seconds=round(duration, 3),
        **kwargs
    )
