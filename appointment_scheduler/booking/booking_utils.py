# Utility functions for booking functionality
import re
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from email_validator import validate_email, EmailNotValidError
from .error_utils import ValidationError

MAX_NAME_LENGTH = 200
# 254 characters is a common maximum for email addresses by RFC 5321 / 5322 standards
MAX_EMAIL_LENGTH = 254
MAX_REASON_LENGTH = 1000

# Tab, LF, CR
ALLOWED_CONTROL_CODES = {9, 10, 13}


def resolve_timezone(name: str) -> tzinfo:
    """
    Map a timezone name to a tzinfo. UTC is resolved without the zoneinfo database so hosts without tzdata still work.
    """
    if not name or name.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(raw) -> datetime:
    """
    Parse an ISO-8601 instant into an aware datetime.

    Input: string with a trailing 'Z', an explicit offset or no offset at all (taken as UTC). Aware datetimes pass through, naive ones are taken as UTC.

    Returns: aware datetime in UTC. Raises ValidationError when the input can't be parsed or has no UTC equivalent
    (offsets pushing it past year 1 or 9999).
    """
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str) and raw.strip():
        try:
            parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("Invalid date format", value=raw)
    else:
        raise ValidationError("Invalid date format")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        raise ValidationError("Invalid date format", value=raw)


def to_iso(moment: datetime) -> str:
    """
    Canonical serialized form of an instant: UTC with millisecond precision, e.g. 2024-01-08T09:00:00.000Z
    """
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def canonical(moment: datetime) -> datetime:
    """
    The instant exactly as to_iso() would write it: UTC, truncated to the millisecond. Stored values round-trip unchanged.
    """
    moment = moment.astimezone(timezone.utc)
    return moment.replace(microsecond=(moment.microsecond // 1000) * 1000)


def split_into_segments(begin_time: datetime, end_time: datetime, minutes: int = 30) -> list[datetime]:
    """
    Helper function that splits a period into cadence aligned starting instants.
    The end of the period is exclusive so the last segment starts one cadence before it.

    Input: two datetime objects representing the period begin and end, plus the cadence in minutes.

    Returns: list containing the segment starting datetimes for the given period.
    """
    if minutes <= 0:
        raise ValueError("Segment length must be positive")
    step = timedelta(minutes=minutes)
    time_slots = []
    current = begin_time
    while current < end_time:
        time_slots.append(current)
        current += step
    return time_slots


def sanitize_text(value, field: str, max_length: int, required: bool = True) -> str:
    """
    Sanitizes a free text field.

    The function:
      1. Rejects non-string input.
      2. Trims leading and trailing whitespace.
      3. Enforces a maximum length.
      4. Checks for disallowed control characters (allowing only common whitespace).
    """
    if value is None:
        if required:
            raise ValidationError("Missing required fields", missing=[field])
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"Invalid value for {field}", field=field)

    value = value.strip()
    if required and not value:
        raise ValidationError("Missing required fields", missing=[field])

    if len(value) > max_length:
        raise ValidationError(f"{field} is too long. Max {max_length} characters.", field=field)

    for ch in value:
        if ord(ch) < 32 and ord(ch) not in ALLOWED_CONTROL_CODES:
            raise ValidationError(f"{field} contains disallowed characters", field=field)
    return value


def sanitize_email(email) -> str:
    """
    Validate and normalize an email address. Returns it trimmed and lower-cased.
    """
    email = sanitize_text(email, "email", MAX_EMAIL_LENGTH)

    # Preliminary check that there's exactly one '@' and no whitespace before handing over to email_validator
    if not re.fullmatch(r"[^@\s]+@[^@\s]+", email):
        raise ValidationError("Invalid email address", field="email")

    # Deliverability needs DNS lookups, syntax is all we care about here
    try:
        valid = validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("Invalid email address", field="email", reason=str(e))

    return valid.normalized.lower()


def missing_fields(candidate: dict, required=("name", "email", "dateTime")) -> list[str]:
    """
    Names of the required fields that are absent, None or blank strings.
    """
    missing = []
    for field in required:
        value = candidate.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing
