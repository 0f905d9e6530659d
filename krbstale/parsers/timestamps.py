import re
from datetime import datetime, timezone

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta as rd

from krbstale.errors import ConfigurationError

RELATIVE_AGE = re.compile(r"^\s*(\d+)\s*([dwmy])\s*$", re.IGNORECASE)
RELATIVE_UNITS = {"d": "days", "w": "weeks", "m": "months", "y": "years"}

# kadmin prints "[never]" or "[none]", the LDAP schema and kadm5 use the epoch
NEVER = ("", "[never]", "never", "[none]", "none", "0")


def parse_cutoff(value, now=None):
    """Parse an operator supplied cutoff into an aware UTC datetime

    Accepts anything dateutil understands (naive values are taken as local time) or a
    relative age such as 90d, 12w, 6m or 1y, counted back from now.
    """
    if value is None or not str(value).strip():
        raise ConfigurationError("A date is required")

    match = RELATIVE_AGE.match(str(value))
    if match:
        amount, unit = match.groups()
        now = now or datetime.now(timezone.utc)
        return now - rd(**{RELATIVE_UNITS[unit.lower()]: int(amount)})

    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError) as e:
        raise ConfigurationError(f"Unable to parse date '{value}': {e}") from e

    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed.astimezone(timezone.utc)


def parse_kadmin_time(value):
    """Parse a date as printed by getprinc, [never] or [none] meaning unset"""
    value = value.strip()
    if value.lower() in NEVER:
        return None
    parsed = date_parser.parse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_generalized_time(value):
    """Parse an LDAP GeneralizedTime (20190101000000Z), the epoch meaning unset"""
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    value = value.strip()
    if value in NEVER:
        return None
    parsed = datetime.strptime(value, "%Y%m%d%H%M%SZ").replace(tzinfo=timezone.utc)
    if parsed.timestamp() == 0:
        return None
    return parsed
