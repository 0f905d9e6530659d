import configparser
from termcolor import colored

from krbstale.errors import ConfigurationError


def to_bool(value):
    """Interpret a config or CLI value as a boolean, the way configparser does"""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    try:
        return configparser.ConfigParser.BOOLEAN_STATES[str(value).strip().lower()]
    except KeyError:
        raise ConfigurationError(f"Not a boolean: {value}") from None


def to_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Option {name} must be an integer, got {value!r}") from None


def highlight(text, color="yellow"):
    return f"{colored(text, color, attrs=['bold'])}"
