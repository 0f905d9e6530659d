import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional

from krbstale.directories.base import Directory, PrincipalRecord
from krbstale.errors import ConfigurationError
from krbstale.logger import ks_logger

_UNSET = object()


@dataclass(frozen=True)
class FilterConfig:
    """Operator choices for one audit run

    changed_after is the only required cutoff: principals whose keys changed after it
    are left out of the report. All datetimes must be timezone aware.
    """

    changed_after: datetime
    exclude_disabled: bool = False
    exclude_pattern: Optional[re.Pattern] = None
    expired_before: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.changed_after, datetime):
            raise ConfigurationError("A changed-before cutoff date is required")
        for field_name in ("changed_after", "expired_before"):
            value = getattr(self, field_name)
            if value is not None and value.tzinfo is None:
                raise ConfigurationError(f"{field_name} must be timezone aware")
        if isinstance(self.exclude_pattern, str):
            object.__setattr__(self, "exclude_pattern", compile_pattern(self.exclude_pattern))


def compile_pattern(pattern):
    if pattern is None:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid exclusion pattern '{pattern}': {e}") from e


def exclusion_reason(config: FilterConfig, record: PrincipalRecord) -> Optional[str]:
    """Name the first predicate that drops the record, or None if it belongs in the report"""
    if config.exclude_disabled and record.disallow_all_tix:
        return "disabled"
    if config.expired_before is not None and record.password_expiration is not None and record.password_expiration < config.expired_before:
        return f"password expired {record.password_expiration:%Y-%m-%d %H:%M:%S}"
    # A change at exactly the cutoff instant still counts as stale
    if record.last_password_change is not None and record.last_password_change > config.changed_after:
        return f"password changed {record.last_password_change:%Y-%m-%d %H:%M:%S}"
    return None


def evaluate(config: FilterConfig, record: PrincipalRecord) -> bool:
    return exclusion_reason(config, record) is None


def run(config: FilterConfig, names: Iterable[str], directory: Directory, exclude_pattern=_UNSET) -> Iterator[str]:
    """Yield the names of stale principals, in input order

    Each name is looked up at most once, names matching the exclusion pattern are not
    looked up at all. Directory errors are not caught: the run stops on the first one,
    after whatever was already yielded.
    """
    if exclude_pattern is _UNSET:
        exclude_pattern = config.exclude_pattern

    for name in names:
        if exclude_pattern is not None and exclude_pattern.search(name):
            ks_logger.debug(f"{name}: excluded by name pattern")
            continue

        record = directory.get(name)
        reason = exclusion_reason(config, record)
        if reason:
            ks_logger.debug(f"{name}: {reason}")
            continue

        ks_logger.debug(f"{name}: last changed {record.last_password_change or 'never'}")
        yield name
