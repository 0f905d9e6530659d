from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from krbstale.errors import ConfigurationError
from krbstale.logger import KSAdapter

# KRB5_KDB_DISALLOW_ALL_TIX in the kadm5 attribute mask
DISALLOW_ALL_TIX = 0x00000040


@dataclass(frozen=True)
class PrincipalRecord:
    """Snapshot of the attributes of one principal that matter for the audit

    Timestamps are timezone aware; None means the store has no value (never expires,
    never changed).
    """

    name: str
    disallow_all_tix: bool = False
    password_expiration: Optional[datetime] = None
    last_password_change: Optional[datetime] = None


class Directory(ABC):
    """Read-only session against a realm's principal store

    Subclasses are loaded by name from the directories folder and must be named after
    their file (kadmin.py defines class kadmin).
    """

    name = None

    def __init__(self, realm: str, read_only: bool = True, logger=None, **options):
        if not read_only:
            raise ConfigurationError(f"The {self.name} directory can only be opened read-only")
        self.realm = realm
        self.read_only = read_only
        self.options = options
        self.logger = logger or KSAdapter(extra={"backend": self.name, "realm": realm})

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    @abstractmethod
    def open(self) -> "Directory":
        """Establish the session, raising DirectoryConnectionError on failure"""

    @abstractmethod
    def list(self, pattern: str = "*") -> Iterator[str]:  # noqa: A003
        """Principal names matching a glob pattern, in the store's order"""

    @abstractmethod
    def get(self, name: str) -> PrincipalRecord:
        """Fetch one principal, raising NotFoundError if it does not exist"""

    def close(self):
        pass

    def qualify(self, name: str) -> str:
        """Append the session realm to names that carry none"""
        if "@" in name or not self.realm:
            return name
        return f"{name}@{self.realm}"
