import os
import tempfile

# point the config home at a scratch directory before krbstale.paths is imported
os.environ["XDG_CONFIG_HOME"] = tempfile.mkdtemp(prefix="krbstale-tests-")

import pytest  # noqa: E402

from krbstale.directories.base import Directory, PrincipalRecord  # noqa: E402
from krbstale.errors import NotFoundError  # noqa: E402


class FakeDirectory(Directory):
    """In-memory directory recording every lookup"""

    name = "fake"

    def __init__(self, records=None, listing=None, errors=None, realm="EXAMPLE.ORG", **options):
        super().__init__(realm, **options)
        self.records = records or {}
        self.listing = listing
        self.errors = errors or {}
        self.get_calls = []
        self.list_calls = []
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True
        return self

    def close(self):
        self.closed = True

    def list(self, pattern="*"):  # noqa: A003
        self.list_calls.append(pattern)
        yield from (self.listing if self.listing is not None else self.records)

    def get(self, name):
        self.get_calls.append(name)
        if name in self.errors:
            raise self.errors[name]
        if name not in self.records:
            raise NotFoundError(name)
        return self.records[name]


@pytest.fixture
def fake_directory():
    return FakeDirectory


@pytest.fixture
def record():
    def make_record(name="user@EXAMPLE.ORG", **fields):
        return PrincipalRecord(name=name, **fields)
    return make_record
