"""Where the principal names to audit come from: an operator list or the directory itself."""
import sys

from krbstale.errors import InputError
from krbstale.logger import ks_logger


def from_list(lines):
    """Yield one principal name per non-empty line, in the given order

    Names are not validated here, a malformed one fails at lookup time.
    """
    for line in lines:
        name = line.strip()
        if name:
            yield name


def from_file(path):
    """Read a principal list from path ("-" for stdin)"""
    ks_logger.debug(f"Reading principal list from {path}")
    try:
        if path == "-":
            return list(from_list(sys.stdin))
        with open(path, encoding="utf-8") as principal_file:
            return list(from_list(principal_file))
    except OSError as e:
        raise InputError(f"Unable to read principal list {path}: {e.strerror or e}") from e
    except UnicodeDecodeError as e:
        raise InputError(f"Principal list {path} is not valid UTF-8: {e}") from e


def from_wildcard(directory, pattern="*"):
    """Enumerate principals matching a glob pattern, in whatever order the directory returns them"""
    ks_logger.debug(f"Enumerating principals matching {pattern!r}")
    yield from directory.list(pattern)
