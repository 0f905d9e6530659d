"""Error kinds raised by krbstale.

Everything derives from KrbStaleError so the command line front end can
turn any of them into a message on stderr and a non-zero exit status.
"""


class KrbStaleError(Exception):
    """Base class for all krbstale errors"""


class ConfigurationError(KrbStaleError):
    """Missing or invalid operator input (cutoff, realm, regex, backend options)"""


class InputError(KrbStaleError):
    """The principal list could not be read"""


class DirectoryError(KrbStaleError):
    """A query against the principal store failed"""


class DirectoryConnectionError(DirectoryError):
    """The principal store could not be opened (unreachable or unauthorized)"""


class NotFoundError(DirectoryError):
    """The requested principal does not exist"""

    def __init__(self, principal, message=None):
        self.principal = principal
        super().__init__(message or f"Principal does not exist: {principal}")
