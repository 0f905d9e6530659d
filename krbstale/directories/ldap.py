#!/usr/bin/env python3

from urllib.parse import urlparse

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from krbstale.directories.base import DISALLOW_ALL_TIX, Directory, PrincipalRecord
from krbstale.directories.ldap.ldap3_conn import Ldap3Connection
from krbstale.errors import ConfigurationError, DirectoryConnectionError, DirectoryError, NotFoundError
from krbstale.helpers.misc import to_bool, to_int
from krbstale.parsers.timestamps import parse_generalized_time

PRINCIPAL_ATTRIBUTES = ["krbPrincipalName", "krbCanonicalName", "krbLastPwdChange", "krbPasswordExpiration", "krbTicketFlags"]
UNSUPPORTED_GLOB_CHARS = "?[]"


def glob_to_filter(pattern):
    """Turn a kadmin style glob into an LDAP assertion value, keeping * as the wildcard

    LDAP substring filters have no single character or bracket wildcard, so ? and [...]
    are refused rather than matched literally.
    """
    unsupported = sorted(set(pattern) & set(UNSUPPORTED_GLOB_CHARS))
    if unsupported:
        raise ConfigurationError(f"The ldap backend only supports * in patterns, got {''.join(unsupported)} in {pattern!r}")
    return "*".join(escape_filter_chars(part) for part in pattern.split("*"))


def first_value(raw_attributes, attribute):
    values = raw_attributes.get(attribute) or []
    if not values:
        return None
    value = values[0]
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class ldap(Directory):
    """
    Principal store of a KDC using the krb5 LDAP schema (krbPrincipal objects).

    Needs the URI of the LDAP server and the search base holding the principals,
    usually the realm container (cn=REALM,cn=krbContainer,...). The connection is
    opened read-only.
    """

    name = "ldap"

    def __init__(self, realm, read_only=True, logger=None, **options):
        super().__init__(realm, read_only, logger, **options)
        if not options.get("uri"):
            raise ConfigurationError("The ldap backend needs a server URI (--uri or uri in the [ldap] config section)")
        if not options.get("base"):
            raise ConfigurationError("The ldap backend needs a search base (--base or base in the [ldap] config section)")

        uri = urlparse(options["uri"] if "://" in options["uri"] else f"ldap://{options['uri']}")
        if uri.scheme not in ("ldap", "ldaps"):
            raise ConfigurationError(f"Unsupported LDAP URI scheme: {uri.scheme}")

        self.host = uri.hostname
        self.port = uri.port or (636 if uri.scheme == "ldaps" else 389)
        self.port_explicitly_set = uri.port is not None or uri.scheme == "ldaps"
        self.base = options["base"]
        self.page_size = to_int(options.get("page_size", 500), "page_size")
        self.kerberos = to_bool(options.get("kerberos", False))
        self.use_kcache = to_bool(options.get("use_kcache", False))
        self.connection = None

    def open(self):
        self.logger.debug(f"Connecting to {self.host}:{self.port}")
        ldap3_conn = Ldap3Connection(
            host=self.host,
            port=self.port,
            realm=self.realm,
            username=self.options.get("username", ""),
            password=self.options.get("password", ""),
            bind_dn=self.options.get("bind_dn", ""),
            kdcHost=self.options.get("kdc_host"),
            kerberos=self.kerberos,
            use_kcache=self.use_kcache,
            port_explicitly_set=self.port_explicitly_set,
            logger=self.logger,
        )
        try:
            self.connection = ldap3_conn.create_conn()
        except Exception as e:
            raise DirectoryConnectionError(f"Unable to bind to {self.host}: {e}") from e
        if self.connection is None:
            raise DirectoryConnectionError(f"Unable to bind to {self.host}:{self.port}")
        return self

    def close(self):
        if self.connection is not None:
            self.connection.unbind()
            self.connection = None

    def list(self, pattern="*"):  # noqa: A003
        search_filter = f"(&(objectClass=krbPrincipal)(krbPrincipalName={glob_to_filter(pattern)}))"
        self.logger.debug(f"Search Filter={search_filter}")
        try:
            entries = self.connection.extend.standard.paged_search(
                search_base=self.base,
                search_filter=search_filter,
                search_scope=ldap3.SUBTREE,
                attributes=["krbPrincipalName", "krbCanonicalName"],
                paged_size=self.page_size,
                generator=True,
            )
            for entry in entries:
                if entry.get("type") != "searchResEntry":
                    continue
                raw_attributes = entry["raw_attributes"]
                name = first_value(raw_attributes, "krbCanonicalName") or first_value(raw_attributes, "krbPrincipalName")
                if name:
                    yield name
        except LDAPException as e:
            raise DirectoryError(f"Error while enumerating principals: {e}") from e

    def get(self, name):
        principal = self.qualify(name)
        search_filter = f"(&(objectClass=krbPrincipal)(krbPrincipalName={escape_filter_chars(principal)}))"
        try:
            self.connection.search(
                search_base=self.base,
                search_filter=search_filter,
                search_scope=ldap3.SUBTREE,
                attributes=PRINCIPAL_ATTRIBUTES,
            )
        except LDAPException as e:
            raise DirectoryError(f"Error while retrieving {principal}: {e}") from e

        result = self.connection.result or {}
        if result.get("result", 0) != 0:
            raise DirectoryError(f"Error while retrieving {principal}: {result.get('description')} {result.get('message', '')}".strip())

        entries = [entry for entry in self.connection.response or [] if entry.get("type") == "searchResEntry"]
        if not entries:
            raise NotFoundError(principal)
        return parse_entry(principal, entries[0]["raw_attributes"])


def parse_entry(name, raw_attributes):
    """Turn the raw attributes of a krbPrincipal entry into a PrincipalRecord"""
    try:
        flags = int(first_value(raw_attributes, "krbTicketFlags") or 0)
        last_change = first_value(raw_attributes, "krbLastPwdChange")
        expiration = first_value(raw_attributes, "krbPasswordExpiration")
        return PrincipalRecord(
            name=first_value(raw_attributes, "krbCanonicalName") or name,
            disallow_all_tix=bool(flags & DISALLOW_ALL_TIX),
            password_expiration=parse_generalized_time(expiration) if expiration else None,
            last_password_change=parse_generalized_time(last_change) if last_change else None,
        )
    except ValueError as e:
        raise DirectoryError(f"Unable to parse the attributes of {name}: {e}") from e
