from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from ldap3.core.exceptions import LDAPSocketOpenError

from krbstale.directories.ldap.ldap3_conn import Ldap3Connection
from krbstale.errors import ConfigurationError, DirectoryConnectionError, DirectoryError, NotFoundError
from krbstale.loaders.directoryloader import DirectoryLoader

BASE = "cn=EXAMPLE.ORG,cn=krbContainer,dc=example,dc=org"


@pytest.fixture
def ldap_module():
    loader = DirectoryLoader()
    return loader.load_directory(loader.get_directories()["ldap"]["path"])


@pytest.fixture
def directory(ldap_module):
    ldap_directory = ldap_module.ldap("EXAMPLE.ORG", uri="ldaps://kdc.example.org", base=BASE)
    ldap_directory.connection = MagicMock()
    ldap_directory.connection.result = {"result": 0, "description": "success"}
    return ldap_directory


def entry(**raw_attributes):
    return {"type": "searchResEntry", "raw_attributes": {key: [value.encode()] for key, value in raw_attributes.items()}}


class TestLdapOptions:
    """Test validation of the LDAP backend options."""

    def test_uri_required(self, ldap_module):
        with pytest.raises(ConfigurationError, match="URI"):
            ldap_module.ldap("EXAMPLE.ORG", base=BASE)

    def test_base_required(self, ldap_module):
        with pytest.raises(ConfigurationError, match="search base"):
            ldap_module.ldap("EXAMPLE.ORG", uri="ldap://kdc.example.org")

    def test_unsupported_scheme(self, ldap_module):
        with pytest.raises(ConfigurationError, match="scheme"):
            ldap_module.ldap("EXAMPLE.ORG", uri="http://kdc.example.org", base=BASE)

    def test_ldaps_defaults(self, ldap_module):
        directory = ldap_module.ldap("EXAMPLE.ORG", uri="ldaps://kdc.example.org", base=BASE)

        assert directory.host == "kdc.example.org"
        assert directory.port == 636
        assert directory.port_explicitly_set is True

    def test_bare_host_allows_fallback(self, ldap_module):
        directory = ldap_module.ldap("EXAMPLE.ORG", uri="kdc.example.org", base=BASE, page_size="50", kerberos="true")

        assert directory.port == 389
        assert directory.port_explicitly_set is False
        assert directory.page_size == 50
        assert directory.kerberos is True


class TestLdapSession:
    """Test binding to the LDAP server."""

    def test_failed_bind(self, ldap_module):
        directory = ldap_module.ldap("EXAMPLE.ORG", uri="ldap://kdc.example.org:389", base=BASE, logger=MagicMock())

        with patch.object(Ldap3Connection, "create_conn", return_value=None), pytest.raises(DirectoryConnectionError):
            directory.open()

    def test_bind_exception(self, ldap_module):
        directory = ldap_module.ldap("EXAMPLE.ORG", uri="ldap://kdc.example.org", base=BASE, logger=MagicMock())

        with patch.object(Ldap3Connection, "create_conn", side_effect=OSError("KDC unreachable")), \
                pytest.raises(DirectoryConnectionError, match="KDC unreachable"):
            directory.open()

    def test_open_and_close(self, ldap_module):
        connection = MagicMock()
        directory = ldap_module.ldap("EXAMPLE.ORG", uri="ldap://kdc.example.org", base=BASE, logger=MagicMock())

        with patch.object(Ldap3Connection, "create_conn", return_value=connection):
            with directory as session:
                assert session.connection is connection

        connection.unbind.assert_called_once()
        assert directory.connection is None

    def test_simple_bind_is_read_only(self):
        conn = Ldap3Connection("kdc.example.org", 389, "EXAMPLE.ORG", password="secret", bind_dn="cn=audit,dc=example,dc=org", port_explicitly_set=True)

        with patch("ldap3.Connection") as mock_connection:
            mock_connection.return_value.bound = True
            mock_connection.return_value.server.port = 389
            assert conn.create_conn() is mock_connection.return_value

        assert mock_connection.call_args.kwargs["read_only"] is True
        assert mock_connection.call_args.kwargs["user"] == "cn=audit,dc=example,dc=org"

    def test_simple_bind_falls_back_to_ldaps(self):
        conn = Ldap3Connection("kdc.example.org", 389, "EXAMPLE.ORG", logger=MagicMock())

        with patch("ldap3.Connection", side_effect=[LDAPSocketOpenError("refused"), MagicMock(bound=True)]) as mock_connection, \
                patch("ldap3.Server") as mock_server:
            assert conn.create_conn() is not None

        assert mock_connection.call_count == 2
        assert mock_server.call_args_list[1].kwargs == {"port": 636, "use_ssl": True, "get_info": "NO_INFO"}

    def test_failed_kerberos_binds_are_closed(self):
        conn = Ldap3Connection("kdc.example.org", 389, "EXAMPLE.ORG", kerberos=True, logger=MagicMock())
        first, second = MagicMock(), MagicMock()

        with patch.object(Ldap3Connection, "_do_gss_bind", side_effect=[(first, [{"result": 49}]), (second, [{"result": 49}])]):
            assert conn._gss_spnego_bind(MagicMock()) is None

        first.unbind.assert_called_once()
        second.unbind.assert_called_once()

    def test_kerberos_bind_keeps_successful_connection(self):
        conn = Ldap3Connection("kdc.example.org", 389, "EXAMPLE.ORG", kerberos=True, logger=MagicMock())
        failed, bound = MagicMock(), MagicMock()

        with patch.object(Ldap3Connection, "_do_gss_bind", side_effect=[(failed, [{"result": 49}]), (bound, [{"result": 0}])]):
            assert conn._gss_spnego_bind(MagicMock()) is bound

        failed.unbind.assert_called_once()
        bound.unbind.assert_not_called()

    def test_gss_bind_error_closes_connection(self):
        conn = Ldap3Connection("kdc.example.org", 389, "EXAMPLE.ORG", kerberos=True, port_explicitly_set=True)

        with patch("ldap3.Connection") as mock_connection, patch("ldap3.Server"), \
                patch("ldap3.operation.bind.bind_operation"):
            mock_connection.return_value.send.side_effect = OSError("connection reset")
            connection, error = conn._do_gss_bind(False, 389, MagicMock())

        assert connection is None
        assert isinstance(error, OSError)
        mock_connection.return_value.unbind.assert_called_once()

    def test_kcache_without_env(self, monkeypatch):
        monkeypatch.delenv("KRB5CCNAME", raising=False)
        logger = MagicMock()
        conn = Ldap3Connection("kdc.example.org", 389, "EXAMPLE.ORG", use_kcache=True, logger=logger)

        assert conn.create_conn() is None
        logger.fail.assert_called_once()


class TestLdapQueries:
    """Test enumeration and lookups against krbPrincipal entries."""

    def test_glob_to_filter(self, ldap_module):
        assert ldap_module.glob_to_filter("*") == "*"
        assert ldap_module.glob_to_filter("host/*@EXAMPLE.ORG") == "host/*@EXAMPLE.ORG"
        assert ldap_module.glob_to_filter("we(ird)*") == "we\\28ird\\29*"

    @pytest.mark.parametrize("pattern", ["user?@EXAMPLE.ORG", "host/[ab]*", "svc]"])
    def test_glob_without_ldap_equivalent(self, ldap_module, pattern):
        with pytest.raises(ConfigurationError, match="only supports"):
            ldap_module.glob_to_filter(pattern)

    def test_list_refuses_unsupported_glob(self, directory):
        with pytest.raises(ConfigurationError):
            list(directory.list("user?"))

        directory.connection.extend.standard.paged_search.assert_not_called()

    def test_list_uses_canonical_names_in_server_order(self, directory):
        directory.connection.extend.standard.paged_search.return_value = iter([
            entry(krbPrincipalName="zed@EXAMPLE.ORG"),
            {"type": "searchResRef", "uri": ["ldap://elsewhere"]},
            entry(krbPrincipalName="alias@EXAMPLE.ORG", krbCanonicalName="alpha@EXAMPLE.ORG"),
        ])

        assert list(directory.list("*")) == ["zed@EXAMPLE.ORG", "alpha@EXAMPLE.ORG"]
        kwargs = directory.connection.extend.standard.paged_search.call_args.kwargs
        assert kwargs["search_base"] == BASE
        assert kwargs["search_filter"] == "(&(objectClass=krbPrincipal)(krbPrincipalName=*))"
        assert kwargs["generator"] is True

    def test_list_errors(self, directory):
        directory.connection.extend.standard.paged_search.side_effect = LDAPSocketOpenError("connection lost")

        with pytest.raises(DirectoryError, match="connection lost"):
            list(directory.list("*"))

    def test_get_parses_entry(self, directory):
        directory.connection.response = [entry(
            krbPrincipalName="user@EXAMPLE.ORG",
            krbLastPwdChange="20190601120000Z",
            krbPasswordExpiration="20230101000000Z",
            krbTicketFlags="192",
        )]

        record = directory.get("user")

        assert record.name == "user@EXAMPLE.ORG"
        assert record.disallow_all_tix is True
        assert record.last_password_change == datetime(2019, 6, 1, 12, tzinfo=timezone.utc)
        assert record.password_expiration == datetime(2023, 1, 1, tzinfo=timezone.utc)
        search_filter = directory.connection.search.call_args.kwargs["search_filter"]
        assert search_filter == "(&(objectClass=krbPrincipal)(krbPrincipalName=user@EXAMPLE.ORG))"

    def test_get_missing_attributes_are_unset(self, directory):
        directory.connection.response = [entry(krbPrincipalName="svc@EXAMPLE.ORG", krbTicketFlags="128")]

        record = directory.get("svc@EXAMPLE.ORG")

        assert record.disallow_all_tix is False
        assert record.last_password_change is None
        assert record.password_expiration is None

    def test_get_missing_principal(self, directory):
        directory.connection.response = []

        with pytest.raises(NotFoundError) as exc_info:
            directory.get("ghost@EXAMPLE.ORG")

        assert exc_info.value.principal == "ghost@EXAMPLE.ORG"

    def test_get_search_failure(self, directory):
        directory.connection.result = {"result": 32, "description": "noSuchObject", "message": ""}
        directory.connection.response = []

        with pytest.raises(DirectoryError, match="noSuchObject"):
            directory.get("user@EXAMPLE.ORG")

    def test_get_bad_timestamp(self, directory):
        directory.connection.response = [entry(krbPrincipalName="user@EXAMPLE.ORG", krbLastPwdChange="garbage")]

        with pytest.raises(DirectoryError, match="Unable to parse"):
            directory.get("user@EXAMPLE.ORG")
