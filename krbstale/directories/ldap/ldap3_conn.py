import os
from datetime import datetime, timezone

import ldap3
import ldap3.operation.bind

from impacket.krb5 import constants
from impacket.krb5.kerberosv5 import getKerberosTGS, getKerberosTGT
from impacket.krb5.ccache import CCache
from impacket.krb5.types import Principal, KerberosTime, Ticket
from impacket.krb5.asn1 import TGS_REP, AP_REQ, Authenticator, seq_set
from impacket.spnego import SPNEGO_NegTokenInit, TypesMech

from pyasn1.codec.ber import decoder as der_decoder, encoder as ber_encoder
from pyasn1.type.univ import noValue


class Ldap3Connection:
    """
    Wrapper class for creating read-only ldap3.Connection instances against a KDC's LDAP backend.

    Supports:
    - anonymous and simple (DN + password) binds
    - Kerberos authentication (password or ccache) through a GSS-SPNEGO bind
    - Automatic fallback from LDAP:389 to LDAPS:636 when no port was given
    """

    def __init__(
        self,
        host: str,
        port: int,
        realm: str,
        username: str = "",
        password: str = "",
        bind_dn: str = "",
        kdcHost: str | None = None,
        kerberos: bool = False,
        use_kcache: bool = False,
        port_explicitly_set: bool = False,
        logger=None,
    ):
        self.host = host
        self.port = port
        self.realm = realm
        self.username = username
        self.password = password
        self.bind_dn = bind_dn
        self.kdcHost = kdcHost
        self.kerberos = kerberos
        self.use_kcache = use_kcache
        self.port_explicitly_set = port_explicitly_set
        self.logger = logger

        self._connection = None

    def _log_info(self, msg):
        if self.logger:
            self.logger.info(msg)

    def _log_debug(self, msg):
        if self.logger:
            self.logger.debug(msg)

    def _log_fail(self, msg):
        if self.logger:
            self.logger.fail(msg)

    def _discard(self, connection):
        """Close the socket left open by a failed bind attempt"""
        if connection is None:
            return
        try:
            connection.unbind()
        except Exception as e:
            self._log_debug(f"Error while closing unbound connection: {e}")

    def _ports_to_try(self):
        ports_to_try = [(self.port, self.port == 636)]
        if not self.port_explicitly_set:
            fallback_port = (636, True) if self.port == 389 else (389, False)
            ports_to_try.append(fallback_port)
        return ports_to_try

    def _server(self, use_ssl: bool, bind_port: int):
        return ldap3.Server(
            self.host,
            port=bind_port,
            use_ssl=use_ssl,
            get_info=ldap3.NONE,
        )

    def create_conn(self):
        if self.kerberos or self.use_kcache:
            return self._kerberos_connect()

        return self._simple_connect()

    def _do_simple_bind(self, use_ssl: bool, bind_port: int):
        try:
            if self.bind_dn:
                conn = ldap3.Connection(
                    self._server(use_ssl, bind_port),
                    user=self.bind_dn,
                    password=self.password,
                    authentication=ldap3.SIMPLE,
                    read_only=True,
                    auto_bind=True,
                )
            else:
                conn = ldap3.Connection(
                    self._server(use_ssl, bind_port),
                    authentication=ldap3.ANONYMOUS,
                    read_only=True,
                    auto_bind=True,
                )
            return conn, {"result": 0}
        except Exception as e:
            return None, e

    def _simple_connect(self):
        connection = None
        last_error = None

        for bind_port, use_ssl in self._ports_to_try():
            bound_connection, bind_result = self._do_simple_bind(use_ssl, bind_port)
            if bound_connection and getattr(bound_connection, "bound", False):
                connection = bound_connection
                break
            self._discard(bound_connection)
            last_error = bind_result

        if not connection:
            self._log_fail(f"{'Simple' if self.bind_dn else 'Anonymous'} bind failed: {last_error}")
            return None

        self._connection = connection
        protocol_info = "LDAPS:636" if connection.server.port == 636 else f"LDAP:{connection.server.port}"
        self._log_info(f"ldap3 {'simple' if self.bind_dn else 'anonymous'} bind over {protocol_info} established")
        return connection

    def _kerberos_connect(self):
        realm = (self.realm or "").upper()
        host_fqdn = self.host

        TGT = None
        TGS = None

        if self.use_kcache:
            result = self._load_from_ccache(realm, host_fqdn)
            if result is None:
                return None
            TGT, TGS, realm = result

        user_principal = Principal(self.username or "", type=constants.PrincipalNameType.NT_PRINCIPAL.value)

        if not TGT and not TGS:
            tgt_blob, cipher, _, session_key = getKerberosTGT(user_principal, self.password, realm, b"", b"", "", self.kdcHost)
            TGT = {"KDC_REP": tgt_blob, "cipher": cipher, "sessionKey": session_key}
        else:
            cipher = (TGT or TGS)["cipher"]
            session_key = (TGT or TGS)["sessionKey"]

        # Ensure we have a ST for ldap/<FQDN>
        if not TGS:
            service_principal = Principal(f"ldap/{host_fqdn}", type=constants.PrincipalNameType.NT_SRV_INST.value)
            tgs_blob, cipher, _, session_key = getKerberosTGS(service_principal, realm, self.kdcHost, TGT["KDC_REP"], TGT["cipher"], TGT["sessionKey"])
            TGS = {"KDC_REP": tgs_blob, "cipher": cipher, "sessionKey": session_key}

        spnego_blob = self._build_spnego_blob(TGS, user_principal, realm, cipher, session_key)

        return self._gss_spnego_bind(spnego_blob)

    def _load_from_ccache(self, realm, host_fqdn):
        try:
            ccname = os.getenv("KRB5CCNAME")
            if not ccname:
                self._log_fail("KRB5CCNAME environment variable is not set")
                return None
            ccache = CCache.loadFile(ccname)

            if not realm:
                realm = ccache.principal.realm["data"].decode().upper()
            if not self.username:
                self.username = "/".join(component["data"].decode() for component in ccache.principal.components)

            spn_candidates = [
                f"ldap/{host_fqdn.lower()}@{realm}",
                f"ldap/{host_fqdn.upper()}@{realm}",
            ]
            TGS = None
            for spn in spn_candidates:
                creds = ccache.getCredential(spn)
                if creds:
                    TGS = creds.toTGS(spn)
                    break

            TGT = None
            if not TGS:
                krbtgt_credential = ccache.getCredential(f"krbtgt/{realm}@{realm}")
                if krbtgt_credential:
                    TGT = krbtgt_credential.toTGT()

            if not TGS and not TGT:
                self._log_fail("Kerberos cache selected (--use-kcache) but no usable TGT/TGS found in cache.")
                return None

            return TGT, TGS, realm
        except Exception as e:
            self._log_fail(f"Failed to read Kerberos cache (--use-kcache): {e}")
            return None

    def _build_spnego_blob(self, TGS, user_principal, realm, cipher, session_key):
        spnego_token = SPNEGO_NegTokenInit()
        spnego_token["MechTypes"] = [TypesMech["MS KRB5 - Microsoft Kerberos 5"]]

        tgs_rep = der_decoder.decode(TGS["KDC_REP"], asn1Spec=TGS_REP())[0]
        ticket = Ticket()
        ticket.from_asn1(tgs_rep["ticket"])

        apReq = AP_REQ()
        apReq["pvno"] = 5
        apReq["msg-type"] = int(constants.ApplicationTagNumbers.AP_REQ.value)
        apReq["ap-options"] = constants.encodeFlags([])
        seq_set(apReq, "ticket", ticket.to_asn1)

        auth = Authenticator()
        auth["authenticator-vno"] = 5
        auth["crealm"] = realm
        seq_set(auth, "cname", user_principal.components_to_asn1)
        now = datetime.now(timezone.utc)
        auth["ctime"] = KerberosTime.to_asn1(now)
        auth["cusec"] = now.microsecond

        # key usage 11: AP-REQ authenticator
        enc_auth = cipher.encrypt(session_key, 11, ber_encoder.encode(auth), None)
        apReq["authenticator"] = noValue
        apReq["authenticator"]["etype"] = cipher.enctype
        apReq["authenticator"]["cipher"] = enc_auth
        spnego_token["MechToken"] = ber_encoder.encode(apReq)

        return spnego_token

    def _do_gss_bind(self, use_ssl: bool, bind_port: int, spnego_blob):
        ldap_connection = None
        try:
            ldap_connection = ldap3.Connection(
                self._server(use_ssl, bind_port),
                authentication=ldap3.SASL,
                sasl_mechanism="GSS-SPNEGO",
                read_only=True,
                auto_bind=False,
            )
            if ldap_connection.closed:
                ldap_connection.open(read_server_info=False)

            bind_request = ldap3.operation.bind.bind_operation(
                ldap_connection.version, ldap3.SASL, (self.username or ""), None, "GSS-SPNEGO", spnego_blob.getData()
            )
            ldap_connection.sasl_in_progress = True
            bind_response = ldap_connection.post_send_single_response(ldap_connection.send("bindRequest", bind_request, None))
            ldap_connection.sasl_in_progress = False

            return ldap_connection, bind_response
        except Exception as error:
            self._discard(ldap_connection)
            return None, error

    def _gss_spnego_bind(self, spnego_blob):
        connection = None
        last_response = None

        for bind_port, use_ssl in self._ports_to_try():
            connection, last_response = self._do_gss_bind(use_ssl, bind_port, spnego_blob)
            if isinstance(last_response, list) and last_response and isinstance(last_response[0], dict) and last_response[0].get("result", None) == 0:
                break
            self._discard(connection)
            connection = None

        is_valid_response = isinstance(last_response, list) and last_response and isinstance(last_response[0], dict)
        if not (is_valid_response and last_response[0].get("result", 1) == 0):
            error_detail = last_response[0] if is_valid_response else last_response
            self._log_fail(f"ldap3 Kerberos bind failed: {error_detail}")
            return None

        connection.bound = True
        self._connection = connection
        self._log_info("ldap3 Kerberos connection established")
        return connection

    @property
    def connection(self):
        """Return the current connection."""
        return self._connection
