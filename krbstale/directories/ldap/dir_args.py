def dir_args(parser):
    """Define CLI arguments for the LDAP directory backend"""
    ldap_group = parser.add_argument_group("LDAP", "Options for the LDAP backend (-b ldap), KDCs using the krb5 LDAP schema")
    ldap_group.add_argument("--uri", metavar="URI", help="LDAP server, e.g. ldaps://kdc.example.org")
    ldap_group.add_argument("--base", metavar="DN", help="Search base holding the principals, e.g. cn=EXAMPLE.ORG,cn=krbContainer,dc=example,dc=org")
    ldap_group.add_argument("--bind-dn", dest="bind_dn", metavar="DN", help="DN for a simple bind (anonymous if omitted)")
    ldap_group.add_argument("--ldap-user", dest="username", metavar="PRINCIPAL", help="Principal to bind as with Kerberos (taken from the ccache if omitted)")
    ldap_group.add_argument("--bind-password", dest="password", metavar="PASSWORD", help="Password for the simple or Kerberos bind")
    ldap_group.add_argument("-k", "--kerberos", action="store_const", const=True, default=None, help="Bind with Kerberos (GSS-SPNEGO)")
    ldap_group.add_argument("--use-kcache", dest="use_kcache", action="store_const", const=True, default=None, help="Use the Kerberos credential cache in KRB5CCNAME")
    ldap_group.add_argument("--kdcHost", dest="kdc_host", metavar="KDC", help="KDC to request tickets from")
    ldap_group.add_argument("--page-size", dest="page_size", type=int, metavar="N", help="Entries per page when enumerating principals")
    return ldap_group
