def dir_args(parser):
    """Define CLI arguments for the kadmin directory backend"""
    kadmin_group = parser.add_argument_group("kadmin", "Options for the kadmin backend (-b kadmin)")
    kadmin_group.add_argument("--remote", dest="local", action="store_const", const=False, default=None, help="Use the remote kadmin client instead of kadmin.local")
    kadmin_group.add_argument("--admin-principal", dest="principal", metavar="PRINCIPAL", help="Principal to authenticate as with the remote kadmin client")
    kadmin_group.add_argument("--keytab", metavar="KEYTAB", help="Keytab holding the admin principal's keys")
    kadmin_group.add_argument("--ccache", metavar="CCACHE", help="Credential cache to authenticate with instead of a keytab")
    kadmin_group.add_argument("--admin-server", dest="server", metavar="HOST[:PORT]", help="kadmind server to contact")
    kadmin_group.add_argument("--kadmin-timeout", dest="timeout", type=int, metavar="SECONDS", help="Timeout for each kadmin query")
    return kadmin_group
