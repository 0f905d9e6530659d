import argparse
import argcomplete
import importlib.metadata
from krbstale.loaders.directoryloader import DirectoryLoader
from krbstale.helpers.misc import highlight
from krbstale.helpers.args import DisplayDefaultsNotNone
from krbstale.logger import ks_logger, setup_debug_logging
from krbstale.config import default_backend, default_pattern, default_realm


def gen_cli_args():
    setup_debug_logging()

    try:
        VERSION = importlib.metadata.version("krbstale")
    except importlib.metadata.PackageNotFoundError:
        VERSION = "unknown"

    parser = argparse.ArgumentParser(
        description=f"""
Report Kerberos principals whose password has not changed since DATE.

DATE is any date/time (e.g. 2024-01-01, "2024-01-01 12:00 UTC") or an age
such as 90d, 12w, 6m or 1y. Matching principal names are written to stdout,
one per line.

{highlight('Version', 'red')}: {highlight(VERSION)}
""",
        formatter_class=DisplayDefaultsNotNone,
        allow_abbrev=False,
    )
    parser.add_argument("changed_before", metavar="DATE", nargs="?", help="Report principals whose password was last changed at or before this instant, given as a date (a date alone means local midnight) or an age such as 90d")

    ggroup = parser.add_argument_group("Generic", "Generic options")
    ggroup.add_argument("--version", action="store_true", help="Display krbstale version")
    ggroup.add_argument("-r", "--realm", default=default_realm, help="Realm to audit")
    ggroup.add_argument("-b", "--backend", default=default_backend, help="Directory backend used to reach the principal database")

    ogroup = parser.add_argument_group("Output", "Output options")
    verbosity = ogroup.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true")
    verbosity.add_argument("--debug", action="store_true")
    ogroup.add_argument("--log", metavar="LOG", help="Also log to this file")

    sgroup = parser.add_argument_group("Selection", "Which principals to look at")
    sgroup.add_argument("-f", "--file", metavar="FILE", help="Read principal names from FILE (one per line, - for stdin) instead of enumerating the realm")
    sgroup.add_argument("-p", "--pattern", default=default_pattern, help="Glob pattern used to enumerate principals (the ldap backend supports * only)")

    fgroup = parser.add_argument_group("Filters", "Principals to leave out of the report")
    fgroup.add_argument("-d", "--exclude-disabled", action="store_true", help="Skip principals with DISALLOW_ALL_TIX set")
    fgroup.add_argument("-e", "--exclude", metavar="REGEX", help="Skip principals whose name matches REGEX")
    fgroup.add_argument("-E", "--expired", metavar="DATE", help="Skip principals whose password expired before DATE")

    # --- Load directory backend arguments dynamically ---
    backend_dests = {}
    d_loader = DirectoryLoader()
    try:
        directories = d_loader.get_directories()
    except Exception:
        directories = {}
    for name, directory in directories.items():
        if "argspath" not in directory:
            backend_dests[name] = []
            continue
        try:
            group = d_loader.load_directory(directory["argspath"]).dir_args(parser)
            backend_dests[name] = [action.dest for action in group._group_actions]
        except Exception as e:
            ks_logger.exception(f"Error loading dir_args for {name}: {e}")

    argcomplete.autocomplete(parser, always_complete_options=False)
    args = parser.parse_args()

    return args, backend_dests, VERSION
