import sys
import platform
from sys import exit

from krbstale.cli import gen_cli_args
from krbstale.config import backend_options, config_log, default_realm
from krbstale.directories.base import Directory
from krbstale.errors import ConfigurationError, KrbStaleError
from krbstale.filters import FilterConfig, compile_pattern, run
from krbstale.first_run import first_run_setup
from krbstale.loaders.directoryloader import DirectoryLoader
from krbstale.logger import KSAdapter, ks_logger, set_log_level
from krbstale.parsers.timestamps import parse_cutoff
from krbstale.source import from_file, from_wildcard


def build_filter_config(args):
    if not args.changed_before:
        raise ConfigurationError("A changed-before DATE is required")

    return FilterConfig(
        changed_after=parse_cutoff(args.changed_before),
        exclude_disabled=args.exclude_disabled,
        exclude_pattern=compile_pattern(args.exclude),
        expired_before=parse_cutoff(args.expired) if args.expired else None,
    )


def directory_options(args, backend, backend_dests):
    """Backend options from the config file, overridden by whatever was given on the command line"""
    options = backend_options(backend)
    for dest in backend_dests.get(backend, []):
        value = getattr(args, dest, None)
        if value is not None:
            options[dest] = value
    return options


def audit(config: FilterConfig, directory: Directory, names=None, pattern="*", output=None):
    """Write every stale principal to output as soon as it is found, return how many were written"""
    output = output or sys.stdout
    if names is None:
        names = from_wildcard(directory, pattern)

    count = 0
    for name in run(config, names, directory):
        output.write(f"{name}\n")
        output.flush()
        count += 1
    return count


def main():
    first_run_setup(ks_logger)
    args, backend_dests, version = gen_cli_args()

    if args.version:
        print(version)
        exit(0)

    set_log_level(args.verbose, args.debug)

    if config_log:
        ks_logger.add_file_log()
    if args.log:
        ks_logger.add_file_log(args.log)

    ks_logger.debug("PYTHON VERSION: " + sys.version)
    ks_logger.debug("RUNNING ON: " + platform.system() + " Release: " + platform.release())
    ks_logger.debug(f"Passed args: {args}")

    try:
        config = build_filter_config(args)
        ks_logger.debug(f"Filter config: {config}")

        realm = args.realm or default_realm
        if not realm:
            raise ConfigurationError("No realm given, use -r or set realm in krbstale.conf")

        directory_class = DirectoryLoader().get_directory_class(args.backend)
        options = directory_options(args, args.backend, backend_dests)
        logger = KSAdapter(extra={"backend": args.backend, "realm": realm})

        # read the list before opening the database so a bad path fails early
        names = from_file(args.file) if args.file else None

        with directory_class(realm, read_only=True, logger=logger, **options) as directory:
            count = audit(config, directory, names=names, pattern=args.pattern)
        logger.info(f"{count} principal(s) not changed since {config.changed_after:%Y-%m-%d %H:%M:%S %Z}")
    except KrbStaleError as e:
        ks_logger.fail(str(e))
        exit(1)
    except KeyboardInterrupt:
        ks_logger.debug("Got keyboard interrupt")
        exit(130)
    except Exception as e:
        ks_logger.debug("Unexpected error while auditing", exc_info=True)
        ks_logger.fail(f"Unexpected error: {e}")
        exit(1)


if __name__ == "__main__":
    main()
