#!/usr/bin/env python3

import os
import re
import shutil
import subprocess

from krbstale.directories.base import Directory, PrincipalRecord
from krbstale.errors import DirectoryConnectionError, DirectoryError, NotFoundError
from krbstale.helpers.misc import to_bool, to_int
from krbstale.parsers.timestamps import parse_kadmin_time

# com_err style failures: "get_principal: Principal does not exist while retrieving ..."
KADMIN_ERROR = re.compile(r"^\S+: .+ while .+$", re.MULTILINE)
NOT_FOUND = "Principal does not exist"

LAST_CHANGE_KEYS = ("Last password change",)
EXPIRATION_KEYS = ("Password expiration date", "Password expires")


class kadmin(Directory):
    """
    Principal store reached through the MIT kadmin command line tools.

    By default kadmin.local is run against the local KDC database (or a replica of
    it); with local = False the remote kadmin client is used, authenticating with a
    keytab or credential cache. Only listprincs, getprinc and getprivs are ever sent.
    """

    name = "kadmin"

    def __init__(self, realm, read_only=True, logger=None, **options):
        super().__init__(realm, read_only, logger, **options)
        self.local = to_bool(options.get("local", True))
        self.timeout = to_int(options.get("timeout", 0), "timeout") or None
        self.command = None

    def build_command(self):
        if self.local:
            executable = self.options.get("kadmin_local_path", "kadmin.local")
        else:
            executable = self.options.get("kadmin_path", "kadmin")

        executable_path = shutil.which(executable)
        if executable_path is None:
            raise DirectoryConnectionError(f"{executable} not found, is the krb5 admin tooling installed?")

        command = [executable_path]
        if self.realm:
            command += ["-r", self.realm]
        if not self.local:
            if self.options.get("principal"):
                command += ["-p", self.options["principal"]]
            if self.options.get("keytab"):
                command += ["-k", "-t", self.options["keytab"]]
            elif self.options.get("ccache"):
                command += ["-c", self.options["ccache"]]
            if self.options.get("server"):
                command += ["-s", self.options["server"]]
        return command

    def open(self):
        self.command = self.build_command()
        self.logger.debug(f"kadmin command: {' '.join(self.command)}")
        try:
            self.query("getprivs")
        except DirectoryConnectionError:
            raise
        except DirectoryError as e:
            raise DirectoryConnectionError(f"Unable to open the {self.realm} database: {e}") from e
        self.logger.info(f"Opened {'local' if self.local else 'remote'} kadmin session")
        return self

    def close(self):
        self.command = None

    def query(self, query):
        """Run a single kadmin query and return its output lines"""
        if self.command is None:
            raise DirectoryError("kadmin session is not open")

        self.logger.debug(f"kadmin query: {query}")
        try:
            result = subprocess.run(
                [*self.command, "-q", query],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env={**os.environ, "TZ": "UTC"},
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise DirectoryError(f"kadmin query '{query}' timed out after {self.timeout}s") from e
        except OSError as e:
            raise DirectoryConnectionError(f"Unable to run kadmin: {e}") from e

        stderr = result.stderr.strip()
        if NOT_FOUND in stderr:
            raise NotFoundError(query.split(" ", 1)[-1].strip('"'), stderr)
        error = KADMIN_ERROR.search(stderr)
        if result.returncode != 0 or error:
            raise DirectoryError(error.group(0) if error else (stderr or f"kadmin exited with status {result.returncode}"))

        return [line for line in result.stdout.splitlines() if line.strip() and not line.startswith("Authenticating as principal")]

    def list(self, pattern="*"):  # noqa: A003
        for line in self.query(f'listprincs "{pattern}"'):
            yield line.strip()

    def get(self, name):
        try:
            lines = self.query(f'getprinc "{name}"')
        except NotFoundError as e:
            raise NotFoundError(name, str(e)) from e
        return parse_getprinc(name, lines)


def parse_getprinc(name, lines):
    """Turn getprinc output into a PrincipalRecord"""
    fields = {}
    for line in lines:
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()

    if "Principal" not in fields:
        raise DirectoryError(f"Unexpected getprinc output for {name}")

    try:
        last_change = next((parse_kadmin_time(fields[key]) for key in LAST_CHANGE_KEYS if key in fields), None)
        expiration = next((parse_kadmin_time(fields[key]) for key in EXPIRATION_KEYS if key in fields), None)
    except (ValueError, OverflowError) as e:
        raise DirectoryError(f"Unable to parse dates of {name}: {e}") from e

    attributes = fields.get("Attributes", "").upper().replace("-", "_").split()

    return PrincipalRecord(
        name=fields["Principal"],
        disallow_all_tix="DISALLOW_ALL_TIX" in attributes,
        password_expiration=expiration,
        last_password_change=last_change,
    )
