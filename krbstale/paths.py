import os
import krbstale

if "XDG_CONFIG_HOME" in os.environ:  # noqa: SIM108
    KS_PATH = os.path.join(os.getenv("XDG_CONFIG_HOME"), "krbstale")
else:
    KS_PATH = os.path.normpath(os.path.expanduser("~/.krbstale"))

CONFIG_PATH = os.path.join(KS_PATH, "krbstale.conf")
LOGS_PATH = os.path.join(KS_PATH, "logs")
DATA_PATH = os.path.join(os.path.dirname(krbstale.__file__), "data")
DIRECTORIES_PATH = os.path.join(os.path.dirname(krbstale.__file__), "directories")
