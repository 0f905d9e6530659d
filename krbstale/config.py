from os.path import join as path_join
import configparser
from krbstale.paths import CONFIG_PATH, DATA_PATH
from krbstale.first_run import first_run_setup
from krbstale.logger import ks_logger

ks_default_config = configparser.ConfigParser()
ks_default_config.read(path_join(DATA_PATH, "krbstale.conf"))

ks_config = configparser.ConfigParser()
ks_config.read(CONFIG_PATH)

if "krbstale" not in ks_config.sections():
    first_run_setup()
    ks_config.read(CONFIG_PATH)

# Check if there are any missing options in the config file
for section in ks_default_config.sections():
    if not ks_config.has_section(section):
        ks_config.add_section(section)
    for option in ks_default_config.options(section):
        if not ks_config.has_option(section, option):
            ks_logger.display(f"Adding missing option '{option}' in config section '{section}' to krbstale.conf")
            ks_config.set(section, option, ks_default_config.get(section, option))

            with open(CONFIG_PATH, "w") as config_file:
                ks_config.write(config_file)

# THESE OPTIONS HAVE TO EXIST IN THE DEFAULT CONFIG FILE
default_realm = ks_config.get("krbstale", "realm", fallback="") or None
default_backend = ks_config.get("krbstale", "backend", fallback="kadmin")
default_pattern = ks_config.get("krbstale", "pattern", fallback="*")
config_log = ks_config.getboolean("krbstale", "log_mode", fallback=False)


def backend_options(backend):
    """Return the config section of a directory backend as a plain dict (empty values dropped)"""
    if not ks_config.has_section(backend):
        return {}
    return {key: value for key, value in ks_config.items(backend) if value != ""}
