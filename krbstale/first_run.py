from os import makedirs
from os.path import exists
from os.path import join as path_join
import shutil
from krbstale.paths import KS_PATH, CONFIG_PATH, DATA_PATH
from krbstale.logger import ks_logger


def first_run_setup(logger=ks_logger):
    if not exists(KS_PATH):
        logger.display("First time use detected")
        logger.display("Creating home directory structure")
        makedirs(KS_PATH)

    if not exists(path_join(KS_PATH, "logs")):
        logger.display("Creating missing folder logs")
        makedirs(path_join(KS_PATH, "logs"))

    if not exists(CONFIG_PATH):
        logger.display("Copying default configuration file")
        default_path = path_join(DATA_PATH, "krbstale.conf")
        shutil.copy(default_path, CONFIG_PATH)
