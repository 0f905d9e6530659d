from types import ModuleType
from importlib.machinery import SourceFileLoader
from os import listdir
from os.path import join as path_join
from os.path import exists

from krbstale.errors import ConfigurationError
from krbstale.paths import DIRECTORIES_PATH


class DirectoryLoader:
    def load_directory(self, directory_path):
        loader = SourceFileLoader("directory", directory_path)
        directory = ModuleType(loader.name)
        loader.exec_module(directory)
        return directory

    def get_directories(self):
        directories = {}

        for directory in listdir(DIRECTORIES_PATH):
            if directory[-3:] == ".py" and directory[:-3] not in ("__init__", "base"):
                directory_path = path_join(DIRECTORIES_PATH, directory)
                directory_name = directory[:-3]

                directories[directory_name] = {"path": directory_path}

                dir_args_path = path_join(DIRECTORIES_PATH, directory_name, "dir_args.py")
                if exists(dir_args_path):
                    directories[directory_name]["argspath"] = dir_args_path
        return directories

    def get_directory_class(self, name):
        directories = self.get_directories()
        if name not in directories:
            raise ConfigurationError(f"Unknown directory backend '{name}', available: {', '.join(sorted(directories))}")
        return getattr(self.load_directory(directories[name]["path"]), name)
