"""
Settings for the mrpool command line, read from an optional YAML file.

Recognised keys, with their defaults where they have one:

.. code-block:: yaml

    mapreduce:
      threads: 0           # 0 runs in the calling thread
      backend: thread      # thread | process
    slab:
      blocksize: 100
    wordcount:
      top: 10              # 0 prints every word
    pool:
      ready_timeout: 30    # process backend only
      start_method: spawn  # process backend only

Command-line options take precedence over the file.
"""

from typing import Any, Dict, Optional
import yaml
import os

from .core.errors import ArgumentError

DEFAULTS = {
    "mapreduce.threads": 0,
    "mapreduce.backend": "thread",
    "slab.blocksize": 100,
    "wordcount.top": 10,
}

PROCESS_POOL_OPTIONS = ("ready_timeout", "start_method")


class Config:
    """Dot-notation access (e.g. 'mapreduce.threads') to nested settings."""

    def __init__(self, config_data: Optional[Dict[str, Any]] = None):
        self._config = config_data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Returns the value under a dotted key, or `default` if any part of the
        key is missing.

        Example:
            >>> Config({'mapreduce': {'threads': 4}}).get('mapreduce.threads')
            4
        """
        value = self._config
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return default
            value = value[k]
        return value

    def setting(self, key: str, override: Any = None) -> Any:
        """
        Resolves a setting: `override` (a command-line value) unless it is
        None, then the file, then `DEFAULTS`.
        """
        if override is not None:
            return override
        return self.get(key, DEFAULTS.get(key))

    def pool_options(self, backend: str) -> Dict[str, Any]:
        """The configured ``pool.*`` options that `backend` accepts."""
        if backend != "process":
            return {}
        options = {}
        for name in PROCESS_POOL_OPTIONS:
            value = self.get(f"pool.{name}")
            if value is not None:
                options[name] = value
        return options


def load_config(path: Optional[str]) -> Config:
    """
    Loads settings from a YAML file. Without a file every setting falls back
    to its default.

    :param path: The path to the YAML file, or None.
    :return: A Config object with the loaded data.
    :raises yaml.YAMLError: If the file is not valid YAML.
    :raises ArgumentError: If the file does not hold a mapping.
    """
    if not path or not os.path.exists(path):
        return Config()

    with open(path, "r") as f:
        config_data = yaml.safe_load(f)

    if config_data is not None and not isinstance(config_data, dict):
        raise ArgumentError(
            f"config file {path} must contain a mapping, got {type(config_data).__name__}"
        )
    return Config(config_data)
