"""Operator-facing configuration of a testnet

A configuration is assembled from, in increasing priority: built-in defaults, a `testnet.toml` file,
environment variables and explicit overrides (usually command line flags).

Example `testnet.toml`:

```toml
base_dir = "/tmp/testnet"
log_dir = "logs"
replica_version = "0.9.0"
replica_binary = "ic/target/debug/replica"
profile = "local"
addresses = ["127.0.1.1:8080", "127.0.2.1:8080"]
# `{profile}` is replaced with the selected profile
generator_command = ["cargo", "run", "--features", "{profile}", "--"]
```

The file is looked up in `$XDG_CONFIG_HOME/ic-testnet-kit/testnet.toml` (and the other XDG config dirs)
unless a path is given explicitly.
"""

from __future__ import annotations
from enum import Enum
from pathlib import Path
import os
import shlex
from typing import Any, List, Mapping, MutableMapping, Optional, Sequence
from xdg.BaseDirectory import load_first_config
import toml

from .errors import InvalidConfig
from .node import XDG_RESOURCE
from . import parsing

CONFIG_FILE_NAME = "testnet.toml"

DEFAULT_REPLICA_VERSION = "0.9.0"
DEFAULT_REPLICA_BINARY = "ic/target/debug/replica"
DEFAULT_GENERATOR_COMMAND = ["cargo", "run", "--features", "{profile}", "--"]
DEFAULT_LOCAL_ADDRESSES = ["127.0.0.1:8080", "127.0.0.1:9080"]
DEFAULT_DOCKER_ADDRESSES = ["10.5.0.10:8080", "10.5.0.11:8080", "10.5.0.12:8080", "10.5.0.13:8080"]

# Environment variable -> config key
ENVIRONMENT_KEYS = {
    "BASE_DIR": "base_dir",
    "LOG_DIR": "log_dir",
    "REPLICA_VERSION": "replica_version",
    "REPLICA_BIN": "replica_binary",
    "ENV": "profile",
    "ADDRESSES": "addresses",
}

KNOWN_KEYS = set(ENVIRONMENT_KEYS.values()) | {"generator_command"}

class Profile(Enum):
    """Generation profile the config generator is asked to use"""

    DEFAULT = "default"
    LOCAL = "local"

    @staticmethod
    def parse(name: str) -> Profile:
        try:
            return Profile(name.strip().lower())
        except ValueError:
            raise InvalidConfig("Unknown profile %s, expected one of: %s" % (name, ", ".join(p.value for p in Profile)))

class TestnetConfig:
    """Everything the supervisor needs to know to bring the testnet up"""

    base_dir: Path
    log_dir: Path
    addresses: List[str]
    profile: Profile
    replica_version: str
    replica_binary: Path
    generator_command: List[str]

    def __init__(self, base_dir: Path, addresses: Sequence[str], profile: Profile = Profile.DEFAULT, replica_version: str = DEFAULT_REPLICA_VERSION, log_dir: Optional[Path] = None, replica_binary: Path = Path(DEFAULT_REPLICA_BINARY), generator_command: Optional[Sequence[str]] = None):
        self.base_dir = Path(base_dir).absolute()
        if log_dir is None:
            log_dir = Path("logs")
        self.log_dir = Path(log_dir).absolute()
        self.addresses = list(addresses)
        self.profile = profile
        self.replica_version = replica_version
        self.replica_binary = Path(replica_binary)
        if generator_command is None:
            generator_command = DEFAULT_GENERATOR_COMMAND
        self.generator_command = list(generator_command)

    def validate(self):
        """Checks the configuration can be used for generation

        Raises `InvalidConfig` if the address list is empty, malformed or has duplicates, or if the base directory
        can't be written.
        """

        if len(self.addresses) == 0:
            raise InvalidConfig("At least one node address is required")

        self.addresses = parsing.parse_address_list(self.addresses)

        if len(self.replica_version) == 0:
            raise InvalidConfig("Replica version must not be empty")

        if len(self.generator_command) == 0:
            raise InvalidConfig("Generator command must not be empty")

        # The base dir doesn't have to exist yet, but the closest existing ancestor has to be writable
        existing = self.base_dir
        while not existing.exists():
            existing = existing.parent
        if not existing.is_dir():
            raise InvalidConfig("Base directory %s is not a directory" % existing)
        if not os.access(existing, os.W_OK | os.X_OK):
            raise InvalidConfig("Base directory %s is not writable" % existing)

    def resolved_generator_command(self) -> List[str]:
        return [arg.replace("{profile}", self.profile.value) for arg in self.generator_command]

    def __repr__(self) -> str:
        return "TestnetConfig(base_dir=%s, addresses=%s, profile=%s, replica_version=%s)" % (self.base_dir, self.addresses, self.profile.value, self.replica_version)

def find_config_file() -> Optional[Path]:
    config_dir = load_first_config(XDG_RESOURCE)
    if config_dir is None:
        return None

    path = Path(config_dir).joinpath(CONFIG_FILE_NAME)
    if not path.exists():
        return None

    return path

def load_file(path: Path) -> MutableMapping[str, Any]:
    try:
        with open(path, "r") as config_file:
            data = toml.load(config_file)
    except toml.TomlDecodeError as e:
        raise InvalidConfig("Failed to parse %s: %s" % (path, e))

    for key in data:
        if key not in KNOWN_KEYS:
            raise InvalidConfig("Unknown key %s in %s" % (key, path))

    return data

def from_environment(environ: Mapping[str, str]) -> MutableMapping[str, Any]:
    data: MutableMapping[str, Any] = {}
    for variable, key in ENVIRONMENT_KEYS.items():
        value = environ.get(variable)
        if value is not None and len(value) > 0:
            data[key] = value

    return data

def from_mapping(data: Mapping[str, Any], default_addresses: Sequence[str] = DEFAULT_LOCAL_ADDRESSES) -> TestnetConfig:
    profile = data.get("profile", Profile.DEFAULT)
    if not isinstance(profile, Profile):
        profile = Profile.parse(str(profile))

    addresses = data.get("addresses", default_addresses)
    if isinstance(addresses, str):
        addresses = addresses.split()
    elif not isinstance(addresses, (list, tuple)):
        raise InvalidConfig("addresses must be a list or a space-separated string")

    generator_command = data.get("generator_command")
    if isinstance(generator_command, str):
        generator_command = shlex.split(generator_command)

    return TestnetConfig(
            base_dir=Path(data.get("base_dir", "tmp")),
            addresses=addresses,
            profile=profile,
            replica_version=str(data.get("replica_version", DEFAULT_REPLICA_VERSION)),
            log_dir=Path(data.get("log_dir", "logs")),
            replica_binary=Path(data.get("replica_binary", DEFAULT_REPLICA_BINARY)),
            generator_command=generator_command,
    )

def load(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None, overrides: Optional[Mapping[str, Any]] = None, default_addresses: Sequence[str] = DEFAULT_LOCAL_ADDRESSES) -> TestnetConfig:
    """Assembles the configuration from all sources

    `overrides` with `None` values are ignored so that unset command line flags can be passed through directly.
    """

    if path is None:
        path = find_config_file()

    if environ is None:
        environ = os.environ

    data: MutableMapping[str, Any] = {}
    if path is not None:
        data.update(load_file(path))

    data.update(from_environment(environ))

    if overrides is not None:
        data.update({key: value for key, value in overrides.items() if value is not None})

    return from_mapping(data, default_addresses)
