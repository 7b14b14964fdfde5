import os
import stat
from pathlib import Path
from time import monotonic, sleep

import pytest
import xdg.BaseDirectory

from ic_testnet_kit import config
from ic_testnet_kit.supervisor import Supervisor

GENERATOR_SCRIPT = """#!/bin/sh
set -e
mkdir -p "$BASE_DIR/state/registry"
echo "genesis $REPLICA_VERSION" > "$BASE_DIR/state/genesis.bin"
echo "$ENV" > "$BASE_DIR/state/registry/profile"
id=100
for address in $ADDRESSES; do
    echo "{ address: \\"$address\\", state_dir: \\"$BASE_DIR/state-$id\\" }" > "$BASE_DIR/ic-$id.json5"
    id=$((id + 1))
done
"""

REPLICA_SCRIPT = """#!/bin/sh
trap 'exit 0' TERM
echo "replica started with $*"
while true; do sleep 0.1; done
"""

SCENARIO_ADDRESSES = ["127.0.1.1:8080", "127.0.2.1:8080"]


def write_script(path: Path, content: str) -> Path:
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def wait_for(predicate, timeout=5.0):
    deadline = monotonic() + timeout
    while monotonic() < deadline:
        if predicate():
            return True
        sleep(0.05)
    return predicate()


def tree_contents(root: Path) -> dict:
    contents = {}
    for dirpath, _, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath).joinpath(filename)
            contents[str(path.relative_to(root))] = path.read_bytes()
    return contents


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path, monkeypatch):
    data_home = tmp_path.joinpath("xdg-data")
    config_home = tmp_path.joinpath("xdg-config")
    monkeypatch.setattr(xdg.BaseDirectory, "xdg_data_home", str(data_home))
    monkeypatch.setattr(xdg.BaseDirectory, "xdg_config_home", str(config_home))
    monkeypatch.setattr(xdg.BaseDirectory, "xdg_config_dirs", [str(config_home)])
    for variable in config.ENVIRONMENT_KEYS:
        monkeypatch.delenv(variable, raising=False)
    return config_home


@pytest.fixture
def fake_generator(tmp_path):
    return write_script(tmp_path.joinpath("ic-testnet"), GENERATOR_SCRIPT)


@pytest.fixture
def fake_replica(tmp_path):
    return write_script(tmp_path.joinpath("replica"), REPLICA_SCRIPT)


@pytest.fixture
def testnet_config(tmp_path, fake_generator, fake_replica):
    return config.TestnetConfig(
        base_dir=tmp_path.joinpath("testnet"),
        addresses=SCENARIO_ADDRESSES,
        profile=config.Profile.LOCAL,
        log_dir=tmp_path.joinpath("logs"),
        replica_binary=fake_replica,
        generator_command=[str(fake_generator)],
    )


@pytest.fixture
def supervisor(testnet_config):
    supervisor = Supervisor(testnet_config)
    yield supervisor
    supervisor.kill()
