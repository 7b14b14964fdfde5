"""This is the most important module as it contains the `Supervisor` class.

The supervisor turns a `TestnetConfig` into a running local testnet and tears it down again.
"""

from __future__ import annotations
from enum import Enum
from pathlib import Path
import os
import shutil
from typing import Dict, Iterable, List, MutableMapping, Optional, Sequence, Union
import toml
from loguru import logger as LOG

from .config import TestnetConfig
from .errors import InvalidConfig, LaunchError, PartialLaunchError, ReplicationError, TeardownError
from .generator import run_generator
from .node import NodeSpec, RunningProcess, canonical_state_dir, node_specs, node_state_dir
from . import replica

PROCESS_TABLE_FILE = "processes.toml"
NODES_FILE = "nodes.toml"

class State(Enum):
    NOT_RUNNING = "not running"
    RUNNING = "running"

def _write_toml(path: Path, data: dict):
    os.makedirs(path.parent, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    with open(tmp_path, "w") as tmp_file:
        toml.dump(data, tmp_file)
        tmp_file.flush()
        os.fdatasync(tmp_file.fileno())

    os.rename(tmp_path, path)

def _read_toml(path: Path) -> dict:
    try:
        with open(path, "r") as toml_file:
            return toml.load(toml_file)
    except toml.TomlDecodeError as e:
        raise InvalidConfig("Failed to parse %s, delete it to start over: %s" % (path, e))

def _spec_from_entry(node_id: int, entry: dict) -> NodeSpec:
    return NodeSpec(node_id, entry["address"], Path(entry["config_file"]), Path(entry["state_dir"]), Path(entry["log_file"]))

def _entry_from_spec(spec: NodeSpec) -> dict:
    return {
        "address": spec.address,
        "config_file": str(spec.config_file),
        "state_dir": str(spec.state_dir),
        "log_file": str(spec.log_file),
    }

def _copy_path(base_dir: Path, node_id: int) -> Path:
    return base_dir.joinpath(".state-%d.tmp" % node_id)

def replicate_state(canonical_state_dir: Path, node_ids: Sequence[int]):
    """Copies the canonical state into `state-<id>` next to it for every id

    This is all-or-nothing: the copies are made into temporary directories first and only moved into place once all
    of them succeeded. On failure every copy made by this call is removed and `ReplicationError` naming the failing
    node is raised. Existing `state-<id>` directories are replaced.
    """

    if len(node_ids) == 0:
        return

    base_dir = canonical_state_dir.parent
    if not canonical_state_dir.is_dir():
        raise ReplicationError(node_ids[0], "canonical state directory %s doesn't exist" % canonical_state_dir)

    copies: List[int] = []
    try:
        for node_id in node_ids:
            copy_path = _copy_path(base_dir, node_id)
            copies.append(node_id)
            try:
                if copy_path.exists():
                    shutil.rmtree(copy_path)
                shutil.copytree(canonical_state_dir, copy_path, symlinks=True)
            except OSError as e:
                raise ReplicationError(node_id, str(e)) from e
    except ReplicationError:
        for node_id in copies:
            shutil.rmtree(_copy_path(base_dir, node_id), ignore_errors=True)
        raise

    moved: List[int] = []
    for node_id in node_ids:
        destination = node_state_dir(base_dir, node_id)
        try:
            if destination.exists():
                shutil.rmtree(destination)
            os.rename(_copy_path(base_dir, node_id), destination)
            moved.append(node_id)
        except OSError as e:
            for moved_id in moved:
                shutil.rmtree(node_state_dir(base_dir, moved_id), ignore_errors=True)
            for copied_id in node_ids:
                shutil.rmtree(_copy_path(base_dir, copied_id), ignore_errors=True)
            raise ReplicationError(node_id, str(e)) from e

    LOG.info("Replicated {} into {} node state directories", canonical_state_dir, len(node_ids))

class Supervisor:
    """Owns one local testnet: its generated files and its node processes

    Processes are tracked by pid, keyed by node id. The table is also written to `<base>/processes.toml` so a
    supervisor created later (e.g. by another CLI invocation) can stop nodes started by this one.
    """

    _config: TestnetConfig
    _processes: MutableMapping[int, RunningProcess]

    def __init__(self, config: TestnetConfig):
        self._config = config
        self._processes = {}
        self._load_process_table()

    @property
    def config(self) -> TestnetConfig:
        return self._config

    @property
    def processes(self) -> Dict[int, RunningProcess]:
        return dict(self._processes)

    @property
    def state(self) -> State:
        if any(replica.is_alive(running) for running in self._processes.values()):
            return State.RUNNING
        return State.NOT_RUNNING

    def nodes(self) -> List[NodeSpec]:
        """Node specs of the generated testnet

        These are read back from `<base>/nodes.toml`, so they don't depend on the addresses given to later
        invocations. Before anything was generated they are derived from the configured addresses.
        """

        path = self._nodes_path()
        if not path.exists():
            return node_specs(self._config.addresses, self._config.base_dir, self._config.log_dir)

        table = _read_toml(path)
        try:
            return sorted((_spec_from_entry(int(node_id), entry) for node_id, entry in table.get("nodes", {}).items()), key=lambda spec: spec.id)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfig("Malformed node list %s: %s" % (path, e))

    def node(self, node_id: int) -> Optional[NodeSpec]:
        for spec in self.nodes():
            if spec.id == node_id:
                return spec
        return None

    def generate(self) -> List[NodeSpec]:
        """Validates the configuration and runs the config generator

        Raises `InvalidConfig` or `GenerationError`.
        """

        self._config.validate()
        specs = run_generator(self._config)
        _write_toml(self._nodes_path(), {"nodes": {str(spec.id): _entry_from_spec(spec) for spec in specs}})
        LOG.info("Generated configuration for node(s) {}", ", ".join(str(spec.id) for spec in specs))
        return specs

    def replicate_state(self, node_ids: Optional[Iterable[int]] = None):
        if node_ids is None:
            node_ids = [spec.id for spec in self.nodes()]
        replicate_state(canonical_state_dir(self._config.base_dir), list(node_ids))

    def launch_node(self, node: Union[NodeSpec, int]) -> RunningProcess:
        """Starts a single node, given either its spec or its id

        Raises `LaunchError` naming the node if it's unknown, already running, has no generated config or can't be
        spawned. Nodes that are already running are not affected.
        """

        if isinstance(node, int):
            spec = self.node(node)
            if spec is None:
                command = replica.replica_command(self._config.replica_binary, self._config.replica_version, self._config.base_dir.joinpath("ic-%d.json5" % node))
                raise LaunchError(node, command, "no such node in this testnet")
        else:
            spec = node

        existing = self._processes.get(spec.id)
        if existing is not None:
            if replica.is_alive(existing):
                raise LaunchError(spec.id, existing.command, "already running with pid %d" % existing.pid)
            existing.close_log()

        running = replica.spawn(spec, self._config.replica_binary, self._config.replica_version)
        self._processes[spec.id] = running
        self._save_process_table()
        return running

    def launch(self, specs: Optional[Sequence[NodeSpec]] = None) -> List[RunningProcess]:
        """Starts all given nodes (all configured nodes by default) without waiting for them to become ready

        A node that fails to start doesn't stop the others from being started. If any failed, `PartialLaunchError`
        is raised after the loop; it carries both the started processes and the individual failures.
        """

        if specs is None:
            specs = self.nodes()

        launched: List[RunningProcess] = []
        failures: List[LaunchError] = []
        for spec in specs:
            try:
                launched.append(self.launch_node(spec))
            except LaunchError as e:
                LOG.error("{}", e)
                failures.append(e)

        if len(failures) > 0:
            raise PartialLaunchError(launched, failures)

        return launched

    def up(self) -> List[RunningProcess]:
        """Generates the testnet, replicates the state and launches every node"""

        specs = self.generate()
        self.replicate_state([spec.id for spec in specs])
        return self.launch(specs)

    def kill(self):
        """Stops every tracked node process

        This is best effort: failures to deliver a signal are logged, not raised.
        """

        for node_id in sorted(self._processes):
            running = self._processes[node_id]
            try:
                replica.terminate(running)
            except TeardownError as e:
                LOG.warning("{}", e)

        self._processes.clear()
        self._remove_process_table()

    def clean(self):
        """Deletes the base directory and the log directory

        Running nodes are stopped first, since their pids are tracked inside the base directory.
        Missing directories are fine, any other failure raises `OSError`.
        """

        self.kill()

        for directory in (self._config.base_dir, self._config.log_dir):
            if directory.exists():
                LOG.info("Removing {}", directory)
                shutil.rmtree(directory)

    def teardown(self):
        """Stops all nodes and removes everything that was generated; calling it again does nothing"""

        self.kill()
        self.clean()

    def status(self) -> Dict[int, bool]:
        """Maps every generated node id to whether its process is alive"""

        result = {}
        for spec in self.nodes():
            running = self._processes.get(spec.id)
            result[spec.id] = running is not None and replica.is_alive(running)
        return result

    def wait_ready(self, timeout: float) -> Dict[int, bool]:
        """Polls every running node's status endpoint, each for at most `timeout` seconds"""

        return {node_id: replica.wait_ready(running.node, timeout) for node_id, running in sorted(self._processes.items())}

    def _nodes_path(self) -> Path:
        return self._config.base_dir.joinpath(NODES_FILE)

    def _process_table_path(self) -> Path:
        return self._config.base_dir.joinpath(PROCESS_TABLE_FILE)

    def _save_process_table(self):
        nodes = {}
        for node_id, running in self._processes.items():
            entry = _entry_from_spec(running.node)
            entry["pid"] = running.pid
            entry["command"] = running.command
            nodes[str(node_id)] = entry

        _write_toml(self._process_table_path(), {"nodes": nodes})

    def _load_process_table(self):
        path = self._process_table_path()
        if not path.exists():
            return

        table = _read_toml(path)
        try:
            for node_id_str, entry in table.get("nodes", {}).items():
                node_id = int(node_id_str)
                self._processes[node_id] = RunningProcess(_spec_from_entry(node_id, entry), int(entry["pid"]), list(entry["command"]))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfig("Malformed process table %s, delete it to start over: %s" % (path, e))

    def _remove_process_table(self):
        path = self._process_table_path()
        if path.exists():
            path.unlink()
