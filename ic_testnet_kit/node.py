"""Per-node naming conventions and the records the supervisor keeps about nodes

The file names produced here are relied upon by the config generator and the container descriptor, so they must not
change: `<base>/state/`, `<base>/state-<id>/`, `<base>/ic-<id>.json5` and `<logs>/node-<id>.log`.
"""

from __future__ import annotations
from pathlib import Path
from subprocess import Popen
from typing import IO, List, Optional, Sequence

XDG_RESOURCE = "ic-testnet-kit"

# The generator numbers nodes starting from this index
FIRST_NODE_ID = 100

def canonical_state_dir(base_dir: Path) -> Path:
    return base_dir.joinpath("state")

def node_state_dir(base_dir: Path, node_id: int) -> Path:
    return base_dir.joinpath("state-%d" % node_id)

def node_config_file(base_dir: Path, node_id: int) -> Path:
    return base_dir.joinpath("ic-%d.json5" % node_id)

def node_log_file(log_dir: Path, node_id: int) -> Path:
    return log_dir.joinpath("node-%d.log" % node_id)

def node_ids(count: int) -> List[int]:
    return list(range(FIRST_NODE_ID, FIRST_NODE_ID + count))

class NodeSpec:
    """Everything needed to start one node of the testnet"""

    id: int
    address: str
    config_file: Path
    state_dir: Path
    log_file: Path

    def __init__(self, id: int, address: str, config_file: Path, state_dir: Path, log_file: Path):
        self.id = id
        self.address = address
        self.config_file = config_file
        self.state_dir = state_dir
        self.log_file = log_file

    @staticmethod
    def for_node(node_id: int, address: str, base_dir: Path, log_dir: Path) -> NodeSpec:
        return NodeSpec(node_id, address, node_config_file(base_dir, node_id), node_state_dir(base_dir, node_id), node_log_file(log_dir, node_id))

    def __eq__(self, other) -> bool:
        if not isinstance(other, NodeSpec):
            return NotImplemented
        return (self.id, self.address, self.config_file, self.state_dir, self.log_file) == (other.id, other.address, other.config_file, other.state_dir, other.log_file)

    def __hash__(self) -> int:
        return hash((self.id, self.address))

    def __repr__(self) -> str:
        return "NodeSpec(id=%d, address=%s, config_file=%s)" % (self.id, self.address, self.config_file)

def node_specs(addresses: Sequence[str], base_dir: Path, log_dir: Path) -> List[NodeSpec]:
    """Assigns node ids to addresses in the order they were given"""

    return [NodeSpec.for_node(node_id, address, base_dir, log_dir) for node_id, address in zip(node_ids(len(addresses)), addresses)]

class RunningProcess:
    """A node process owned by the supervisor

    `process` is `None` for entries restored from the on-disk process table of an earlier session,
    in which case only the `pid` is known.
    """

    node: NodeSpec
    pid: int
    command: List[str]
    process: Optional[Popen]
    log_handle: Optional[IO]

    def __init__(self, node: NodeSpec, pid: int, command: List[str], process: Optional[Popen] = None, log_handle: Optional[IO] = None):
        self.node = node
        self.pid = pid
        self.command = command
        self.process = process
        self.log_handle = log_handle

    def close_log(self):
        if self.log_handle is not None:
            self.log_handle.close()
            self.log_handle = None

    def __repr__(self) -> str:
        return "RunningProcess(node=%d, pid=%d)" % (self.node.id, self.pid)
