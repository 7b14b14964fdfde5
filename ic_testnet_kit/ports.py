import fcntl
import os
from pathlib import Path
from xdg.BaseDirectory import save_data_path
import typing

from .errors import InvalidConfig
from .node import XDG_RESOURCE

FIRST_PORT = 60000
PORTS_PER_NODE = 2

def allocate(count: int = 1) -> typing.Iterable:
    """Reserves `count` consecutive ports, unique across all testnets of this user

    The counter lives in the XDG data directory and is protected by `flock`, so concurrent invocations never get
    overlapping ranges.
    """

    state_dir = Path(save_data_path(XDG_RESOURCE))
    state_path = state_dir.joinpath("ports")
    os.makedirs(state_dir, exist_ok=True)
    state_fd = os.open(state_path, os.O_RDWR | os.O_CREAT)
    with os.fdopen(state_fd, "r+") as state_file:
        fcntl.flock(state_file, fcntl.LOCK_EX)
        state = state_file.read()
        if len(state) == 0:
            last_port = FIRST_PORT
        else:
            last_port = int(state)

        # Wrap around before we run out of ports
        if last_port + count > 65535:
            last_port = FIRST_PORT

        next_port = last_port + count
        tmp_state_path = state_path.with_suffix(".tmp")
        with open(tmp_state_path, "w") as tmp_state:
            tmp_state.write(str(next_port))
            tmp_state.flush()
            os.fdatasync(tmp_state.fileno())

        os.rename(tmp_state_path, state_path)
        fcntl.flock(state_file, fcntl.LOCK_UN)

    return range(last_port, next_port)

def local_addresses(node_count: int, host: str = "127.0.0.1") -> typing.List[str]:
    """Allocates public API addresses for `node_count` nodes on `host`

    Every node gets two ports: the public API port and the one above it, which the generator binds for xnet.
    """

    if node_count < 1:
        raise InvalidConfig("Attempt to allocate addresses for %d nodes, must be at least 1" % node_count)

    ports = allocate(node_count * PORTS_PER_NODE)
    return ["%s:%d" % (host, port) for port in ports[::PORTS_PER_NODE]]
