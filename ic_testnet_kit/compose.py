"""Docker variant of the testnet: one container per node on a private bridge network"""

from ipaddress import ip_address, ip_network
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import yaml
from loguru import logger as LOG

from .config import TestnetConfig
from .errors import InvalidConfig, LaunchError
from .node import NodeSpec
from . import parsing
from . import replica

COMPOSE_FILE_NAME = "docker-compose.yaml"
NETWORK_NAME = "vpcbr"
SUBNET = "10.5.0.0/16"
GATEWAY = "10.5.0.1"
COMPOSE_COMMAND = ["docker-compose"]

def service_name(index: int) -> str:
    return "node%d" % (index + 1)

def _node_shell_command(config: TestnetConfig, node: NodeSpec) -> str:
    command = replica.replica_command(config.replica_binary, config.replica_version, node.config_file)
    return "mkdir -p %s && exec %s > %s 2>&1" % (node.log_file.parent, " ".join(command), node.log_file)

def container_address(node: NodeSpec) -> str:
    address = parsing.ipv4_from_host_port(node.address)
    if ip_address(address) not in ip_network(SUBNET):
        raise InvalidConfig("Address %s of node %d is outside the %s network %s" % (node.address, node.id, NETWORK_NAME, SUBNET))
    if address == GATEWAY:
        raise InvalidConfig("Address %s of node %d is the gateway of the %s network" % (node.address, node.id, NETWORK_NAME))
    return address

def descriptor(config: TestnetConfig, nodes: Sequence[NodeSpec], workdir: Path) -> Dict[str, Any]:
    """Builds the compose document

    Every node address must be a literal IPv4 address inside the bridge subnet; it becomes the container's static
    address.
    """

    services: Dict[str, Any] = {}
    for index, node in enumerate(nodes):
        name = service_name(index)
        service: Dict[str, Any] = {
            "container_name": name,
            "build": ".",
            "working_dir": str(workdir),
            "command": ["bash", "-c", _node_shell_command(config, node)],
            "volumes": ["%s:%s" % (workdir, workdir)],
            "networks": {
                NETWORK_NAME: {
                    "ipv4_address": container_address(node),
                },
            },
        }
        # Only the first node restarts on its own
        if index == 0:
            service["restart"] = "always"
        services[name] = service

    return {
        "version": "3",
        "services": services,
        "networks": {
            NETWORK_NAME: {
                "driver": "bridge",
                "ipam": {
                    "config": [{"subnet": SUBNET, "gateway": GATEWAY}],
                },
            },
        },
    }

def write_descriptor(config: TestnetConfig, nodes: Sequence[NodeSpec], workdir: Path) -> Path:
    document = descriptor(config, nodes, workdir)
    path = workdir.joinpath(COMPOSE_FILE_NAME)
    with open(path, "w") as compose_file:
        yaml.safe_dump(document, compose_file, default_flow_style=False, sort_keys=False)

    LOG.info("Wrote {} with {} service(s)", path, len(nodes))
    return path

def _run_compose(args: List[str], workdir: Path) -> subprocess.CompletedProcess:
    environ = dict(os.environ)
    environ["PWD"] = str(workdir)
    command = COMPOSE_COMMAND + ["-f", str(workdir.joinpath(COMPOSE_FILE_NAME))] + args
    LOG.debug("Running {}", " ".join(command))
    return subprocess.run(command, cwd=str(workdir), env=environ)

def compose_up(config: TestnetConfig, nodes: Sequence[NodeSpec], workdir: Optional[Path] = None) -> Path:
    """Writes the descriptor and starts all containers in the background

    Raises `LaunchError` naming the first node if docker-compose can't be run or fails.
    """

    if len(nodes) == 0:
        raise InvalidConfig("At least one node is required")

    if workdir is None:
        workdir = Path.cwd()

    path = write_descriptor(config, nodes, workdir)
    command = COMPOSE_COMMAND + ["up", "-d"]
    try:
        result = _run_compose(["up", "-d"], workdir)
    except OSError as e:
        raise LaunchError(nodes[0].id, command, str(e))

    if result.returncode != 0:
        raise LaunchError(nodes[0].id, command, "exit status %d" % result.returncode)

    return path

def compose_down(workdir: Optional[Path] = None):
    """Stops and removes the containers; a missing descriptor means there's nothing to do"""

    if workdir is None:
        workdir = Path.cwd()

    if not workdir.joinpath(COMPOSE_FILE_NAME).exists():
        LOG.debug("No {} in {}, nothing to stop", COMPOSE_FILE_NAME, workdir)
        return

    try:
        result = _run_compose(["down"], workdir)
    except OSError as e:
        LOG.warning("Failed to run docker-compose down: {}", e)
        return

    if result.returncode != 0:
        LOG.warning("docker-compose down exited with status {}", result.returncode)
