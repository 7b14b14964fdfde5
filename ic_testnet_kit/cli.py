"""Command line interface, installed as `ic-testnet-kit`"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional
from loguru import logger as LOG

from .errors import InvalidConfig, PartialLaunchError, TestnetError
from .supervisor import Supervisor
from . import compose
from . import config
from . import ports

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ic-testnet-kit",
        description="Bring up a local multi-node replica testnet",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("-c", "--config", help="Path to testnet.toml (default: looked up in XDG config dirs)", type=Path)
    parser.add_argument("--base-dir", help="Directory holding the generated state and configs (env: BASE_DIR)", type=Path)
    parser.add_argument("--log-dir", help="Directory for node logs (env: LOG_DIR)", type=Path)
    parser.add_argument("--replica-version", help="Version passed to the replica (env: REPLICA_VERSION)")
    parser.add_argument("--replica-binary", help="Path to the replica binary (env: REPLICA_BIN)", type=Path)
    parser.add_argument("--profile", help="Generation profile (env: ENV)", choices=[profile.value for profile in config.Profile])

    addresses = parser.add_mutually_exclusive_group()
    addresses.add_argument("--addresses", help="Space-separated node addresses as host:port (env: ADDRESSES)")
    addresses.add_argument("--nodes", help="Number of nodes on 127.0.0.1, ports are allocated automatically", type=int)

    parser.add_argument("-v", "--verbose", help="Log debug messages", action="store_true")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    commands.add_parser("generate", help="Run the config generator and replicate the state for every node")
    commands.add_parser("run", help="Clean, generate and start all nodes")

    start = commands.add_parser("start", help="Start all nodes, or a single one")
    start.add_argument("node_id", help="Only start the node with this id", type=int, nargs="?")

    commands.add_parser("stop", aliases=["kill"], help="Stop all nodes started by this tool")
    commands.add_parser("clean", help="Delete the generated and log directories")
    commands.add_parser("teardown", help="Stop all nodes and delete the generated and log directories")
    commands.add_parser("status", help="Show which nodes are running")

    wait = commands.add_parser("wait", help="Wait until all running nodes answer on their status endpoint")
    wait.add_argument("--timeout", help="Seconds to wait for each node", type=float, default=60.0)

    commands.add_parser("compose-up", help="Generate and start one container per node")
    commands.add_parser("compose-down", help="Stop the containers and delete the generated and log directories")

    return parser

def load_config(args: argparse.Namespace) -> config.TestnetConfig:
    overrides = {
        "base_dir": args.base_dir,
        "log_dir": args.log_dir,
        "replica_version": args.replica_version,
        "replica_binary": args.replica_binary,
        "profile": args.profile,
        "addresses": args.addresses,
    }

    if args.nodes is not None:
        overrides["addresses"] = ports.local_addresses(args.nodes)

    if args.command == "compose-up":
        default_addresses = config.DEFAULT_DOCKER_ADDRESSES
    else:
        default_addresses = config.DEFAULT_LOCAL_ADDRESSES

    return config.load(args.config, overrides=overrides, default_addresses=default_addresses)

def _generate(supervisor: Supervisor):
    specs = supervisor.generate()
    supervisor.replicate_state([spec.id for spec in specs])
    return specs

def run_command(supervisor: Supervisor, args: argparse.Namespace) -> int:
    command = args.command

    if command == "generate":
        _generate(supervisor)
    elif command == "run":
        supervisor.teardown()
        supervisor.launch(_generate(supervisor))
    elif command == "start":
        if args.node_id is None:
            supervisor.launch()
        else:
            supervisor.launch_node(args.node_id)
    elif command in ("stop", "kill"):
        supervisor.kill()
    elif command == "clean":
        supervisor.clean()
    elif command == "teardown":
        supervisor.teardown()
    elif command == "status":
        for node_id, alive in supervisor.status().items():
            print("%d\t%s" % (node_id, "running" if alive else "stopped"))
    elif command == "wait":
        ready = supervisor.wait_ready(args.timeout)
        not_ready = [node_id for node_id, is_ready in ready.items() if not is_ready]
        if len(not_ready) > 0:
            LOG.error("Node(s) {} not ready after {}s", ", ".join(str(node_id) for node_id in not_ready), args.timeout)
            return 1
    elif command == "compose-up":
        compose.compose_down()
        supervisor.clean()
        compose.compose_up(supervisor.config, _generate(supervisor))
    elif command == "compose-down":
        compose.compose_down()
        supervisor.clean()
    else:
        raise InvalidConfig("Unknown command %s" % command)

    return 0

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    LOG.remove()
    LOG.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> {message}",
        level="DEBUG" if args.verbose else "INFO",
    )

    try:
        supervisor = Supervisor(load_config(args))
        return run_command(supervisor, args)
    except PartialLaunchError as e:
        # Each failure has been logged already
        LOG.error("{} of {} node(s) failed to start", len(e.failures), len(e.failures) + len(e.launched))
        return 1
    except TestnetError as e:
        LOG.error("{}", e)
        return 1
    except OSError as e:
        LOG.error("{}", e)
        return 1

if __name__ == "__main__":
    sys.exit(main())
