"""Starting, probing and stopping individual replica processes"""

import os
import signal
import subprocess
from pathlib import Path
from time import monotonic, sleep
from typing import List, Optional
import requests
from loguru import logger as LOG

from .errors import LaunchError, TeardownError
from .node import NodeSpec, RunningProcess

STATUS_PATH = "/api/v2/status"
STOP_TIMEOUT_SECONDS = 5.0

def replica_command(replica_binary: Path, replica_version: str, config_file: Path) -> List[str]:
    return [str(replica_binary), "--replica-version", replica_version, "--config-file", str(config_file)]

def spawn(node: NodeSpec, replica_binary: Path, replica_version: str) -> RunningProcess:
    """Starts the replica for `node` in the background

    The log file is truncated, stdout and stderr both go there. The process gets its own session so that it
    outlives us and doesn't receive our terminal's signals.
    """

    command = replica_command(replica_binary, replica_version, node.config_file)

    if not node.config_file.is_file():
        raise LaunchError(node.id, command, "config file %s doesn't exist, was the testnet generated?" % node.config_file)

    try:
        os.makedirs(node.log_file.parent, exist_ok=True)
        log_handle = open(node.log_file, "w")
    except OSError as e:
        raise LaunchError(node.id, command, "can't open log file %s: %s" % (node.log_file, e))

    try:
        process = subprocess.Popen(command, stdin=subprocess.DEVNULL, stdout=log_handle, stderr=subprocess.STDOUT, start_new_session=True)
    except OSError as e:
        log_handle.close()
        raise LaunchError(node.id, command, str(e))

    LOG.info("Started node {} at {} (pid {}), logging to {}", node.id, node.address, process.pid, node.log_file)
    return RunningProcess(node, process.pid, command, process, log_handle)

def _read_cmdline(pid: int) -> Optional[List[str]]:
    try:
        with open("/proc/%d/cmdline" % pid, "rb") as cmdline_file:
            raw = cmdline_file.read()
    except (FileNotFoundError, ProcessLookupError):
        return None

    return [arg.decode("utf-8", "replace") for arg in raw.split(b"\0") if len(arg) > 0]

def is_alive(running: RunningProcess) -> bool:
    """Checks whether the process still runs and is still the replica we started

    For processes restored from an earlier session the command line is compared so that a recycled pid isn't
    mistaken for our node.
    """

    if running.process is not None:
        return running.process.poll() is None

    cmdline = _read_cmdline(running.pid)
    if cmdline is None:
        return False

    # Zombies have an empty command line
    return str(running.node.config_file) in cmdline

def _wait_exit(running: RunningProcess, timeout: float) -> bool:
    if running.process is not None:
        try:
            running.process.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

    deadline = monotonic() + timeout
    while monotonic() < deadline:
        if not is_alive(running):
            return True
        sleep(0.1)
    return False

def _signal(running: RunningProcess, signum: int) -> bool:
    try:
        os.kill(running.pid, signum)
        return True
    except ProcessLookupError:
        return False
    except OSError as e:
        raise TeardownError(running.node.id, running.pid, str(e))

def terminate(running: RunningProcess, timeout: float = STOP_TIMEOUT_SECONDS):
    """Stops the node: SIGTERM, wait up to `timeout`, then SIGKILL

    Raises `TeardownError` if a signal can't be delivered for a reason other than the process being gone already.
    """

    try:
        if not is_alive(running):
            LOG.debug("Node {} (pid {}) is not running", running.node.id, running.pid)
            return

        LOG.info("Stopping node {} (pid {})", running.node.id, running.pid)
        if _signal(running, signal.SIGTERM) and not _wait_exit(running, timeout):
            LOG.warning("Node {} (pid {}) didn't stop within {}s, killing it", running.node.id, running.pid, timeout)
            if _signal(running, signal.SIGKILL):
                _wait_exit(running, timeout)
    finally:
        running.close_log()

def status_url(node: NodeSpec) -> str:
    return "http://%s%s" % (node.address, STATUS_PATH)

def is_ready(node: NodeSpec, session: Optional[requests.Session] = None) -> bool:
    if session is None:
        session = requests.Session()

    try:
        response = session.get(status_url(node), timeout=2)
    except requests.RequestException:
        return False

    return response.status_code == 200

def wait_ready(node: NodeSpec, timeout: float, polling_interval: float = 1.0) -> bool:
    """Polls the node's status endpoint until it answers or `timeout` elapses"""

    session = requests.Session()
    deadline = monotonic() + timeout
    while True:
        if is_ready(node, session):
            return True
        if monotonic() >= deadline:
            return False
        sleep(polling_interval)
