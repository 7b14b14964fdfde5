"""Exceptions raised while bringing a testnet up or down"""

from typing import Optional, Sequence


class TestnetError(Exception):
    """Base of all errors raised by the testnet kit"""


class InvalidConfig(TestnetError):
    """Thrown when the operator-supplied configuration can't be used"""


class GenerationError(TestnetError):
    """Thrown when the config generator fails or doesn't produce the expected files"""

    command: Sequence[str]
    returncode: Optional[int]

    def __init__(self, message: str, command: Sequence[str], returncode: Optional[int] = None):
        self.command = command
        self.returncode = returncode

        if returncode is None:
            super().__init__("%s, command: %s" % (message, " ".join(command)))
        else:
            super().__init__("%s, command: %s, exit status: %d" % (message, " ".join(command), returncode))


class ReplicationError(TestnetError, IOError):
    """Thrown when a per-node copy of the canonical state can't be made

    No per-node directory is left behind when this is raised.
    """

    node_id: int

    def __init__(self, node_id: int, message: str):
        self.node_id = node_id
        super().__init__("Failed to replicate state for node %d: %s" % (node_id, message))


class LaunchError(TestnetError):
    """Thrown when a node process can't be started"""

    node_id: int
    command: Sequence[str]

    def __init__(self, node_id: int, command: Sequence[str], reason: str):
        self.node_id = node_id
        self.command = command
        super().__init__("Failed to launch node %d (%s): %s" % (node_id, " ".join(command), reason))


class PartialLaunchError(LaunchError):
    """Thrown after a multi-node launch in which some nodes failed

    The nodes in `launched` are running and tracked, `failures` holds one `LaunchError` per node that didn't start.
    """

    def __init__(self, launched: list, failures: list):
        self.launched = launched
        self.failures = failures
        first = failures[0]
        failed_ids = ", ".join(str(failure.node_id) for failure in failures)
        TestnetError.__init__(self, "Failed to launch node(s) %s, first error: %s" % (failed_ids, first))
        self.node_id = first.node_id
        self.command = first.command


class TeardownError(TestnetError):
    """Signal delivery to a node failed

    Teardown is best effort, so this is only ever logged, never propagated out of the supervisor.
    """

    node_id: int
    pid: int

    def __init__(self, node_id: int, pid: int, reason: str):
        self.node_id = node_id
        self.pid = pid
        super().__init__("Failed to stop node %d (pid %d): %s" % (node_id, pid, reason))
