"""Invocation of the external config generator"""

import os
import subprocess
from typing import List, Mapping, Optional
from loguru import logger as LOG

from .config import TestnetConfig
from .errors import GenerationError
from .node import NodeSpec, canonical_state_dir, node_specs

def generator_environment(config: TestnetConfig, base: Optional[Mapping[str, str]] = None) -> dict:
    if base is None:
        base = os.environ

    environ = dict(base)
    environ["BASE_DIR"] = str(config.base_dir)
    environ["ADDRESSES"] = " ".join(config.addresses)
    environ["ENV"] = config.profile.value
    environ["REPLICA_VERSION"] = config.replica_version
    return environ

def run_generator(config: TestnetConfig) -> List[NodeSpec]:
    """Runs the generator once and checks it produced the canonical state and one config per node

    The generator's own output is passed through to our stdout/stderr.
    """

    command = config.resolved_generator_command()
    LOG.info("Generating configuration for {} node(s) in {} (profile {})", len(config.addresses), config.base_dir, config.profile.value)
    LOG.debug("Running {}", " ".join(command))

    os.makedirs(config.base_dir, exist_ok=True)

    try:
        result = subprocess.run(command, env=generator_environment(config))
    except OSError as e:
        raise GenerationError("Failed to execute the generator: %s" % e, command)

    if result.returncode != 0:
        raise GenerationError("Generator failed", command, result.returncode)

    state_dir = canonical_state_dir(config.base_dir)
    if not state_dir.is_dir():
        raise GenerationError("Generator didn't write the state directory %s" % state_dir, command, result.returncode)

    specs = node_specs(config.addresses, config.base_dir, config.log_dir)
    for spec in specs:
        if not spec.config_file.is_file():
            raise GenerationError("Generator didn't write config file %s for node %d" % (spec.config_file, spec.id), command, result.returncode)

    return specs
