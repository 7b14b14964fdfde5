"""IC Testnet Kit brings up a local multi-node replica testnet for testing applications.

See the README for more information.

The most important items in this package are:

* The `Supervisor` class which generates, launches and tears down the testnet
* The `config.load()` function which assembles a `TestnetConfig` from a file, the environment and overrides
"""

from .config import Profile, TestnetConfig
from .supervisor import State, Supervisor
