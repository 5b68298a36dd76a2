"""Safe multisig workflow for EVM chains.

Connects to (or deploys) a Safe smart account, proposes a transfer through
the Safe Transaction Service, collects a second owner's confirmation, and
executes the transaction once the threshold is met.
"""

__version__ = "0.1.0"
