"""Test fixtures for chainsetup"""

from .chain_setup_fixture import chain_setup, deployer
from .local_chain import local_chain

__all__ = [
    "chain_setup",
    "deployer",
    "local_chain",
]
