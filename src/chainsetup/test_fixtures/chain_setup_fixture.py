"""Session scoped fixture setup connected to the local chain."""

from __future__ import annotations

import asyncio
from typing import Iterator

import pytest

from chainsetup.chain_setup import ChainSetup
from chainsetup.config import build_setup_config
from chainsetup.handle import EntityHandle
from chainsetup.registry import EntityRegistry
from chainsetup.teardown import TeardownCoordinator

# pylint: disable=redefined-outer-name


@pytest.fixture(scope="session")
def chain_setup(local_chain: str) -> Iterator[ChainSetup]:
    """Fixture setup shared by every test in the session.
    All provisioned fixtures are released when the session ends, even after failures.

    Arguments
    ---------
    local_chain: str
        The local anvil chain URI.

    Yield
    -----
    ChainSetup
        The setup facade.
    """
    config = build_setup_config()
    config.rpc_uri = local_chain
    registry = EntityRegistry()
    setup = ChainSetup.from_config(config, registry=registry)
    with TeardownCoordinator(registry):
        yield setup
    # Abandoned provisioning threads release their own accounts once they finish
    setup.provisioner.close()


@pytest.fixture
def deployer(chain_setup: ChainSetup) -> EntityHandle:
    """The funded deployer account.

    Arguments
    ---------
    chain_setup: ChainSetup
        The session's setup facade.

    Returns
    -------
    EntityHandle
        The ready deployer handle.
    """
    return asyncio.run(chain_setup.get_deployer())
