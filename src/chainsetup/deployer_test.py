"""Integration tests provisioning fixtures on a local anvil chain."""

from __future__ import annotations

import asyncio
import logging

import pytest

from .chain_setup import ChainSetup
from .handle import EntityHandle
from .rpc_interface import get_account_balance

# Fixtures are passed in by name
# pylint: disable=redefined-outer-name


@pytest.mark.anvil
def test_deployer(deployer: EntityHandle):
    """The deployer fixture can be built and has an address."""
    logging.info("deployer_0: %s", deployer.address)
    assert deployer.is_ready
    assert deployer.address == deployer.address


@pytest.mark.anvil
def test_deployer_is_funded(chain_setup: ChainSetup, deployer: EntityHandle):
    """The deployer holds its configured balance."""
    web3 = chain_setup.provisioner.web3  # type: ignore[attr-defined]
    balance = get_account_balance(web3, deployer.address)
    assert balance is not None
    assert balance >= chain_setup.config.deployer_initial_eth.scaled_value // 2


@pytest.mark.anvil
def test_concurrent_accounts(chain_setup: ChainSetup, deployer: EntityHandle):
    """Concurrent requests for the same account share one provisioning."""

    async def run():
        return await asyncio.gather(*[chain_setup.get_account("shared") for _ in range(5)])

    handles = asyncio.run(run())
    assert len({handle.address for handle in handles}) == 1
    assert handles[0].address != deployer.address


# Init code that deploys a runtime returning 42 for any call
ANSWER_INIT_CODE = "0x600a600c600039600a6000f3602a60005260206000f3"
ANSWER_RUNTIME_CODE = bytes.fromhex("602a60005260206000f3")


@pytest.mark.anvil
def test_contract_deployed_by_deployer(chain_setup: ChainSetup):
    """Contract fixtures are deployed once and have code at their address."""

    async def run():
        first = await chain_setup.get_contract("answer", abi=[], bytecode=ANSWER_INIT_CODE)
        second = await chain_setup.get_contract("answer", abi=[], bytecode=ANSWER_INIT_CODE)
        return first, second

    first, second = asyncio.run(run())
    assert first.address == second.address
    web3 = chain_setup.provisioner.web3  # type: ignore[attr-defined]
    assert bytes(web3.eth.get_code(first.address)) == ANSWER_RUNTIME_CODE
