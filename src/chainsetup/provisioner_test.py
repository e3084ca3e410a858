"""Tests for the web3 provisioner, against a mocked web3 instance."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import MagicMock

import pytest
import requests
from eth_account.account import Account
from fixedpointmath import FixedPoint
from web3 import Web3

from .chain_setup import ChainSetup
from .config import ANVIL_DEPLOYER_PRIVATE_KEY, SetupConfig
from .errors import ProvisioningError, ProvisioningErrorKind
from .fixture_types import AccountParams, ContractParams, DeployerParams, ProvisionRequest, to_provision_request
from .handle import EntityKind
from .provisioner import Web3Provisioner
from .registry import EntityRegistry
from .teardown import TeardownCoordinator

CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def make_web3(rpc_result: dict | None = None) -> MagicMock:
    """Build a mock web3 whose raw rpc requests return the given response.

    Arguments
    ---------
    rpc_result: dict | None, optional
        The response for `provider.make_request`. Defaults to a success response.

    Returns
    -------
    MagicMock
        The mocked web3 instance.
    """
    web3 = MagicMock()
    web3.is_checksum_address = Web3.is_checksum_address
    if rpc_result is None:
        rpc_result = {"jsonrpc": "2.0", "id": 1, "result": True}
    web3.provider.make_request.return_value = rpc_result
    return web3


def test_provision_deployer_funds_account():
    """The deployer is funded with its initial eth via anvil_setBalance."""
    web3 = make_web3()
    provisioner = Web3Provisioner(web3)
    request = to_provision_request(
        "deployer", DeployerParams(initial_eth=FixedPoint(1_000), private_key=ANVIL_DEPLOYER_PRIVATE_KEY)
    )

    handle = asyncio.run(provisioner.provision(request))

    expected_address = Account.from_key(ANVIL_DEPLOYER_PRIVATE_KEY).address
    assert handle.is_ready
    assert handle.kind == EntityKind.DEPLOYER
    assert handle.address == expected_address
    assert handle.account is not None
    web3.provider.make_request.assert_called_once_with(
        method="anvil_setBalance", params=[expected_address, hex(1_000 * 10**18)]
    )


def test_provision_account_generates_key():
    """Accounts without a key get a fresh one."""
    provisioner = Web3Provisioner(make_web3())
    first = asyncio.run(provisioner.provision(to_provision_request("account:a", AccountParams(FixedPoint(1)))))
    second = asyncio.run(provisioner.provision(to_provision_request("account:b", AccountParams(FixedPoint(1)))))
    assert first.address != second.address


def test_rpc_error_is_rejected():
    """An error response from the node is a rejection."""
    web3 = make_web3({"jsonrpc": "2.0", "id": 1, "error": {"code": -32603, "message": "not supported"}})
    provisioner = Web3Provisioner(web3)
    with pytest.raises(ProvisioningError) as exc_info:
        asyncio.run(provisioner.provision(to_provision_request("deployer", DeployerParams(FixedPoint(1)))))
    assert exc_info.value.kind == ProvisioningErrorKind.REJECTED
    assert exc_info.value.logical_name == "deployer"


def test_connection_error_is_network():
    """An unreachable node is a network failure, with the original exception chained."""
    web3 = make_web3()
    web3.provider.make_request.side_effect = requests.exceptions.ConnectionError("refused")
    provisioner = Web3Provisioner(web3)
    with pytest.raises(ProvisioningError) as exc_info:
        asyncio.run(provisioner.provision(to_provision_request("deployer", DeployerParams(FixedPoint(1)))))
    assert exc_info.value.kind == ProvisioningErrorKind.NETWORK
    assert isinstance(exc_info.value.__cause__, requests.exceptions.ConnectionError)


def test_slow_node_times_out():
    """Provisioning that outlasts the timeout fails with TIMEOUT."""
    web3 = make_web3()

    def slow_request(**kwargs):
        time.sleep(0.3)
        return {"jsonrpc": "2.0", "id": 1, "result": True}

    web3.provider.make_request.side_effect = slow_request
    provisioner = Web3Provisioner(web3, timeout=0.05)
    with pytest.raises(ProvisioningError) as exc_info:
        asyncio.run(provisioner.provision(to_provision_request("deployer", DeployerParams(FixedPoint(1)))))
    assert exc_info.value.kind == ProvisioningErrorKind.TIMEOUT


def make_slow_first_request(web3: MagicMock, delay: float) -> list[list[str]]:
    """Make the first raw rpc request sleep, and record the params of every request.

    Arguments
    ---------
    web3: MagicMock
        The mocked web3 instance.
    delay: float
        Seconds the first request takes.

    Returns
    -------
    list[list[str]]
        The recorded params, appended to as requests arrive.
    """
    calls: list[list[str]] = []

    def request(method, params):
        # pylint: disable=unused-argument
        calls.append(params)
        if len(calls) == 1:
            time.sleep(delay)
        return {"jsonrpc": "2.0", "id": 1, "result": True}

    web3.provider.make_request.side_effect = request
    return calls


def test_timed_out_account_is_released_when_it_finishes():
    """An account funded after its attempt timed out gets its balance zeroed."""
    web3 = make_web3()
    calls = make_slow_first_request(web3, delay=0.3)
    provisioner = Web3Provisioner(web3, timeout=0.05)
    with pytest.raises(ProvisioningError) as exc_info:
        asyncio.run(provisioner.provision(to_provision_request("account:a", AccountParams(FixedPoint(1)))))
    assert exc_info.value.kind == ProvisioningErrorKind.TIMEOUT

    provisioner.close()
    funded_address = calls[0][0]
    assert calls == [[funded_address, hex(10**18)], [funded_address, "0x0"]]


def test_timed_out_attempts_are_released_after_retry():
    """Retrying a timed out account leaves no funded account behind once teardown is done."""
    web3 = make_web3()
    calls = make_slow_first_request(web3, delay=0.3)
    provisioner = Web3Provisioner(web3, timeout=0.1)
    registry = EntityRegistry()
    chain_setup = ChainSetup(registry, provisioner, SetupConfig(provision_retry_count=2))

    async def run():
        async with TeardownCoordinator(registry):
            return await chain_setup.get_account("alice")

    handle = asyncio.run(run())
    provisioner.close()

    funded = {params[0] for params in calls if params[1] != "0x0"}
    zeroed = {params[0] for params in calls if params[1] == "0x0"}
    assert len(funded) == 2
    assert handle.address in funded
    assert zeroed == funded


def test_provision_contract():
    """Contracts are signed by the deployer and take the receipt's contract address."""
    web3 = make_web3()
    web3.eth.get_transaction_count.return_value = 3
    web3.eth.send_raw_transaction.return_value = b"\x01" * 32
    web3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "contractAddress": CONTRACT_ADDRESS}
    constructor = web3.eth.contract.return_value.constructor
    constructor.return_value.build_transaction.return_value = {"data": "0x6080"}
    deployer = MagicMock()
    deployer.address = Account.from_key(ANVIL_DEPLOYER_PRIVATE_KEY).address
    deployer.sign_transaction.return_value.raw_transaction = b"signed"

    provisioner = Web3Provisioner(web3)
    params = ContractParams(abi=[], bytecode="0x6080", constructor_args=(7,), deployer=deployer)
    handle = asyncio.run(provisioner.provision(to_provision_request("contract:token", params)))

    assert handle.address == CONTRACT_ADDRESS
    constructor.assert_called_once_with(7)
    constructor.return_value.build_transaction.assert_called_once_with({"from": deployer.address, "nonce": 3})
    web3.eth.send_raw_transaction.assert_called_once_with(b"signed")


def test_reverted_deploy_is_rejected():
    """A failed deploy receipt is a rejection."""
    web3 = make_web3()
    web3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "contractAddress": None}
    deployer = MagicMock()
    deployer.address = Account.from_key(ANVIL_DEPLOYER_PRIVATE_KEY).address
    params = ContractParams(abi=[], bytecode="0x6080", deployer=deployer)
    with pytest.raises(ProvisioningError) as exc_info:
        asyncio.run(Web3Provisioner(web3).provision(to_provision_request("contract:token", params)))
    assert exc_info.value.kind == ProvisioningErrorKind.REJECTED


def test_release_zeroes_balance():
    """Releasing an account zeroes its balance unless release_funds is off."""
    web3 = make_web3()
    provisioner = Web3Provisioner(web3)
    handle = asyncio.run(provisioner.provision(to_provision_request("account:a", AccountParams(FixedPoint(1)))))
    web3.provider.make_request.reset_mock()

    asyncio.run(provisioner.release(handle))
    web3.provider.make_request.assert_called_once_with(method="anvil_setBalance", params=[handle.address, "0x0"])

    web3.provider.make_request.reset_mock()
    asyncio.run(Web3Provisioner(web3, release_funds=False).release(handle))
    web3.provider.make_request.assert_not_called()


def test_contract_without_deployer_is_invalid():
    """A request built without validation still refuses a contract with no deployer."""
    web3 = make_web3()
    request = ProvisionRequest("contract:token", EntityKind.CONTRACT, ContractParams(abi=[], bytecode="0x6080"))
    with pytest.raises(ProvisioningError) as exc_info:
        asyncio.run(Web3Provisioner(web3).provision(request))
    assert exc_info.value.kind == ProvisioningErrorKind.INVALID_PARAMETERS
    assert exc_info.value.logical_name == "contract:token"
    web3.eth.send_raw_transaction.assert_not_called()
