"""Provisioners allocate and deploy the entities backing fixture handles."""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

from eth_account.account import Account

from .errors import ProvisioningError, ProvisioningErrorKind
from .fixture_types import AccountParams, ContractParams, DeployerParams, ProvisionRequest
from .handle import EntityHandle, EntityKind
from .rpc_interface import connect_web3, set_anvil_account_balance

if TYPE_CHECKING:
    from eth_typing import ChecksumAddress
    from web3 import Web3
    from web3.contract.contract import Contract

    from .config import SetupConfig


class Provisioner:
    """Base class for provisioners.

    A provisioner performs exactly one attempt per call. Failures are raised as
    ProvisioningError; retry policy belongs to the caller.
    """

    async def provision(self, request: ProvisionRequest) -> EntityHandle:
        """Allocate or deploy the entity described by the request.

        Arguments
        ---------
        request: ProvisionRequest
            What to provision.

        Returns
        -------
        EntityHandle
            A ready handle for the entity.
        """
        raise NotImplementedError

    async def release(self, handle: EntityHandle) -> None:
        """Release external resources held by a ready entity. Does nothing by default.

        Arguments
        ---------
        handle: EntityHandle
            The handle to release.
        """
        # pylint: disable=unused-argument
        return None

    def close(self) -> None:
        """Wait for any background work the provisioner still owns. Does nothing by default."""
        return None


class Web3Provisioner(Provisioner):
    """Provisions funded accounts and deployed contracts on an anvil chain through web3."""

    def __init__(self, web3: Web3, timeout: float = 60.0, release_funds: bool = True):
        """Initialize the provisioner.

        Arguments
        ---------
        web3: Web3
            The web3 instance connected to the chain.
        timeout: float, optional
            Seconds a single provisioning or release call may take. Defaults to 60.
        release_funds: bool, optional
            Whether releasing an account zeroes its balance. Defaults to True.
        """
        self.web3 = web3
        self.timeout = timeout
        self.release_funds = release_funds
        # Deploy transactions from one account must not race for the same nonce
        self._send_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(thread_name_prefix="chainsetup-provision")

    @classmethod
    def from_config(cls, config: SetupConfig) -> Web3Provisioner:
        """Build a provisioner connected to the configured rpc uri.

        Arguments
        ---------
        config: SetupConfig
            The setup configuration.

        Returns
        -------
        Web3Provisioner
            The provisioner.
        """
        web3 = connect_web3(config.rpc_uri)
        return cls(web3, timeout=config.provision_timeout, release_funds=config.release_funds)

    async def provision(self, request: ProvisionRequest) -> EntityHandle:
        logging.debug("Provisioning %s with %s", request.logical_name, request.parameters)
        # web3 is used synchronously, so the blocking calls run in a worker thread
        future = self._executor.submit(self._provision_sync, request)
        try:
            try:
                return await asyncio.wait_for(asyncio.wrap_future(future), timeout=self.timeout)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                # The worker can't be interrupted; whatever it still funds or deploys is released when it finishes
                future.add_done_callback(self._release_abandoned)
                raise
        except ProvisioningError as exc:
            if exc.logical_name is None:
                exc.logical_name = request.logical_name
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise ProvisioningError.from_exception(exc, logical_name=request.logical_name) from exc

    async def release(self, handle: EntityHandle) -> None:
        if handle.kind == EntityKind.CONTRACT or not self.release_funds:
            return
        await asyncio.wait_for(asyncio.to_thread(self._release_sync, handle), timeout=self.timeout)

    def close(self) -> None:
        """Wait for abandoned provisioning threads, and the releases they trigger, to finish."""
        self._executor.shutdown(wait=True)

    def _release_sync(self, handle: EntityHandle) -> None:
        _ = set_anvil_account_balance(self.web3, handle.address, 0)
        logging.debug("Zeroed balance of %s at %s", handle.logical_name, handle.address)

    def _release_abandoned(self, future: Future[EntityHandle]) -> None:
        """Release the entity a timed out or cancelled attempt produced after its caller gave up.

        Runs in the worker thread once the attempt finishes, or immediately if it already has.

        Arguments
        ---------
        future: Future[EntityHandle]
            The abandoned attempt.
        """
        if future.cancelled() or future.exception() is not None:
            return
        handle = future.result()
        if handle.kind == EntityKind.CONTRACT or not self.release_funds:
            return
        logging.warning(
            "Releasing %s at %s, provisioned after its caller gave up", handle.logical_name, handle.address
        )
        try:
            self._release_sync(handle)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logging.error("Failed to release abandoned fixture %s: %s", handle.logical_name, repr(exc))

    def _provision_sync(self, request: ProvisionRequest) -> EntityHandle:
        handle = EntityHandle(logical_name=request.logical_name, kind=request.kind)
        params = request.parameters
        if isinstance(params, (DeployerParams, AccountParams)):
            if params.private_key is None:
                account = Account.create(extra_entropy=request.logical_name)
            else:
                account = Account.from_key(params.private_key)
            _ = set_anvil_account_balance(self.web3, account.address, params.initial_eth.scaled_value)
            return handle.promote(account.address, account=account)
        if isinstance(params, ContractParams):
            address, contract = self._deploy_contract(params)
            return handle.promote(address, contract=contract)
        raise ProvisioningError(
            f"Unsupported fixture parameters {type(params).__name__}",
            kind=ProvisioningErrorKind.INVALID_PARAMETERS,
        )

    def _deploy_contract(self, params: ContractParams) -> tuple[ChecksumAddress, Contract]:
        """Deploy a contract signed by the deployer and wait for the receipt.

        Arguments
        ---------
        params: ContractParams
            The abi, bytecode, constructor arguments and signing account.

        Returns
        -------
        tuple[ChecksumAddress, Contract]
            The deployed contract address and Contract object.
        """
        deployer = params.deployer
        if deployer is None:
            raise ProvisioningError(
                "Contract fixtures need a deployer account", kind=ProvisioningErrorKind.INVALID_PARAMETERS
            )
        contract_factory = self.web3.eth.contract(abi=params.abi, bytecode=params.bytecode)
        with self._send_lock:
            nonce = self.web3.eth.get_transaction_count(deployer.address, "pending")
            unsigned_txn = contract_factory.constructor(*params.constructor_args).build_transaction(
                {"from": deployer.address, "nonce": nonce}
            )
            signed_txn = deployer.sign_transaction(unsigned_txn)
            tx_hash = self.web3.eth.send_raw_transaction(signed_txn.raw_transaction)
        tx_receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.timeout)
        if tx_receipt.get("status") != 1:
            raise ProvisioningError(
                f"Deploy transaction {tx_hash!r} reverted", kind=ProvisioningErrorKind.REJECTED
            )
        contract_address = tx_receipt.get("contractAddress")
        if contract_address is None:
            raise ProvisioningError(
                "Deploying contract didn't return contract address", kind=ProvisioningErrorKind.REJECTED
            )
        return contract_address, self.web3.eth.contract(address=contract_address, abi=params.abi)
