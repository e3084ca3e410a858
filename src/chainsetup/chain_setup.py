"""Entry point test code uses to get provisioned fixtures."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from .config import SetupConfig
from .errors import (
    NotReadyError,
    ProvisioningError,
    ProvisioningErrorKind,
    SetupError,
    SetupErrorKind,
    classify_exception,
)
from .fixture_types import (
    AccountParams,
    ContractParams,
    DeployerParams,
    FixtureParams,
    load_contract_artifact,
    to_provision_request,
)
from .handle import EntityHandle, EntityKind
from .provisioner import Provisioner, Web3Provisioner
from .registry import EntityRegistry
from .utils import async_retry_call

DEPLOYER_NAME = "deployer"


def _is_transient(exc: Exception) -> bool:
    return classify_exception(exc) in (ProvisioningErrorKind.NETWORK, ProvisioningErrorKind.TIMEOUT)


class ChainSetup:
    """Lazily provisions fixtures and caches them in a registry for the run.

    The first request for a fixture may talk to the chain; later requests are cache hits.
    Failures are raised as `SetupError` with the `ProvisioningError` as `cause`.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        provisioner: Provisioner,
        config: SetupConfig | None = None,
    ):
        if config is None:
            config = SetupConfig()
        self.registry = registry
        self.provisioner = provisioner
        self.config = config

    @classmethod
    def from_config(cls, config: SetupConfig | None = None, registry: EntityRegistry | None = None) -> ChainSetup:
        """Build a setup connected to the chain named in the config.

        Arguments
        ---------
        config: SetupConfig | None, optional
            The setup config. Defaults are used if None.
        registry: EntityRegistry | None, optional
            The registry to cache fixtures in. A new one is created if None.

        Returns
        -------
        ChainSetup
            The setup facade.
        """
        if config is None:
            config = SetupConfig()
        if registry is None:
            registry = EntityRegistry()
        return cls(registry, Web3Provisioner.from_config(config), config)

    async def get_deployer(self) -> EntityHandle:
        """Get the funded deployer account.

        Returns
        -------
        EntityHandle
            The ready deployer handle.
        """
        params = DeployerParams(
            initial_eth=self.config.deployer_initial_eth, private_key=self.config.deployer_private_key
        )
        return await self._get(DEPLOYER_NAME, EntityKind.DEPLOYER, params)

    async def get_account(self, name: str) -> EntityHandle:
        """Get an additional funded account.

        Arguments
        ---------
        name: str
            The account's name, unique among accounts in this run.

        Returns
        -------
        EntityHandle
            The ready account handle.
        """
        params = AccountParams(initial_eth=self.config.account_initial_eth)
        return await self._get(f"account:{name}", EntityKind.ACCOUNT, params)

    async def get_contract(
        self,
        name: str,
        abi: list[dict[str, Any]],
        bytecode: str,
        constructor_args: Sequence[Any] = (),
    ) -> EntityHandle:
        """Get a contract deployed by the deployer, deploying it on first use.

        Arguments
        ---------
        name: str
            The contract fixture's name, unique among contracts in this run.
        abi: list[dict[str, Any]]
            The contract abi.
        bytecode: str
            The contract creation bytecode.
        constructor_args: Sequence[Any], optional
            Arguments passed to the constructor.

        Returns
        -------
        EntityHandle
            The ready contract handle; `handle.contract` is the web3 contract object.
        """
        logical_name = f"contract:{name}"
        cached = self.registry.get(logical_name)
        if cached is not None and cached.is_ready:
            return cached
        deployer = await self.get_deployer()
        params = ContractParams(
            abi=abi, bytecode=bytecode, constructor_args=tuple(constructor_args), deployer=deployer.account
        )
        return await self._get(logical_name, EntityKind.CONTRACT, params)

    async def get_contract_from_artifact(
        self, name: str, artifact_path: str, constructor_args: Sequence[Any] = ()
    ) -> EntityHandle:
        """Get a contract deployed from a compiled artifact json.

        Arguments
        ---------
        name: str
            The contract fixture's name.
        artifact_path: str
            Path to a foundry or hardhat artifact holding the abi and bytecode.
        constructor_args: Sequence[Any], optional
            Arguments passed to the constructor.

        Returns
        -------
        EntityHandle
            The ready contract handle.
        """
        try:
            abi, bytecode = load_contract_artifact(artifact_path)
        except ProvisioningError as exc:
            exc.logical_name = f"contract:{name}"
            raise SetupError(str(exc), kind=SetupErrorKind.PROVISIONING_FAILED, cause=exc) from exc
        return await self.get_contract(name, abi, bytecode, constructor_args)

    async def _get(self, logical_name: str, kind: EntityKind, params: FixtureParams) -> EntityHandle:
        async def attempt() -> EntityHandle:
            request = to_provision_request(logical_name, params)
            return await self.provisioner.provision(request)

        async def factory() -> EntityHandle:
            return await async_retry_call(self.config.provision_retry_count, _is_transient, attempt)

        try:
            handle = await self.registry.get_or_create(logical_name, kind, factory, self.provisioner.release)
        except ProvisioningError as exc:
            raise SetupError(
                f"Provisioning fixture {logical_name!r} failed: {exc}",
                kind=SetupErrorKind.PROVISIONING_FAILED,
                cause=exc,
            ) from exc

        try:
            _ = handle.address
        except NotReadyError as exc:
            logging.error("Registry returned %s for %s", handle.status.value, logical_name)
            raise SetupError(str(exc), kind=SetupErrorKind.REGISTRY_POISONED) from exc
        return handle
