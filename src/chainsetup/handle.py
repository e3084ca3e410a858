"""Immutable handles describing provisioned test entities."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

from web3 import Web3

from .errors import NotReadyError

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount
    from eth_typing import ChecksumAddress
    from web3.contract.contract import Contract

    from .errors import ProvisioningError


class EntityKind(Enum):
    r"""The kind of fixture an entity handle represents."""

    DEPLOYER = "deployer"
    ACCOUNT = "account"
    CONTRACT = "contract"


class ProvisioningStatus(Enum):
    r"""Lifecycle state of an entity handle."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class EntityHandle:
    """A provisioned test entity.

    Handles are never mutated; status transitions return a new handle.
    """

    logical_name: str
    """The name identifying this fixture within a run."""
    kind: EntityKind
    """The fixture kind."""
    status: ProvisioningStatus = ProvisioningStatus.PENDING
    """Where the handle is in its lifecycle."""
    checksum_address: ChecksumAddress | None = None
    """The on-chain address, set once the entity is ready."""
    account: LocalAccount | None = field(default=None, repr=False, compare=False)
    """The signing account for deployer and account fixtures."""
    contract: Contract | None = field(default=None, repr=False, compare=False)
    """The web3 contract object for contract fixtures."""
    error: ProvisioningError | None = field(default=None, compare=False)
    """The failure cause for failed handles."""

    @property
    def address(self) -> ChecksumAddress:
        """The checksum address of the entity.

        Returns
        -------
        ChecksumAddress
            The address.
        """
        if self.status != ProvisioningStatus.READY or self.checksum_address is None:
            raise NotReadyError(f"Entity {self.logical_name!r} is {self.status.value}, address is not available.")
        return self.checksum_address

    @property
    def is_ready(self) -> bool:
        """Whether the handle has been promoted to ready."""
        return self.status == ProvisioningStatus.READY

    def promote(
        self,
        address: str,
        account: LocalAccount | None = None,
        contract: Contract | None = None,
    ) -> EntityHandle:
        """Return a ready copy of this handle.

        Arguments
        ---------
        address: str
            The entity's address, checksummed on the way in.
        account: LocalAccount | None, optional
            The signing account, if any.
        contract: Contract | None, optional
            The deployed contract object, if any.

        Returns
        -------
        EntityHandle
            The ready handle.
        """
        if self.status != ProvisioningStatus.PENDING:
            raise ValueError(f"Only pending handles can be promoted, {self.logical_name!r} is {self.status.value}.")
        return replace(
            self,
            status=ProvisioningStatus.READY,
            checksum_address=Web3.to_checksum_address(address),
            account=account,
            contract=contract,
            error=None,
        )

    def fail(self, error: ProvisioningError) -> EntityHandle:
        """Return a failed copy of this handle.

        Arguments
        ---------
        error: ProvisioningError
            The failure cause.

        Returns
        -------
        EntityHandle
            The failed handle.
        """
        return replace(self, status=ProvisioningStatus.FAILED, checksum_address=None, error=error)
