"""Typed parameter shapes for fixtures, and their conversion into provisioning requests."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from fixedpointmath import FixedPoint

from .errors import ProvisioningError, ProvisioningErrorKind
from .handle import EntityKind

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount


@dataclass(frozen=True)
class DeployerParams:
    """Parameters for the deployer fixture."""

    initial_eth: FixedPoint
    """The eth balance to fund the deployer with."""
    private_key: str | None = field(default=None, repr=False)
    """The deployer's key. A fresh key is generated if None."""


@dataclass(frozen=True)
class AccountParams:
    """Parameters for an additional funded account."""

    initial_eth: FixedPoint
    """The eth balance to fund the account with."""
    private_key: str | None = field(default=None, repr=False)
    """The account's key. A fresh key is generated if None."""


@dataclass(frozen=True)
class ContractParams:
    """Parameters for a contract deployed by the deployer."""

    abi: list[dict[str, Any]]
    """The contract abi."""
    bytecode: str
    """The contract creation bytecode, hex encoded."""
    constructor_args: tuple[Any, ...] = ()
    """Arguments passed to the constructor."""
    deployer: LocalAccount | None = field(default=None, repr=False)
    """The account signing the deploy transaction."""


FixtureParams = Union[DeployerParams, AccountParams, ContractParams]

_KIND_FOR_PARAMS: dict[type, EntityKind] = {
    DeployerParams: EntityKind.DEPLOYER,
    AccountParams: EntityKind.ACCOUNT,
    ContractParams: EntityKind.CONTRACT,
}


@dataclass(frozen=True)
class ProvisionRequest:
    """A single request to a provisioner. Not persisted beyond the call."""

    logical_name: str
    kind: EntityKind
    parameters: FixtureParams


def to_provision_request(logical_name: str, params: FixtureParams) -> ProvisionRequest:
    """Validate fixture parameters and build a provisioning request from them.

    Arguments
    ---------
    logical_name: str
        The fixture name.
    params: FixtureParams
        The fixture parameters.

    Returns
    -------
    ProvisionRequest
        The request, with the kind derived from the parameter type.
    """
    kind = _KIND_FOR_PARAMS.get(type(params))
    if kind is None:
        raise ProvisioningError(
            f"Unsupported fixture parameters {type(params).__name__}",
            kind=ProvisioningErrorKind.INVALID_PARAMETERS,
            logical_name=logical_name,
        )
    problem = _validate(logical_name, params)
    if problem is not None:
        raise ProvisioningError(problem, kind=ProvisioningErrorKind.INVALID_PARAMETERS, logical_name=logical_name)
    return ProvisionRequest(logical_name=logical_name, kind=kind, parameters=params)


def _validate(logical_name: str, params: FixtureParams) -> str | None:
    if not logical_name:
        return "logical name must not be empty"
    if isinstance(params, (DeployerParams, AccountParams)):
        if params.initial_eth < FixedPoint(0):
            return f"initial_eth must be non-negative, got {params.initial_eth}"
        return None
    # Contract
    if params.deployer is None:
        return "contract fixtures need a deployer account"
    if not isinstance(params.abi, list):
        return "abi must be a list of abi entries"
    bytecode = params.bytecode.removeprefix("0x")
    if not bytecode:
        return "bytecode must not be empty"
    try:
        bytes.fromhex(bytecode)
    except ValueError:
        return "bytecode must be hex encoded"
    return None


def load_contract_artifact(file_name: str) -> tuple[list[dict[str, Any]], str]:
    """Load the abi and creation bytecode from a compiled contract artifact.

    Both foundry (`bytecode.object`) and hardhat (`bytecode` string) layouts are supported.

    Arguments
    ---------
    file_name: str
        The artifact json file.

    Returns
    -------
    tuple[list[dict[str, Any]], str]
        The abi and the bytecode.
    """
    if not os.path.exists(file_name):
        raise ProvisioningError(
            f"Contract artifact {file_name} does not exist", kind=ProvisioningErrorKind.INVALID_PARAMETERS
        )
    with open(file_name, mode="r", encoding="UTF-8") as file:
        data = json.load(file)
    if "abi" not in data or "bytecode" not in data:
        raise ProvisioningError(
            f"Artifact {file_name=} must contain 'abi' and 'bytecode' fields",
            kind=ProvisioningErrorKind.INVALID_PARAMETERS,
        )
    bytecode = data["bytecode"]
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object", "")
    return data["abi"], bytecode
