"""Chainsetup: provisioned, cached and torn-down fixtures for EVM integration tests."""

from .chain_setup import DEPLOYER_NAME, ChainSetup
from .config import SetupConfig, build_setup_config
from .errors import (
    NotReadyError,
    ProvisioningError,
    ProvisioningErrorKind,
    ReleaseError,
    SetupError,
    SetupErrorKind,
)
from .fixture_types import AccountParams, ContractParams, DeployerParams, ProvisionRequest, to_provision_request
from .handle import EntityHandle, EntityKind, ProvisioningStatus
from .logs import close_logging, setup_logging
from .provisioner import Provisioner, Web3Provisioner
from .registry import EntityRegistry
from .teardown import TeardownCoordinator

__all__ = [
    "AccountParams",
    "ChainSetup",
    "ContractParams",
    "DEPLOYER_NAME",
    "DeployerParams",
    "EntityHandle",
    "EntityKind",
    "EntityRegistry",
    "NotReadyError",
    "ProvisionRequest",
    "Provisioner",
    "ProvisioningError",
    "ProvisioningErrorKind",
    "ProvisioningStatus",
    "ReleaseError",
    "SetupConfig",
    "SetupError",
    "SetupErrorKind",
    "TeardownCoordinator",
    "Web3Provisioner",
    "build_setup_config",
    "close_logging",
    "setup_logging",
    "to_provision_request",
]
