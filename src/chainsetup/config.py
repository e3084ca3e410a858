"""Defines the fixture setup configuration from env vars."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv
from eth_typing import URI
from fixedpointmath import FixedPoint

# Pre-funded account 0 of anvil's default dev mnemonic
ANVIL_DEPLOYER_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


@dataclass
class SetupConfig:
    """The configuration dataclass for fixture provisioning."""

    rpc_uri: URI | str = URI("http://127.0.0.1:8545")
    """The uri to the ethereum node."""
    deployer_private_key: str | None = ANVIL_DEPLOYER_PRIVATE_KEY
    """The deployer's private key. If None, a fresh key is generated per run."""
    deployer_initial_eth: FixedPoint = field(default_factory=lambda: FixedPoint(1_000))
    """The eth balance the deployer is funded with."""
    account_initial_eth: FixedPoint = field(default_factory=lambda: FixedPoint(100))
    """The eth balance additional accounts are funded with."""
    provision_timeout: float = 60.0
    """Seconds a single provisioning attempt may take before it fails with a timeout."""
    provision_retry_count: int = 1
    """Number of attempts per provisioning request. Only network errors and timeouts are retried."""
    release_funds: bool = True
    """Whether teardown zeroes the balances of funded accounts."""

    def __post_init__(self):
        if isinstance(self.rpc_uri, str):
            self.rpc_uri = URI(self.rpc_uri)
        if isinstance(self.deployer_initial_eth, (str, int)):
            self.deployer_initial_eth = FixedPoint(self.deployer_initial_eth)
        if isinstance(self.account_initial_eth, (str, int)):
            self.account_initial_eth = FixedPoint(self.account_initial_eth)
        if isinstance(self.provision_timeout, str):
            self.provision_timeout = float(self.provision_timeout)
        if isinstance(self.provision_retry_count, str):
            self.provision_retry_count = int(self.provision_retry_count)
        if isinstance(self.release_funds, str):
            self.release_funds = self.release_funds.strip().lower() in ("1", "true", "yes")
        if self.deployer_private_key == "":
            self.deployer_private_key = None
        if self.provision_timeout <= 0:
            raise ValueError(f"{self.provision_timeout=} must be positive.")
        if self.provision_retry_count <= 0:
            raise ValueError(f"{self.provision_retry_count=} must be greater than zero.")


def build_setup_config(dotenv_file: str = "chainsetup.env") -> SetupConfig:
    """Build a setup config that looks for environmental variables.
    If env var exists, use that, otherwise, default.

    Arguments
    ---------
    dotenv_file: str, optional
        The path location of the dotenv file to load from.
        Defaults to "chainsetup.env".

    Returns
    -------
    SetupConfig
        Config settings for provisioning fixtures.
    """
    # Look for and load local config if it exists
    if os.path.exists(dotenv_file):
        load_dotenv(dotenv_file)

    env_vars = {
        "rpc_uri": "RPC_URI",
        "deployer_private_key": "DEPLOYER_PRIVATE_KEY",
        "deployer_initial_eth": "DEPLOYER_INITIAL_ETH",
        "account_initial_eth": "ACCOUNT_INITIAL_ETH",
        "provision_timeout": "PROVISION_TIMEOUT",
        "provision_retry_count": "PROVISION_RETRY_COUNT",
        "release_funds": "RELEASE_FUNDS",
    }
    arg_dict = {}
    for arg_name, env_name in env_vars.items():
        value = os.getenv(env_name)
        if value is not None:
            arg_dict[arg_name] = value
    return SetupConfig(**arg_dict)
