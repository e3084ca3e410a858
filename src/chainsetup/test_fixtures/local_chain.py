"""Test fixture for launching a local anvil chain."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from typing import Iterator

import pytest
import requests

# we need to use the outer name for fixtures
# pylint: disable=redefined-outer-name


def _wait_for_rpc(rpc_uri: str, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            response = requests.post(
                rpc_uri, json={"jsonrpc": "2.0", "method": "eth_chainId", "params": [], "id": 1}, timeout=1
            )
            if response.ok:
                return
        except requests.exceptions.RequestException:
            pass
        if time.monotonic() > deadline:
            raise TimeoutError(f"anvil at {rpc_uri} did not come up within {timeout} seconds")
        time.sleep(0.1)


def launch_local_chain(anvil_port: int = 9999, host: str = "127.0.0.1") -> Iterator[str]:
    """Launch a local anvil chain.

    Arguments
    ---------
    anvil_port: int
        Port number for the anvil chain.
    host: str
        Host address.

    Yields
    ------
    str
        The local anvil chain URI.
    """
    if shutil.which("anvil") is None:
        # This env variable gets set when running tests in CI,
        # where a missing anvil is an error rather than a reason to skip
        if os.getenv("IN_CI") is None:
            pytest.skip("anvil not found, skipping")
        raise FileNotFoundError("anvil executable not found")

    # Supress output of anvil
    anvil_process = subprocess.Popen(  # pylint: disable=consider-using-with
        ["anvil", "--host", host, "--port", str(anvil_port)],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.STDOUT,
    )
    rpc_uri = f"http://{host}:{anvil_port}"
    try:
        _wait_for_rpc(rpc_uri)
        logging.debug("anvil running at %s", rpc_uri)
        yield rpc_uri
    finally:
        anvil_process.terminate()
        anvil_process.wait(timeout=10)


@pytest.fixture(scope="session")
def local_chain() -> Iterator[str]:
    """Fixture representing a local anvil chain.

    Yields
    ------
    str
        The local anvil chain URI.
    """
    yield from launch_local_chain()
