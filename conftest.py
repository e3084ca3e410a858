# Ignore docstrings for this file
# pylint: disable=missing-docstring
# ruff: noqa: D100 (undocumented-public-module)


import os

import pytest

from chainsetup.test_fixtures import chain_setup, deployer, local_chain

# Let exceptions escape pytest so a debugger can stop on them.
# Fixture teardown does not run in this mode, so a launched anvil must be killed by hand.
if os.getenv("_PYTEST_RAISE", "0") != "0":

    @pytest.hookimpl(tryfirst=True)
    def pytest_exception_interact(call):
        raise call.excinfo.value

    @pytest.hookimpl(tryfirst=True)
    def pytest_internalerror(excinfo):
        raise excinfo.value


# Importing all fixtures here and defining here
# This allows for users of fixtures to not have to import all dependency fixtures when running
# NOTE: this means pytest can only be ran from this directory
__all__ = [
    "chain_setup",
    "deployer",
    "local_chain",
]
