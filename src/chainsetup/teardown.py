"""Releases every provisioned fixture at the end of a test run."""

from __future__ import annotations

import asyncio
import logging

from .errors import ReleaseError, SetupError, SetupErrorKind
from .registry import EntityRegistry


class TeardownCoordinator:
    """Scoped release of a registry.

    Use as `async with` inside an event loop, or as a plain `with` outside one (pytest
    session fixtures). Entering the plain form inside a running loop raises SetupError.
    The registry is torn down on every exit path, including cancellation and keyboard
    interrupts. Teardown failures are logged and never raised, and the exception that
    ended the scope is never suppressed.
    """

    def __init__(self, registry: EntityRegistry):
        self.registry = registry
        self._has_run = False

    @property
    def has_run(self) -> bool:
        """Whether teardown already happened."""
        return self._has_run

    async def run(self) -> bool:
        """Tear down the registry, once.

        Returns
        -------
        bool
            True if every fixture was released cleanly, or teardown already ran.
        """
        if self._has_run:
            return True
        self._has_run = True
        fixture_count = len(self.registry)
        try:
            await self.registry.remove_all()
        except ReleaseError as exc:
            logging.error(
                "Teardown failed to release %s of %s fixture(s): %s",
                len(exc.orig_exception),
                fixture_count,
                [repr(orig) for orig in exc.orig_exception],
            )
            return False
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logging.error("Teardown failed: %s", repr(exc))
            return False
        logging.info("Teardown released %s fixture(s)", fixture_count)
        return True

    async def __aenter__(self) -> EntityRegistry:
        return self.registry

    async def __aexit__(self, exc_type, exc, traceback) -> bool:
        if exc_type is not None:
            logging.info("Tearing down fixtures after %s", exc_type.__name__)
        _ = await self.run()
        return False

    def __enter__(self) -> EntityRegistry:
        try:
            _ = asyncio.get_running_loop()
        except RuntimeError:
            return self.registry
        # Teardown at exit would need asyncio.run, which refuses to nest in a running loop
        raise SetupError(
            "A plain `with TeardownCoordinator` can't be used inside a running event loop, use `async with`.",
            kind=SetupErrorKind.REGISTRY_POISONED,
        )

    def __exit__(self, exc_type, exc, traceback) -> bool:
        if exc_type is not None:
            logging.info("Tearing down fixtures after %s", exc_type.__name__)
        _ = asyncio.run(self.run())
        return False
