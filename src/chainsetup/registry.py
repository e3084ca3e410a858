"""In-memory registry of provisioned entities for one test run."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .errors import ProvisioningError, ReleaseError, SetupError, SetupErrorKind
from .handle import EntityHandle, EntityKind, ProvisioningStatus

ProvisionFactory = Callable[[], Awaitable[EntityHandle]]
ReleaseCallback = Callable[[EntityHandle], Awaitable[None]]


@dataclass
class _RegistryEntry:
    handle: EntityHandle
    task: asyncio.Task[EntityHandle] | None = None
    release: ReleaseCallback | None = None


def _consume_task_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; retrieve the result so asyncio doesn't warn about it
    if not task.cancelled():
        _ = task.exception()


class EntityRegistry:
    """Maps logical fixture names to entity handles.

    Each name is provisioned at most once at a time. Concurrent callers for a name attach
    to the same in-flight task and all observe the same handle or the same failure.
    Failed entries are not cached; the next request for the name provisions again.

    All bookkeeping happens between suspension points, so the registry relies on asyncio's
    single-threaded scheduling instead of a lock. It must not be shared across threads.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _RegistryEntry] = {}
        self._closed = False

    def __contains__(self, logical_name: object) -> bool:
        return logical_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def closed(self) -> bool:
        """Whether the registry has been torn down."""
        return self._closed

    def names(self) -> list[str]:
        """Return the logical names currently tracked.

        Returns
        -------
        list[str]
            The names, in no particular order.
        """
        return list(self._entries)

    def get(self, logical_name: str) -> EntityHandle | None:
        """Look up the current handle for a name without provisioning.

        Arguments
        ---------
        logical_name: str
            The fixture name.

        Returns
        -------
        EntityHandle | None
            The handle in whatever state it is in, or None if the name is unknown.
        """
        entry = self._entries.get(logical_name)
        if entry is None:
            return None
        return entry.handle

    async def get_or_create(
        self,
        logical_name: str,
        kind: EntityKind,
        factory: ProvisionFactory,
        release: ReleaseCallback | None = None,
    ) -> EntityHandle:
        """Return the ready handle for a name, provisioning it on first use.

        Arguments
        ---------
        logical_name: str
            The fixture name.
        kind: EntityKind
            The fixture kind, used for the pending placeholder.
        factory: ProvisionFactory
            Coroutine function that provisions the entity and returns a ready handle.
            Only called when no ready or in-flight entry exists for the name.
        release: ReleaseCallback | None, optional
            Called with the ready handle at teardown.

        Returns
        -------
        EntityHandle
            The ready handle.
        """
        if self._closed:
            raise SetupError(
                f"Registry is torn down, cannot provision {logical_name!r}.", kind=SetupErrorKind.REGISTRY_POISONED
            )

        entry = self._entries.get(logical_name)
        if entry is not None and entry.handle.kind != kind:
            raise SetupError(
                f"{logical_name!r} is registered as {entry.handle.kind.value}, not {kind.value}.",
                kind=SetupErrorKind.REGISTRY_POISONED,
            )
        if entry is not None and entry.handle.is_ready:
            logging.debug("Fixture %s cache hit", logical_name)
            return entry.handle

        task = entry.task if entry is not None else None
        if task is None or not self._is_live(task):
            task = self._start(logical_name, kind, factory, release)
        else:
            logging.debug("Fixture %s is being provisioned, waiting", logical_name)

        try:
            # Shielded so a cancelled waiter leaves the provisioning and the other waiters alone
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            waiter_cancelled = current is not None and current.cancelling() > 0
            if self._closed and task.cancelled() and not waiter_cancelled:
                raise SetupError(
                    f"Registry was torn down while {logical_name!r} was being provisioned.",
                    kind=SetupErrorKind.REGISTRY_POISONED,
                ) from None
            raise

    def _start(
        self,
        logical_name: str,
        kind: EntityKind,
        factory: ProvisionFactory,
        release: ReleaseCallback | None,
    ) -> asyncio.Task[EntityHandle]:
        entry = _RegistryEntry(handle=EntityHandle(logical_name=logical_name, kind=kind), release=release)
        # Published before the first suspension point, later callers see the in-flight task
        self._entries[logical_name] = entry
        task = asyncio.get_running_loop().create_task(self._provision(entry, factory), name=f"provision-{logical_name}")
        task.add_done_callback(_consume_task_exception)
        entry.task = task
        logging.info("Provisioning fixture %s (%s)", logical_name, kind.value)
        return task

    @staticmethod
    def _is_live(task: asyncio.Task | None) -> bool:
        if task is None or task.done():
            return False
        # Tasks left over from an event loop that has since finished can never complete
        return task.get_loop() is asyncio.get_running_loop()

    async def _provision(self, entry: _RegistryEntry, factory: ProvisionFactory) -> EntityHandle:
        logical_name = entry.handle.logical_name
        try:
            result = await factory()
        except asyncio.CancelledError:
            entry.task = None
            logging.info("Provisioning of fixture %s was cancelled", logical_name)
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            error = ProvisioningError.from_exception(exc, logical_name=logical_name)
            entry.handle = entry.handle.fail(error)
            entry.task = None
            logging.warning("Provisioning of fixture %s failed: %s", logical_name, error)
            if error is exc:
                raise
            raise error from exc

        if not isinstance(result, EntityHandle) or result.logical_name != logical_name or not result.is_ready:
            entry.task = None
            raise SetupError(
                f"Factory for {logical_name!r} returned {result!r}, expected a ready handle for that name.",
                kind=SetupErrorKind.REGISTRY_POISONED,
            )

        entry.handle = result
        entry.task = None
        logging.info("Fixture %s ready at %s", logical_name, result.checksum_address)
        return result

    async def remove_all(self) -> None:
        """Cancel in-flight provisioning, release every ready entity, and close the registry.

        Callers still waiting on cancelled provisioning get a REGISTRY_POISONED SetupError.
        Every release callback is attempted even if earlier ones fail.
        """
        entries = list(self._entries.values())
        self._entries.clear()
        self._closed = True

        running_loop = asyncio.get_running_loop()
        in_flight = [
            entry.task
            for entry in entries
            if entry.task is not None and not entry.task.done() and entry.task.get_loop() is running_loop
        ]
        for task in in_flight:
            task.cancel()
        if in_flight:
            _ = await asyncio.gather(*in_flight, return_exceptions=True)

        errors: list[Exception] = []
        for entry in entries:
            handle = entry.handle
            if handle.status != ProvisioningStatus.READY or entry.release is None:
                continue
            try:
                await entry.release(handle)
                logging.debug("Released fixture %s", handle.logical_name)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logging.warning("Failed to release fixture %s: %s", handle.logical_name, repr(exc))
                errors.append(exc)

        if errors:
            raise ReleaseError(f"{len(errors)} fixture(s) failed to release.", orig_exception=errors)
