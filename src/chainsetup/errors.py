"""Error types for fixture provisioning and the setup facade."""

from __future__ import annotations

import asyncio
from enum import Enum

import requests
from web3.exceptions import ContractLogicError, ProviderConnectionError, TimeExhausted, Web3RPCError


class ProvisioningErrorKind(Enum):
    r"""The reason a provisioning attempt failed."""

    NETWORK = "network"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    INVALID_PARAMETERS = "invalid_parameters"


class SetupErrorKind(Enum):
    r"""The reason a setup facade call failed."""

    PROVISIONING_FAILED = "provisioning_failed"
    REGISTRY_POISONED = "registry_poisoned"


class ProvisioningError(Exception):
    """Raised by a provisioner when allocating or deploying an entity fails."""

    def __init__(
        self,
        *args,
        # Passed as kwargs to allow for multiple `args`, similar to other exception types
        kind: ProvisioningErrorKind = ProvisioningErrorKind.REJECTED,
        logical_name: str | None = None,
        orig_exception: BaseException | None = None,
    ):
        super().__init__(*args)
        self.kind = kind
        self.logical_name = logical_name
        self.orig_exception = orig_exception

    def __str__(self) -> str:
        message = super().__str__()
        if self.logical_name is None:
            return f"[{self.kind.value}] {message}"
        return f"[{self.kind.value}] {self.logical_name}: {message}"

    @classmethod
    def from_exception(cls, exc: BaseException, logical_name: str | None = None) -> ProvisioningError:
        """Wrap an arbitrary exception raised during provisioning.

        Arguments
        ---------
        exc: BaseException
            The exception raised by the chain client or the factory.
        logical_name: str | None, optional
            The fixture name being provisioned.

        Returns
        -------
        ProvisioningError
            The wrapped error, or `exc` itself if it already is a ProvisioningError.
        """
        if isinstance(exc, ProvisioningError):
            if exc.logical_name is None:
                exc.logical_name = logical_name
            return exc
        out = cls(repr(exc), kind=classify_exception(exc), logical_name=logical_name, orig_exception=exc)
        out.__cause__ = exc
        return out


class SetupError(Exception):
    """Raised by the setup facade and the registry."""

    def __init__(
        self,
        *args,
        kind: SetupErrorKind = SetupErrorKind.PROVISIONING_FAILED,
        cause: ProvisioningError | None = None,
    ):
        super().__init__(*args)
        self.kind = kind
        self.cause = cause


class NotReadyError(Exception):
    """Raised when a derived property is read from a handle that is not ready."""


class ReleaseError(Exception):
    """Raised after teardown when one or more entities failed to release."""

    def __init__(self, *args, orig_exception: list[Exception] | None = None):
        super().__init__(*args)
        if orig_exception is None:
            orig_exception = []
        self.orig_exception = orig_exception


def classify_exception(exc: BaseException) -> ProvisioningErrorKind:
    """Map an exception raised by the chain client to a provisioning error kind.

    Arguments
    ---------
    exc: BaseException
        The exception to classify.

    Returns
    -------
    ProvisioningErrorKind
        The matching kind. Unrecognized exceptions are treated as rejections.
    """
    # pylint: disable=too-many-return-statements
    if isinstance(exc, ProvisioningError):
        return exc.kind
    # requests' ConnectTimeout is both a Timeout and a ConnectionError, so check timeouts first
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, TimeExhausted, requests.exceptions.Timeout)):
        return ProvisioningErrorKind.TIMEOUT
    if isinstance(exc, (ProviderConnectionError, requests.exceptions.ConnectionError, ConnectionError)):
        return ProvisioningErrorKind.NETWORK
    if isinstance(exc, (ContractLogicError, Web3RPCError)):
        return ProvisioningErrorKind.REJECTED
    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return ProvisioningErrorKind.INVALID_PARAMETERS
    return ProvisioningErrorKind.REJECTED
