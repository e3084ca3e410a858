"""Functions for interfacing with the anvil or ethereum RPC endpoint"""

from __future__ import annotations

from eth_typing import URI
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware
from web3.types import RPCEndpoint, RPCResponse

from .errors import ProvisioningError, ProvisioningErrorKind
from .utils import retry_call

DEFAULT_READ_RETRY_COUNT = 5
DEFAULT_REQUEST_TIMEOUT = 20


def connect_web3(rpc_uri: URI | str, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> Web3:
    """Connect to a node over http.

    The proof of authority middleware lets the same instance talk to geth --dev; anvil ignores it.

    Arguments
    ---------
    rpc_uri: URI | str
        The node's http rpc uri.
    request_timeout: float, optional
        Seconds each http request to the node may take. Defaults to 20.

    Returns
    -------
    Web3
        The web3 instance. Connection errors surface on first use.
    """
    web3 = Web3(Web3.HTTPProvider(rpc_uri, request_kwargs={"timeout": request_timeout}))
    web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return web3


def raise_for_rpc_error(rpc_response: RPCResponse, method: str) -> RPCResponse:
    """Raise if a raw RPC response carries an error.

    Arguments
    ---------
    rpc_response: RPCResponse
        The response returned by `web3.provider.make_request`.
    method: str
        The RPC method that was called, for the error message.

    Returns
    -------
    RPCResponse
        The same response, if it holds no error.
    """
    error = rpc_response.get("error")
    if error is not None:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise ProvisioningError(f"{method} failed: {message}", kind=ProvisioningErrorKind.REJECTED)
    return rpc_response


def set_anvil_account_balance(web3: Web3, account_address: str, amount_wei: int) -> RPCResponse:
    """Set the eth balance of the the account using the web3 provider.

    Arguments
    ---------
    web3: Web3
        The instantiated web3 provider.
    account_address: str
        The address of the account to fund.
    amount_wei: int
        Amount_wei to fund, in wei.

    Returns
    -------
    RPCResponse
        The raw response. Raises ProvisioningError if the node returned an error.
    """
    if not web3.is_checksum_address(account_address):
        raise ValueError(f"argument {account_address=} must be a checksum address")
    if amount_wei < 0:
        raise ValueError(f"argument {amount_wei=} must be non-negative")
    params = [account_address, hex(amount_wei)]  # account, amount
    rpc_response = web3.provider.make_request(method=RPCEndpoint("anvil_setBalance"), params=params)
    return raise_for_rpc_error(rpc_response, "anvil_setBalance")


def get_account_balance(web3: Web3, account_address: str, read_retry_count: int | None = None) -> int | None:
    """Get the balance for an account deployed on the web3 provider.

    Arguments
    ---------
    web3: Web3
        The instantiated web3 provider.
    account_address: str
        The address of the account.
    read_retry_count: int | None
        The number of times to retry the read call if it fails. Defaults to 5.

    Returns
    -------
    int | None
        The balance of the account in wei, or None if the rpc call failed.
    """
    if read_retry_count is None:
        read_retry_count = DEFAULT_READ_RETRY_COUNT

    if not web3.is_checksum_address(account_address):
        raise ValueError(f"argument {account_address=} must be a checksum address")
    # Retry this call if it fails
    rpc_response = retry_call(
        read_retry_count,
        None,
        web3.provider.make_request,
        method=RPCEndpoint("eth_getBalance"),
        params=[account_address, "latest"],
    )

    hex_result = rpc_response.get("result")
    if hex_result is not None:
        return int(hex_result, base=16)  # cast hex to int
    return None
