"""
JSON-RPC Client for the development chain.

Lightweight alternative to web3.py: uses httpx for HTTP.
Supports contract calls, node-managed and raw transactions, receipt
polling, log queries, and the test-only ``evm_mine`` method.

Methods follow the standard Ethereum JSON-RPC API; ``evm_mine``
is provided by ganache/parity dev chains.
"""

from __future__ import annotations

import itertools
import logging
import os
import time
from typing import Any, Optional

import httpx

from ..errors import RpcError

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "http://localhost:8545"


def get_rpc_url() -> str:
    """Get the RPC URL from environment or default."""
    return os.environ.get("FUNDSHARES_RPC_URL", DEFAULT_RPC_URL)


def to_hex(value: int) -> str:
    """Encode an integer as a JSON-RPC quantity."""
    return hex(int(value))


def from_hex(value: Optional[str | int]) -> int:
    """Decode a JSON-RPC quantity (``None`` and ``0x`` decode to 0)."""
    if value is None or value in ("0x", ""):
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


def _block_param(block: int | str) -> str:
    if isinstance(block, int):
        return to_hex(block)
    return block


class RpcClient:
    """
    JSON-RPC 2.0 client over a persistent HTTP connection.

    Args:
        url: RPC endpoint URL (default: ``FUNDSHARES_RPC_URL`` or localhost:8545)
        timeout: HTTP timeout in seconds
        transport: Optional httpx transport (used by tests to fake a node)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url or get_rpc_url()
        self._ids = itertools.count(1)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def __enter__(self) -> "RpcClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def request(self, method: str, params: Optional[list] = None) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name (e.g., "eth_call")
            params: RPC parameters

        Returns:
            Result field from the RPC response

        Raises:
            RpcError: If the node answers with an error object
            httpx.HTTPStatusError: If the node answers with a non-2xx status
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }
        logger.debug("rpc %s %s", method, payload["params"])

        response = self._client.post(self.url, json=payload)
        response.raise_for_status()
        data = response.json()

        if "error" in data and data["error"] is not None:
            error = data["error"]
            if isinstance(error, dict):
                raise RpcError(method, error.get("code"), str(error.get("message", "")), error.get("data"))
            raise RpcError(method, None, str(error))

        return data.get("result")

    # ---------------------------------------------------------------------
    # Node state
    # ---------------------------------------------------------------------

    def accounts(self) -> list[str]:
        """Node-managed (unlocked) accounts."""
        return list(self.request("eth_accounts") or [])

    def block_number(self) -> int:
        return from_hex(self.request("eth_blockNumber"))

    def chain_id(self) -> int:
        return from_hex(self.request("eth_chainId"))

    def get_balance(self, address: str, block: int | str = "latest") -> int:
        """Ether balance in wei."""
        return from_hex(self.request("eth_getBalance", [address, _block_param(block)]))

    def get_transaction_count(self, address: str, block: int | str = "latest") -> int:
        return from_hex(
            self.request("eth_getTransactionCount", [address, _block_param(block)])
        )

    def gas_price(self) -> int:
        return from_hex(self.request("eth_gasPrice"))

    def mine_block(self) -> Any:
        """Force the dev chain to mine a block (``evm_mine``)."""
        return self.request("evm_mine")

    # ---------------------------------------------------------------------
    # Calls and transactions
    # ---------------------------------------------------------------------

    def call(self, tx: dict[str, Any], block: int | str = "latest") -> str:
        """Execute a read-only call; returns the raw hex return data."""
        return self.request("eth_call", [_encode_tx(tx), _block_param(block)])

    def estimate_gas(self, tx: dict[str, Any]) -> int:
        return from_hex(self.request("eth_estimateGas", [_encode_tx(tx)]))

    def send_transaction(self, tx: dict[str, Any]) -> str:
        """Send a transaction signed by a node-managed account; returns its hash."""
        return self.request("eth_sendTransaction", [_encode_tx(tx)])

    def send_raw_transaction(self, raw_tx: str) -> str:
        """Send a signed raw transaction; returns its hash."""
        return self.request("eth_sendRawTransaction", [raw_tx])

    def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        return self.request("eth_getTransactionReceipt", [tx_hash])

    def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120,
        poll_interval: float = 0.5,
    ) -> dict:
        """
        Wait for a transaction receipt.

        Raises:
            TimeoutError: If receipt not found within timeout
        """
        start = time.time()
        while time.time() - start < timeout:
            receipt = self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            time.sleep(poll_interval)

        raise TimeoutError(f"Transaction {tx_hash} not confirmed within {timeout}s")

    def get_logs(
        self,
        address: Optional[str] = None,
        topics: Optional[list] = None,
        from_block: int | str = "latest",
        to_block: int | str = "latest",
    ) -> list[dict]:
        log_filter: dict[str, Any] = {
            "fromBlock": _block_param(from_block),
            "toBlock": _block_param(to_block),
        }
        if address is not None:
            log_filter["address"] = address
        if topics is not None:
            log_filter["topics"] = topics
        return list(self.request("eth_getLogs", [log_filter]) or [])


_QUANTITY_FIELDS = ("gas", "gasPrice", "value", "nonce")


def _encode_tx(tx: dict[str, Any]) -> dict[str, Any]:
    """Hex-encode integer quantities and drop unset fields."""
    encoded = {}
    for key, value in tx.items():
        if value is None:
            continue
        if key in _QUANTITY_FIELDS and isinstance(value, int):
            value = to_hex(value)
        encoded[key] = value
    return encoded


# ---------------------------------------------------------------------------
# Process-wide handle
# ---------------------------------------------------------------------------

_api: Optional[RpcClient] = None


def get_api() -> RpcClient:
    """Return the shared RPC handle, connecting on first use."""
    global _api
    if _api is None:
        _api = RpcClient(get_rpc_url())
    return _api


def reset_api() -> None:
    """Close and forget the shared RPC handle."""
    global _api
    if _api is not None:
        _api.close()
    _api = None
