"""
Transaction Builder - Build, sign, and send contract transactions.

Two paths:
- node-managed accounts: the node signs (``eth_sendTransaction``), as the
  development chain does for its unlocked accounts
- local keys: eth-account signs and ``eth_sendRawTransaction`` submits
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..accounts import get_account
from .abi import encode_function_call, keccak256
from .rpc import RpcClient, from_hex, get_api

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 500_000


def to_checksum_address(address: str) -> str:
    """Convert an address to EIP-55 checksummed format."""
    hex_address = address.lower().removeprefix("0x")
    digest = keccak256(hex_address.encode("ascii")).hex()
    return "0x" + "".join(
        char.upper() if int(nibble, 16) >= 8 else char
        for char, nibble in zip(hex_address, digest)
    )


def build_contract_tx(
    contract_address: str,
    abi: list,
    function_name: str,
    args: list,
    sender: Optional[str] = None,
    value: int = 0,
    gas: Optional[int] = None,
    gas_price: Optional[int] = None,
) -> dict:
    """
    Build a contract call transaction (unsigned, no nonce).

    Returns:
        Transaction dict with integer quantities
    """
    tx: dict[str, Any] = {
        "to": to_checksum_address(contract_address),
        "data": encode_function_call(abi, function_name, args),
        "value": value,
        "gas": gas,
        "gasPrice": gas_price,
    }
    if sender is not None:
        tx["from"] = sender
    return tx


def sign_and_send(
    tx: dict,
    private_key: str,
    api: Optional[RpcClient] = None,
) -> str:
    """
    Fill in nonce, gas price and chain id, sign locally, and send.

    Returns:
        Transaction hash
    """
    api = api or get_api()
    account = get_account(private_key)

    signable = {k: v for k, v in tx.items() if k != "from" and v is not None}
    signable.setdefault("gas", DEFAULT_GAS_LIMIT)
    signable.setdefault("gasPrice", api.gas_price())
    signable["nonce"] = api.get_transaction_count(account.address, "pending")
    signable["chainId"] = api.chain_id()

    signed = account.sign_transaction(signable)
    raw_tx = signed.raw_transaction.hex()
    if not raw_tx.startswith("0x"):
        raw_tx = "0x" + raw_tx
    return api.send_raw_transaction(raw_tx)


def send_contract_tx(
    contract_address: str,
    abi: list,
    function_name: str,
    args: list,
    sender: Optional[str] = None,
    value: int = 0,
    gas: Optional[int] = None,
    gas_price: Optional[int] = None,
    private_key: Optional[str] = None,
    wait: bool = True,
    timeout: float = 120,
    api: Optional[RpcClient] = None,
) -> dict:
    """
    Build and send a contract call transaction.

    Without ``private_key`` the node signs for ``sender``; with one the
    transaction is signed locally.

    Returns:
        Dict with tx_hash and, when waiting, receipt and status
    """
    api = api or get_api()
    tx = build_contract_tx(
        contract_address=contract_address,
        abi=abi,
        function_name=function_name,
        args=args,
        sender=sender,
        value=value,
        gas=gas,
        gas_price=gas_price,
    )

    if private_key is not None:
        tx_hash = sign_and_send(tx, private_key, api=api)
    else:
        if sender is None:
            raise ValueError("sender is required for node-signed transactions")
        tx_hash = api.send_transaction(tx)

    logger.info("sent %s to %s: %s", function_name, contract_address, tx_hash)
    result: dict[str, Any] = {"tx_hash": tx_hash}

    if wait:
        receipt = api.wait_for_receipt(tx_hash, timeout=timeout)
        result["receipt"] = receipt
        # Pre-byzantium receipts carry no status; treat them as success.
        result["status"] = from_hex(receipt.get("status") or "0x1")

    return result
