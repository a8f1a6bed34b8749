"""
Contract proxy - a remote contract described by its ABI.

Wraps an address and an ABI so that calls read like the contract's own
methods::

    token = Contract.at("PreminedAsset", addresses["MlnToken"])
    token.call("balanceOf", investor)
    token.transact("approve", fund.address, 100, sender=investor)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import TransactionFailedError
from .abi import decode_function_result, decode_log, encode_function_call, event_topic, find_event, load_abi
from .rpc import RpcClient, from_hex, get_api
from .tx import send_contract_tx


@dataclass(frozen=True)
class TxResult:
    tx_hash: str
    receipt: dict[str, Any] = field(default_factory=dict)
    status: int = 1

    @property
    def block_number(self) -> int:
        return from_hex(self.receipt.get("blockNumber"))

    @property
    def gas_used(self) -> int:
        return from_hex(self.receipt.get("gasUsed"))


@dataclass(frozen=True)
class EventLog:
    event: str
    args: dict[str, Any]
    address: str
    block_number: int
    transaction_hash: str
    log_index: int


class Contract:
    """
    Remote contract proxy.

    Args:
        address: 0x-prefixed contract address
        abi: Contract ABI
        api: RPC client (default: the shared handle)
        name: Human-readable name used in messages
    """

    def __init__(
        self,
        address: str,
        abi: list,
        api: Optional[RpcClient] = None,
        name: Optional[str] = None,
    ) -> None:
        self.address = address
        self.abi = abi
        self.name = name or "Contract"
        self._api = api

    @classmethod
    def at(cls, contract: str, address: str, api: Optional[RpcClient] = None) -> "Contract":
        """Proxy for ``address`` using the ABI of ``contract`` from the build output."""
        return cls(address, load_abi(contract), api=api, name=contract)

    @property
    def api(self) -> RpcClient:
        return self._api or get_api()

    def __repr__(self) -> str:
        return f"<{self.name} at {self.address}>"

    def call(
        self,
        function_name: str,
        *args: Any,
        sender: Optional[str] = None,
        block: int | str = "latest",
    ) -> Any:
        """Read from the contract (``eth_call``) and decode the result."""
        tx: dict[str, Any] = {
            "to": self.address,
            "data": encode_function_call(self.abi, function_name, list(args)),
        }
        if sender is not None:
            tx["from"] = sender

        result = self.api.call(tx, block)
        return decode_function_result(self.abi, function_name, result, arg_count=len(args))

    def transact(
        self,
        function_name: str,
        *args: Any,
        sender: Optional[str] = None,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None,
        value: int = 0,
        private_key: Optional[str] = None,
        wait: bool = True,
    ) -> TxResult:
        """
        Send a transaction calling ``function_name``.

        Raises:
            TransactionFailedError: If the mined receipt reports failure
        """
        result = send_contract_tx(
            contract_address=self.address,
            abi=self.abi,
            function_name=function_name,
            args=list(args),
            sender=sender,
            value=value,
            gas=gas,
            gas_price=gas_price,
            private_key=private_key,
            wait=wait,
            api=self.api,
        )

        tx = TxResult(
            tx_hash=result["tx_hash"],
            receipt=result.get("receipt") or {},
            status=result.get("status", 1),
        )
        if wait and tx.status != 1:
            raise TransactionFailedError(tx.tx_hash, f"{self.name}.{function_name}", tx.receipt)
        return tx

    def get_past_events(
        self,
        event_name: str,
        from_block: int | str = "latest",
        to_block: int | str = "latest",
    ) -> list[EventLog]:
        """Decoded logs of ``event_name`` emitted by this contract."""
        event = find_event(self.abi, event_name)
        logs = self.api.get_logs(
            address=self.address,
            topics=[event_topic(event)],
            from_block=from_block,
            to_block=to_block,
        )
        return [
            EventLog(
                event=event_name,
                args=decode_log(event, log),
                address=log.get("address", self.address),
                block_number=from_hex(log.get("blockNumber")),
                transaction_hash=log.get("transactionHash", ""),
                log_index=from_hex(log.get("logIndex")),
            )
            for log in logs
        ]
