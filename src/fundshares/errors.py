from __future__ import annotations

from typing import Any, Optional


class FundSharesError(RuntimeError):
    exit_code: int = 1


class ConfigError(FundSharesError):
    exit_code = 2


class RpcError(FundSharesError):
    exit_code = 3

    def __init__(self, method: str, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(f"RPC error in {method} ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class TransactionFailedError(FundSharesError):
    exit_code = 4

    def __init__(self, tx_hash: str, function_name: str, receipt: Optional[dict] = None) -> None:
        super().__init__(f"Transaction {tx_hash} ({function_name}) reverted")
        self.tx_hash = tx_hash
        self.function_name = function_name
        self.receipt = receipt or {}


class PriceFeedError(FundSharesError):
    exit_code = 5


__all__ = [
    "ConfigError",
    "FundSharesError",
    "PriceFeedError",
    "RpcError",
    "TransactionFailedError",
]
