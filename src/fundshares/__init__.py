__all__ = [
    # RPC handle
    "RpcClient",
    "get_api",
    "reset_api",
    # Contracts
    "Contract",
    "EventLog",
    "TxResult",
    "load_abi",
    # Config
    "AddressBook",
    "EnvironmentConfig",
    "TokenInfo",
    "load_address_book",
    "load_environment",
    "load_token_info",
    # Datafeed
    "convert_price",
    "fetch_quotes",
    "update_datafeed",
    # Fund
    "BalanceSheet",
    "Fund",
    "FundCalculations",
    "ProtocolSession",
    # Errors
    "ConfigError",
    "FundSharesError",
    "PriceFeedError",
    "RpcError",
    "TransactionFailedError",
]

from .errors import (
    ConfigError,
    FundSharesError,
    PriceFeedError,
    RpcError,
    TransactionFailedError,
)
from .chain.rpc import RpcClient, get_api, reset_api
from .chain.abi import load_abi
from .chain.contract import Contract, EventLog, TxResult
from .protocol.config import (
    AddressBook,
    EnvironmentConfig,
    TokenInfo,
    load_address_book,
    load_environment,
    load_token_info,
)
from .protocol.datafeed import convert_price, fetch_quotes, update_datafeed
from .protocol.fund import BalanceSheet, Fund, FundCalculations, ProtocolSession
