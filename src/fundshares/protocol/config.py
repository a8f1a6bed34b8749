"""
Protocol configuration.

Three static JSON files describe a deployment, each keyed by environment
(or network) name:

- environment.config.json: node host/port, default gas, fund parameters
- address-book.json: deployed contract addresses
- token_info.json: token metadata (symbol, decimals, address)

They live in the config directory: FUNDSHARES_CONFIG_DIR, or the first
directory holding address-book.json found walking up from the working
directory. A .env file next to them is loaded with python-dotenv.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from ..chain.rpc import DEFAULT_RPC_URL
from ..errors import ConfigError

DEFAULT_ENVIRONMENT = "development"
DEFAULT_TOKEN_NETWORK = "kovan"

ENVIRONMENT_FILE = "environment.config.json"
ADDRESS_BOOK_FILE = "address-book.json"
TOKEN_INFO_FILE = "token_info.json"


def get_environment_name() -> str:
    return os.environ.get("FUNDSHARES_ENV", DEFAULT_ENVIRONMENT)


def find_config_dir(start: Optional[Path] = None) -> Path:
    override = os.environ.get("FUNDSHARES_CONFIG_DIR")
    if override:
        return Path(override)

    current = (start or Path.cwd()).resolve()
    for candidate in [current, *current.parents]:
        if (candidate / ADDRESS_BOOK_FILE).is_file():
            return candidate
    raise ConfigError(
        f"Cannot find {ADDRESS_BOOK_FILE}. Run from the deployment directory "
        "or set FUNDSHARES_CONFIG_DIR."
    )


def load_env_file(config_dir: Path) -> None:
    """Load ``config_dir/.env`` into the environment without overriding it."""
    env_path = config_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _load_section(filename: str, section: str, config_dir: Optional[Path]) -> Any:
    path = (config_dir or find_config_dir()) / filename
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc

    if section not in payload:
        raise ConfigError(f"No '{section}' section in {path}")
    return payload[section]


@dataclass(frozen=True)
class FundParameters:
    management_reward: int = 0
    performance_reward: int = 0


@dataclass(frozen=True)
class EnvironmentConfig:
    name: str
    host: str = "localhost"
    port: int = 8545
    network_id: Optional[str] = None
    gas: int = 6_900_000
    gas_price: Optional[int] = None
    fund: FundParameters = field(default_factory=FundParameters)

    @property
    def rpc_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def tx_options(self, sender: str) -> dict[str, Any]:
        """Default transaction options for ``sender``."""
        return {"sender": sender, "gas": self.gas, "gas_price": self.gas_price}

    @classmethod
    def from_dict(cls, name: str, payload: dict[str, Any]) -> "EnvironmentConfig":
        fund = payload.get("protocol", {}).get("fund", {})
        gas_price = payload.get("gasPrice")
        network_id = payload.get("network_id")
        return cls(
            name=name,
            host=payload.get("host", "localhost"),
            port=int(payload.get("port", 8545)),
            network_id=str(network_id) if network_id is not None else None,
            gas=int(payload.get("gas", 6_900_000)),
            gas_price=int(gas_price) if gas_price is not None else None,
            fund=FundParameters(
                management_reward=int(fund.get("managementReward", 0)),
                performance_reward=int(fund.get("performanceReward", 0)),
            ),
        )


@dataclass(frozen=True)
class AddressBook:
    environment: str
    addresses: dict[str, str]

    def __getitem__(self, contract: str) -> str:
        try:
            return self.addresses[contract]
        except KeyError:
            raise ConfigError(
                f"No address for {contract} in the '{self.environment}' address book"
            ) from None

    def __contains__(self, contract: str) -> bool:
        return contract in self.addresses

    def get(self, contract: str, default: Optional[str] = None) -> Optional[str]:
        return self.addresses.get(contract, default)


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int
    name: str = ""
    address: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TokenInfo":
        return cls(
            symbol=payload["symbol"],
            decimals=int(payload["decimals"]),
            name=payload.get("name", ""),
            address=payload.get("address"),
        )


def load_environment(name: Optional[str] = None, config_dir: Optional[Path] = None) -> EnvironmentConfig:
    name = name or get_environment_name()
    return EnvironmentConfig.from_dict(name, _load_section(ENVIRONMENT_FILE, name, config_dir))


def load_address_book(name: Optional[str] = None, config_dir: Optional[Path] = None) -> AddressBook:
    name = name or get_environment_name()
    return AddressBook(environment=name, addresses=dict(_load_section(ADDRESS_BOOK_FILE, name, config_dir)))


def load_token_info(network: str = DEFAULT_TOKEN_NETWORK, config_dir: Optional[Path] = None) -> list[TokenInfo]:
    return [TokenInfo.from_dict(t) for t in _load_section(TOKEN_INFO_FILE, network, config_dir)]


def token_decimals(tokens: list[TokenInfo], symbol: str) -> int:
    for token in tokens:
        if token.symbol == symbol:
            return token.decimals
    raise ConfigError(f"Token {symbol} not found in token info")


def resolve_rpc_url(config: Optional[EnvironmentConfig] = None) -> str:
    """Exported FUNDSHARES_RPC_URL, else the environment's node, else localhost."""
    override = os.environ.get("FUNDSHARES_RPC_URL")
    if override:
        return override
    if config is not None:
        return config.rpc_url
    return DEFAULT_RPC_URL
