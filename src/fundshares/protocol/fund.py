"""
Fund session - the deployed protocol as seen by its participants.

``ProtocolSession`` binds the node accounts to their roles, builds proxies
for the deployed contracts, and offers the steps the share lifecycle is
made of: datafeed ticks, fund setup, token approvals, balance snapshots.
``Fund`` wraps one deployed fund's subscription/redemption interface.

All accounting happens inside the contracts; these classes only send
requests and read results back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..chain.abi import load_abi
from ..chain.contract import Contract, EventLog, TxResult
from ..chain.rpc import RpcClient, get_api, get_rpc_url
from .config import (
    AddressBook,
    EnvironmentConfig,
    TokenInfo,
    find_config_dir,
    load_address_book,
    load_env_file,
    load_environment,
    load_token_info,
    resolve_rpc_url,
    token_decimals,
)
from .datafeed import DEFAULT_SETTLE_DELAY, QUOTE_SYMBOLS, REFERENCE_SYMBOL, convert_price, fetch_quotes, update_datafeed

logger = logging.getLogger(__name__)

SETUP_FUND_GAS = 6_900_000
EXECUTE_REQUEST_GAS = 3_000_000

# Quote symbol -> (address book entry, token info symbol)
FEED_ASSETS = {
    "ETH": ("EthToken", "ETH-T"),
    "EUR": ("EurToken", "EUR-T"),
    "MLN": ("MlnToken", "MLN-T"),
}


@dataclass(frozen=True)
class FundCalculations:
    gav: int
    management_reward: int
    performance_reward: int
    unclaimed_rewards: int
    nav: int
    share_price: int

    @classmethod
    def from_result(cls, values: Any) -> "FundCalculations":
        return cls(*(int(v) for v in values))


@dataclass(frozen=True)
class HolderBalances:
    mln_token: int
    eth_token: int


@dataclass(frozen=True)
class BalanceSheet:
    investor: HolderBalances
    manager: HolderBalances
    fund: HolderBalances

    def delta(self, later: "BalanceSheet") -> dict[str, dict[str, int]]:
        """Per-holder change from this snapshot to ``later``."""
        changes = {}
        for holder in ("investor", "manager", "fund"):
            before = getattr(self, holder)
            after = getattr(later, holder)
            changes[holder] = {
                "mln_token": after.mln_token - before.mln_token,
                "eth_token": after.eth_token - before.eth_token,
            }
        return changes


def node_client(config: Optional[EnvironmentConfig] = None) -> RpcClient:
    """
    RPC client for the node a deployment environment points at.

    Reuses the shared handle when it already targets that node, so an
    exported FUNDSHARES_RPC_URL always wins over the environment config.
    """
    url = resolve_rpc_url(config)
    if url == get_rpc_url():
        return get_api()
    return RpcClient(url)


class Fund:
    """A deployed fund (also the ERC-20 of its shares)."""

    def __init__(self, contract: Contract, config: EnvironmentConfig) -> None:
        self.contract = contract
        self.config = config

    @property
    def address(self) -> str:
        return self.contract.address

    def calculations(self, sender: Optional[str] = None) -> FundCalculations:
        return FundCalculations.from_result(self.contract.call("performCalculations", sender=sender))

    def share_price(self) -> int:
        return int(self.contract.call("calcSharePrice"))

    def base_units(self) -> int:
        return int(self.contract.call("getBaseUnits"))

    def last_request_id(self) -> int:
        return int(self.contract.call("getLastRequestId"))

    def shares_of(self, holder: str) -> int:
        return int(self.contract.call("balanceOf", holder))

    def total_supply(self) -> int:
        return int(self.contract.call("totalSupply"))

    def request_subscription(
        self, offered_value: int, wanted_shares: int, incentive: int, sender: str
    ) -> TxResult:
        return self.contract.transact(
            "requestSubscription",
            offered_value,
            wanted_shares,
            incentive,
            sender=sender,
            gas=self.config.gas,
        )

    def request_redemption(
        self, wanted_shares: int, wanted_value: int, incentive: int, sender: str
    ) -> TxResult:
        return self.contract.transact(
            "requestRedemption",
            wanted_shares,
            wanted_value,
            incentive,
            sender=sender,
            gas=EXECUTE_REQUEST_GAS,
        )

    def execute_request(self, request_id: int, sender: str) -> TxResult:
        return self.contract.transact(
            "executeRequest", request_id, sender=sender, gas=EXECUTE_REQUEST_GAS
        )

    def request_events(self, from_block: int | str = "latest") -> list[EventLog]:
        return self.contract.get_past_events("RequestUpdated", from_block=from_block)


class ProtocolSession:
    """
    Participants and contracts of one deployment.

    Account roles follow the node's account order: ``[0]`` deployer and
    liquidity provider, ``[1]`` manager, ``[2]`` investor, ``[3]`` worker.
    """

    def __init__(
        self,
        api: RpcClient,
        config: EnvironmentConfig,
        addresses: AddressBook,
        tokens: list[TokenInfo],
        accounts: list[str],
        build_dir: Optional[Path] = None,
    ) -> None:
        if len(accounts) < 4:
            raise ValueError(f"Need at least 4 node accounts, got {len(accounts)}")

        self.api = api
        self.config = config
        self.addresses = addresses
        self.tokens = tokens
        self.accounts = accounts
        self.build_dir = build_dir

        self.deployer = accounts[0]
        self.manager = accounts[1]
        self.investor = accounts[2]
        self.worker = accounts[3]

        self.version = self._contract("Version", addresses["Version"])
        self.datafeed = self._contract("DataFeed", addresses["DataFeed"])
        self.mln_token = self._contract("PreminedAsset", addresses["MlnToken"])
        self.eth_token = self._contract("PreminedAsset", addresses["EthToken"])
        self.eur_token = self._contract("PreminedAsset", addresses["EurToken"])
        self.participation = self._contract("Participation", addresses["Participation"])

    @classmethod
    def connect(
        cls,
        environment: Optional[str] = None,
        config_dir: Optional[Path] = None,
        api: Optional[RpcClient] = None,
        build_dir: Optional[Path] = None,
    ) -> "ProtocolSession":
        """Load the deployment's config and bind to the node's accounts."""
        config_dir = config_dir or find_config_dir()
        load_env_file(config_dir)
        config = load_environment(environment, config_dir)
        addresses = load_address_book(config.name, config_dir)
        tokens = load_token_info(config_dir=config_dir)
        if api is None:
            api = node_client(config)
        return cls(api, config, addresses, tokens, api.accounts(), build_dir=build_dir)

    def _contract(self, abi_name: str, address: str) -> Contract:
        return Contract(address, load_abi(abi_name, self.build_dir), api=self.api, name=abi_name)

    @property
    def opts(self) -> dict[str, Any]:
        """Default transaction options (deployer, configured gas)."""
        return self.config.tx_options(self.deployer)

    # ------------------------------------------------------------------
    # Chain control
    # ------------------------------------------------------------------

    def mine_block(self) -> None:
        self.api.mine_block()

    def attest_investor(self) -> TxResult:
        """Whitelist the investor with the participation module."""
        return self.participation.transact("attestForIdentity", self.investor, **self.opts)

    def feed_prices(self, quotes: dict[str, Any]) -> dict[str, int]:
        """Convert MLN quotes into feed prices keyed by asset address."""
        reference_decimals = token_decimals(self.tokens, FEED_ASSETS[REFERENCE_SYMBOL][1])
        prices = {}
        for symbol in QUOTE_SYMBOLS:
            book_name, token_symbol = FEED_ASSETS[symbol]
            decimals = token_decimals(self.tokens, token_symbol)
            prices[self.addresses[book_name]] = convert_price(quotes[symbol], decimals, reference_decimals)
        return prices

    def update_datafeed(
        self,
        quotes: Optional[dict[str, Any]] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ) -> TxResult:
        """Push one price tick; fetches live quotes unless ``quotes`` is given."""
        if quotes is None:
            quotes = fetch_quotes()
        prices = self.feed_prices(quotes)
        return update_datafeed(
            self.datafeed,
            list(prices),
            list(prices.values()),
            settle_delay=settle_delay,
            **self.opts,
        )

    # ------------------------------------------------------------------
    # Funds
    # ------------------------------------------------------------------

    def setup_fund(self, name: str) -> tuple[int, Fund]:
        """Create a fund managed by the manager; returns its id and wrapper."""
        self.version.transact(
            "setupFund",
            name,
            self.addresses["MlnToken"],
            self.config.fund.management_reward,
            self.config.fund.performance_reward,
            self.addresses["Participation"],
            self.addresses["RMMakeOrders"],
            self.addresses["Sphere"],
            sender=self.manager,
            gas=SETUP_FUND_GAS,
        )
        fund_id = int(self.version.call("getLastFundId"))
        logger.info("fund %s created: %s", fund_id, name)
        return fund_id, self.fund(fund_id)

    def fund(self, fund_id: int) -> Fund:
        address = self.version.call("getFundById", fund_id)
        return Fund(self._contract("Fund", address), self.config)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def approve(self, token: Contract, owner: str, spender: str, amount: int) -> TxResult:
        return token.transact("approve", spender, amount, sender=owner)

    def allowance(self, token: Contract, owner: str, spender: str) -> int:
        return int(token.call("allowance", owner, spender))

    def transfer(self, token: Contract, sender: str, recipient: str, amount: int) -> TxResult:
        return token.transact("transfer", recipient, amount, sender=sender)

    def balance_of(self, token: Contract, holder: str) -> int:
        return int(token.call("balanceOf", holder))

    def balances(self, fund: Fund) -> BalanceSheet:
        """Snapshot of MLN and ETH token balances of investor, manager, and fund."""

        def holder(address: str) -> HolderBalances:
            return HolderBalances(
                mln_token=self.balance_of(self.mln_token, address),
                eth_token=self.balance_of(self.eth_token, address),
            )

        return BalanceSheet(
            investor=holder(self.investor),
            manager=holder(self.manager),
            fund=holder(fund.address),
        )
