"""
Shared fixtures: an in-process fake node and a throwaway deployment.

The fake node answers JSON-RPC over ``httpx.MockTransport`` so the client,
contract proxies, and fund session run offline. Calls are answered from a
table keyed by (contract address, selector); transactions are recorded and
mined instantly.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
from eth_abi import decode, encode

from fundshares.chain import rpc
from fundshares.chain.abi import canonical_type, encode_function_call, find_function, function_selector
from fundshares.chain.rpc import RpcClient
from fundshares.protocol.fund import ProtocolSession


# ============ ABIs ============


def _fn(name: str, inputs: list[str], outputs: list[str] = (), mutability: str = "view") -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(inputs)],
        "outputs": [{"name": "", "type": t} for t in outputs],
        "stateMutability": mutability,
    }


ERC20_ABI = [
    _fn("balanceOf", ["address"], ["uint256"]),
    _fn("allowance", ["address", "address"], ["uint256"]),
    _fn("totalSupply", [], ["uint256"]),
    _fn("approve", ["address", "uint256"], ["bool"], "nonpayable"),
    _fn("transfer", ["address", "uint256"], ["bool"], "nonpayable"),
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
]

FUND_ABI = ERC20_ABI[:5] + [
    _fn("performCalculations", [], ["uint256"] * 6),
    _fn("calcSharePrice", [], ["uint256"]),
    _fn("getBaseUnits", [], ["uint256"]),
    _fn("getLastRequestId", [], ["uint256"]),
    _fn("requestSubscription", ["uint256", "uint256", "uint256"], [], "nonpayable"),
    _fn("requestRedemption", ["uint256", "uint256", "uint256"], [], "nonpayable"),
    _fn("executeRequest", ["uint256"], [], "nonpayable"),
    {
        "type": "event",
        "name": "RequestUpdated",
        "anonymous": False,
        "inputs": [{"name": "id", "type": "uint256", "indexed": False}],
    },
]

VERSION_ABI = [
    _fn(
        "setupFund",
        ["string", "address", "uint256", "uint256", "address", "address", "address"],
        [],
        "nonpayable",
    ),
    _fn("getLastFundId", [], ["uint256"]),
    _fn("getFundById", ["uint256"], ["address"]),
]

DATAFEED_ABI = [_fn("update", ["address[]", "uint256[]"], [], "nonpayable")]

PARTICIPATION_ABI = [_fn("attestForIdentity", ["address"], [], "nonpayable")]

ABI_FILES = {
    "version/Version.abi": VERSION_ABI,
    "datafeeds/DataFeed.abi": DATAFEED_ABI,
    "assets/PreminedAsset.abi": ERC20_ABI,
    "participation/Participation.abi": PARTICIPATION_ABI,
    "Fund.abi": FUND_ABI,
}


def address(n: int) -> str:
    return "0x" + f"{n:040x}"


ACCOUNTS = [address(0xA0 + i) for i in range(5)]

ADDRESSES = {
    "Version": address(0x100),
    "DataFeed": address(0x101),
    "MlnToken": address(0x102),
    "EthToken": address(0x103),
    "EurToken": address(0x104),
    "Participation": address(0x105),
    "RMMakeOrders": address(0x106),
    "Sphere": address(0x107),
}

FUND_ADDRESS = address(0x200)


# ============ Fake node ============


class FakeNode:
    """JSON-RPC node double for ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.accounts = list(ACCOUNTS)
        self.block = 7
        self.chain_id = 1337
        self.gas_price = 20_000_000_000
        self.nonce = 3
        self.requests: list[dict] = []
        self.call_results: dict[tuple[str, str], str] = {}
        self.sent: list[dict] = []
        self.raw_sent: list[str] = []
        self.receipts: dict[str, Optional[dict]] = {}
        self.receipt_status = "0x1"
        self.pending_polls = 0
        self.logs: list[dict] = []
        self.errors: dict[str, dict] = {}
        self.handlers: dict[str, Callable[[list], Any]] = {}

    # ---- configuration ----

    def returns(self, contract: str, abi: list, function_name: str, *values: Any) -> None:
        """Answer ``eth_call`` of ``function_name`` on ``contract`` with ``values``."""
        func = find_function(abi, function_name)
        types = [canonical_type(p) for p in func["outputs"]]
        key = (contract.lower(), "0x" + function_selector(func).hex())
        self.call_results[key] = "0x" + encode(types, list(values)).hex()

    def returns_for(self, contract: str, abi: list, function_name: str, args: list, *values: Any) -> None:
        """Like ``returns`` but only for calls made with exactly ``args``."""
        func = find_function(abi, function_name)
        calldata = encode_function_call(abi, function_name, list(args))
        types = [canonical_type(p) for p in func["outputs"]]
        self.call_results[(contract.lower(), calldata)] = "0x" + encode(types, list(values)).hex()

    def sent_calls(self, abi: list, function_name: str) -> list[tuple[dict, tuple]]:
        """Transactions calling ``function_name`` with their decoded arguments."""
        func = find_function(abi, function_name)
        selector = "0x" + function_selector(func).hex()
        types = [canonical_type(p) for p in func["inputs"]]
        found = []
        for tx in self.sent:
            data = tx.get("data", "")
            if data.startswith(selector):
                found.append((tx, decode(types, bytes.fromhex(data[10:]))))
        return found

    def methods(self) -> list[str]:
        return [r["method"] for r in self.requests]

    # ---- transport ----

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        method = payload["method"]
        params = payload.get("params", [])

        if method in self.errors:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": self.errors[method]})

        result = self._dispatch(method, params)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    def _dispatch(self, method: str, params: list) -> Any:
        if method in self.handlers:
            return self.handlers[method](params)
        if method == "eth_accounts":
            return self.accounts
        if method == "eth_blockNumber":
            return hex(self.block)
        if method == "eth_chainId":
            return hex(self.chain_id)
        if method == "eth_gasPrice":
            return hex(self.gas_price)
        if method == "eth_getTransactionCount":
            return hex(self.nonce)
        if method == "eth_getBalance":
            return hex(10**18)
        if method == "evm_mine":
            self.block += 1
            return "0x0"
        if method == "eth_call":
            tx = params[0]
            to = tx["to"].lower()
            exact = self.call_results.get((to, tx["data"]))
            if exact is not None:
                return exact
            return self.call_results.get((to, tx["data"][:10]), "0x")
        if method == "eth_sendTransaction":
            self.sent.append(params[0])
            return self._mine(len(self.sent))
        if method == "eth_sendRawTransaction":
            self.raw_sent.append(params[0])
            return self._mine(1000 + len(self.raw_sent))
        if method == "eth_getTransactionReceipt":
            if self.pending_polls > 0:
                self.pending_polls -= 1
                return None
            return self.receipts.get(params[0])
        if method == "eth_getLogs":
            return self.logs
        raise AssertionError(f"Unexpected RPC method {method}")

    def _mine(self, n: int) -> str:
        tx_hash = "0x" + f"{n:064x}"
        self.block += 1
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "blockNumber": hex(self.block),
            "gasUsed": hex(21_000),
            "status": self.receipt_status,
        }
        return tx_hash

    def client(self) -> RpcClient:
        return RpcClient("http://fake-node:8545", transport=httpx.MockTransport(self.handle))


# ============ Fixtures ============


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the shared RPC handle and FUNDSHARES_* settings per-test."""
    for var in (
        "FUNDSHARES_ENV",
        "FUNDSHARES_RPC_URL",
        "FUNDSHARES_CONFIG_DIR",
        "FUNDSHARES_BUILD_DIR",
        "PRIVATE_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    rpc.reset_api()
    yield
    rpc.reset_api()


@pytest.fixture()
def fake_node() -> FakeNode:
    return FakeNode()


@pytest.fixture()
def api(fake_node: FakeNode) -> RpcClient:
    client = fake_node.client()
    yield client
    client.close()


@pytest.fixture()
def build_dir(tmp_path: Path) -> Path:
    """Build output with the protocol's ABI files."""
    out = tmp_path / "out"
    for relative, abi in ABI_FILES.items():
        target = out / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(abi), encoding="utf-8")
    return out


@pytest.fixture()
def config_dir(tmp_path: Path) -> Path:
    """Deployment config for a 'development' environment."""
    root = tmp_path / "deployment"
    root.mkdir()
    (root / "environment.config.json").write_text(
        json.dumps(
            {
                "development": {
                    "host": "localhost",
                    "port": 8545,
                    "network_id": "*",
                    "gas": 6500000,
                    "gasPrice": 100000000000,
                    "protocol": {"fund": {"managementReward": 0, "performanceReward": 0}},
                },
                "kovan": {"host": "kovan.example", "port": 8546, "network_id": 42, "gas": 4000000},
            }
        ),
        encoding="utf-8",
    )
    (root / "address-book.json").write_text(json.dumps({"development": ADDRESSES, "kovan": ADDRESSES}), encoding="utf-8")
    (root / "token_info.json").write_text(
        json.dumps(
            {
                "kovan": [
                    {"symbol": "ETH-T", "name": "Ether Token", "decimals": 18, "address": ADDRESSES["EthToken"]},
                    {"symbol": "EUR-T", "name": "Euro Token", "decimals": 8, "address": ADDRESSES["EurToken"]},
                    {"symbol": "MLN-T", "name": "Melon Token", "decimals": 18, "address": ADDRESSES["MlnToken"]},
                ]
            }
        ),
        encoding="utf-8",
    )
    return root


@pytest.fixture()
def session(fake_node: FakeNode, api: RpcClient, config_dir: Path, build_dir: Path) -> ProtocolSession:
    fake_node.returns(ADDRESSES["Version"], VERSION_ABI, "getLastFundId", 0)
    fake_node.returns(ADDRESSES["Version"], VERSION_ABI, "getFundById", FUND_ADDRESS)
    return ProtocolSession.connect(config_dir=config_dir, api=api, build_dir=build_dir)


@pytest.fixture()
def abis() -> dict[str, list]:
    return {
        "ERC20": ERC20_ABI,
        "Fund": FUND_ABI,
        "Version": VERSION_ABI,
        "DataFeed": DATAFEED_ABI,
        "Participation": PARTICIPATION_ABI,
    }


@pytest.fixture()
def addresses() -> dict[str, str]:
    return dict(ADDRESSES, Fund=FUND_ADDRESS)


@pytest.fixture()
def node_urls(fake_node: FakeNode, monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Route clients the library builds itself to the fake node, recording their URLs."""
    urls: list[str] = []

    def client(url: Optional[str] = None, **kwargs: Any) -> RpcClient:
        urls.append(url)
        return RpcClient(url, transport=httpx.MockTransport(fake_node.handle))

    monkeypatch.setattr("fundshares.chain.rpc.RpcClient", client)
    monkeypatch.setattr("fundshares.protocol.fund.RpcClient", client)
    return urls
