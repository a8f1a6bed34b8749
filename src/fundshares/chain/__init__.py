"""
Chain - JSON-RPC interaction layer for the fund protocol.

Provides the process-wide RPC handle, ABI loading and encoding, contract
proxies, and local transaction signing for talking to an already-deployed
set of contracts on a development node.

Uses httpx + eth-abi + eth-account instead of the heavyweight web3.py.
"""
