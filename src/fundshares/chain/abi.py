"""
ABI Loader - Loads contract ABIs from the protocol build output.

Single source of truth: out/**/*.abi (solc compilation artifacts, one
plain JSON list per contract). Python loads ABIs at runtime from these
files and encodes/decodes calls and logs against them.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from eth_abi import decode, encode
from eth_hash.auto import keccak

# Contract name -> ABI file, relative to the build directory.
ABI_FILES = {
    "Version": "version/Version.abi",
    "DataFeed": "datafeeds/DataFeed.abi",
    "PreminedAsset": "assets/PreminedAsset.abi",
    "Participation": "participation/Participation.abi",
    "Fund": "Fund.abi",
}


def keccak256(data: bytes) -> bytes:
    """Compute Keccak-256 hash (NOT the same as hashlib.sha3_256 / NIST SHA-3)."""
    return keccak(data)


def find_build_dir(start: Optional[Path] = None) -> Path:
    """
    Locate the build output directory.

    Uses FUNDSHARES_BUILD_DIR when set, otherwise searches from ``start``
    (default: the working directory) upward for an ``out/`` directory.
    """
    override = os.environ.get("FUNDSHARES_BUILD_DIR")
    if override:
        return Path(override)

    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / "out"
        if candidate.is_dir():
            return candidate
    raise FileNotFoundError(
        "Cannot find out/. Compile the contracts or set FUNDSHARES_BUILD_DIR."
    )


def abi_path(contract: str, build_dir: Optional[Path] = None) -> Path:
    """Resolve a contract name (or relative ``.abi`` path) to a file."""
    relative = ABI_FILES.get(contract, contract)
    if not relative.endswith(".abi") and not relative.endswith(".json"):
        relative = f"{relative}.abi"
    return (build_dir or find_build_dir()) / relative


@lru_cache(maxsize=32)
def _read_abi(path: Path) -> tuple[dict[str, Any], ...]:
    with path.open("r", encoding="utf-8") as f:
        artifact = json.load(f)
    # Foundry/hardhat artifacts wrap the list; solc --abi output is the list.
    if isinstance(artifact, dict):
        artifact = artifact["abi"]
    return tuple(artifact)


def load_abi(contract: str, build_dir: Optional[Path] = None) -> list[dict[str, Any]]:
    """
    Load ABI for a contract from the build output.

    Args:
        contract: Contract name (e.g., "Version", "Fund") or a path
            relative to the build directory
        build_dir: Build directory (default: discovered)

    Returns:
        ABI as a list of dicts

    Raises:
        FileNotFoundError: If ABI file not found
    """
    path = abi_path(contract, build_dir).resolve()
    if not path.exists():
        raise FileNotFoundError(f"ABI not found: {path}")
    return list(_read_abi(path))


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def find_function(abi: list, function_name: str, arg_count: Optional[int] = None) -> dict:
    """
    Find a function entry by name.

    Overloads are disambiguated by ``arg_count`` when given.

    Raises:
        ValueError: If no (or more than one) matching function exists
    """
    matches = [
        entry for entry in abi
        if entry.get("type", "function") == "function" and entry.get("name") == function_name
    ]
    if arg_count is not None and len(matches) > 1:
        matches = [m for m in matches if len(m.get("inputs", [])) == arg_count]

    if not matches:
        raise ValueError(f"Function {function_name} not found in ABI")
    if len(matches) > 1:
        raise ValueError(f"Function {function_name} is overloaded; pass the argument count")
    return matches[0]


def find_event(abi: list, event_name: str) -> dict:
    for entry in abi:
        if entry.get("type") == "event" and entry.get("name") == event_name:
            return entry
    raise ValueError(f"Event {event_name} not found in ABI")


def canonical_type(param: dict) -> str:
    """Canonical type string of an ABI parameter, expanding tuples."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def signature(entry: dict) -> str:
    """``name(type1,type2,...)`` for a function or event entry."""
    types = ",".join(canonical_type(p) for p in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def function_selector(entry: dict) -> bytes:
    """First 4 bytes of the Keccak-256 of the function signature."""
    return keccak256(signature(entry).encode("utf-8"))[:4]


def event_topic(entry: dict) -> str:
    """0x-prefixed topic0 of an event."""
    return "0x" + keccak256(signature(entry).encode("utf-8")).hex()


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _hex_to_bytes(data: str) -> bytes:
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


def encode_function_call(abi: list, function_name: str, args: list) -> str:
    """
    ABI-encode a function call.

    Args:
        abi: Contract ABI
        function_name: Function name to call
        args: Function arguments

    Returns:
        0x-prefixed hex encoded calldata
    """
    func = find_function(abi, function_name, arg_count=len(args))
    inputs = func.get("inputs", [])
    if len(inputs) != len(args):
        raise ValueError(
            f"{function_name} expects {len(inputs)} arguments, got {len(args)}"
        )

    input_types = [canonical_type(p) for p in inputs]
    encoded_args = encode(input_types, list(args)) if args else b""
    return "0x" + function_selector(func).hex() + encoded_args.hex()


def decode_function_result(abi: list, function_name: str, data: str, arg_count: Optional[int] = None) -> Any:
    """
    ABI-decode a function call result.

    Returns:
        ``None`` for empty data or no outputs, the bare value for a single
        output, otherwise a tuple
    """
    func = find_function(abi, function_name, arg_count=arg_count)
    output_types = [canonical_type(p) for p in func.get("outputs", [])]
    if not output_types or data in (None, "", "0x"):
        return None

    decoded = decode(output_types, _hex_to_bytes(data))
    if len(decoded) == 1:
        return decoded[0]
    return tuple(decoded)


def decode_log(event: dict, log: dict) -> dict[str, Any]:
    """
    Decode a raw log against an event entry.

    Indexed arguments come from topics[1:], the rest from the data field.
    Indexed dynamic types (string, bytes, arrays) are only available as
    their hash and are returned as raw 32-byte values.
    """
    inputs = event.get("inputs", [])
    topics = log.get("topics", [])[0 if event.get("anonymous") else 1:]

    indexed = [p for p in inputs if p.get("indexed")]
    plain = [p for p in inputs if not p.get("indexed")]

    values: dict[str, Any] = {}
    for param, topic in zip(indexed, topics):
        abi_type = canonical_type(param)
        raw = _hex_to_bytes(topic)
        if abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("("):
            values[param["name"]] = raw
        else:
            values[param["name"]] = decode([abi_type], raw)[0]

    if plain:
        decoded = decode([canonical_type(p) for p in plain], _hex_to_bytes(log.get("data", "0x")))
        for param, value in zip(plain, decoded):
            values[param["name"]] = value

    return values
