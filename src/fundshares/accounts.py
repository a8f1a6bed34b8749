"""
ECDSA / secp256k1 key management.

The development node signs for its own unlocked accounts, so keys are
only needed when talking to a node that does not manage them. In that case
the key is read from PRIVATE_KEY, optionally loaded from a .env file.

Dependencies: eth-account (lightweight, no full web3.py needed)
"""

from __future__ import annotations

import os
import secrets
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount


def generate_eoa() -> tuple[str, str]:
    """Fresh throwaway keypair as ``(private_key_hex, address)``."""
    key = "0x" + secrets.token_hex(32)
    return key, Account.from_key(key).address


def load_private_key(env_path: Optional[Path] = None) -> str:
    """
    Load private key from a .env file or the environment.

    Args:
        env_path: Optional .env file to load first

    Returns:
        0x-prefixed hex private key

    Raises:
        ValueError: If PRIVATE_KEY is not set
    """
    if env_path is not None and env_path.exists():
        load_dotenv(env_path, override=True)

    private_key = os.environ.get("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not set. Export it or add it to your .env file.")

    if not private_key.startswith("0x"):
        private_key = "0x" + private_key

    return private_key


def get_account(private_key: Optional[str] = None) -> LocalAccount:
    """eth-account LocalAccount for a key (loaded from the environment if None)."""
    if private_key is None:
        private_key = load_private_key()
    return Account.from_key(private_key)


def get_address(private_key: Optional[str] = None) -> str:
    """0x-prefixed checksummed address for a key."""
    return get_account(private_key).address
