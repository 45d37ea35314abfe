"""
Keypair Loader
==============
Loads the fee payer credential.

SOLANA_PRIVATE_KEY (base58) wins over the keypair file; the file is the
Solana CLI JSON format (array of 64 byte values).
"""

import json
import os
from typing import Optional

import base58
from solders.keypair import Keypair

from feedcrank.shared.execution.crank_result import ConfigurationError, ErrorCode
from feedcrank.shared.system.logging import Logger


def load_keypair(path: Optional[str] = None, private_key: Optional[str] = None) -> Keypair:
    if private_key:
        try:
            secret_bytes = base58.b58decode(private_key.strip())
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid SOLANA_PRIVATE_KEY: {e}", code=ErrorCode.INVALID_CREDENTIAL
            ) from e
        keypair = _keypair_from_bytes(secret_bytes, "SOLANA_PRIVATE_KEY")
        Logger.info(f"[WALLET] Loaded payer {keypair.pubkey()} from environment")
        return keypair

    if not path:
        raise ConfigurationError("No keypair path configured", code=ErrorCode.INVALID_CREDENTIAL)

    path = os.path.expanduser(path)
    try:
        with open(path, "r") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"read_keypair_file({path}): {e}", code=ErrorCode.INVALID_CREDENTIAL
        ) from e

    if not isinstance(raw, list):
        raise ConfigurationError(
            f"read_keypair_file({path}): expected a JSON array of 64 bytes",
            code=ErrorCode.INVALID_CREDENTIAL,
        )

    try:
        secret_bytes = bytes(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"read_keypair_file({path}): {e}", code=ErrorCode.INVALID_CREDENTIAL
        ) from e

    keypair = _keypair_from_bytes(secret_bytes, f"read_keypair_file({path})")
    Logger.info(f"[WALLET] Loaded payer {keypair.pubkey()}")
    return keypair


def _keypair_from_bytes(secret_bytes: bytes, origin: str) -> Keypair:
    if len(secret_bytes) != 64:
        raise ConfigurationError(
            f"{origin}: expected 64 secret key bytes, got {len(secret_bytes)}",
            code=ErrorCode.INVALID_CREDENTIAL,
        )
    try:
        return Keypair.from_bytes(secret_bytes)
    except ValueError as e:
        raise ConfigurationError(f"{origin}: {e}", code=ErrorCode.INVALID_CREDENTIAL) from e
