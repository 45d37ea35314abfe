"""
Switchboard Crossbar Relay Client (Async)
=========================================
Fetches per-feed update instructions from the oracle relay and resolves
the lookup tables they depend on.

Features:
- Async HTTP (httpx) to keep the event loop free
- Lookup-table resolution through the ledger RPC, cached per client
- Errors raised, never retried (the pipeline is fail-fast)

Response contract of GET {crossbar}/updates/solana/{network}/{feed}:
    {
        "success": true,
        "pullIx": {
            "programId": "<base58>",
            "accounts": [{"pubkey": "<base58>", "isSigner": false, "isWritable": true}],
            "data": "<base64>"
        },
        "responses": [{"oracle": "<base58>", "result": 123.4, "errors": ""}],
        "lookupTables": ["<base58>", ...]
    }
A one-element list of that object is accepted as well.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional, Sequence

import httpx
from solders.address_lookup_table_account import (
    AddressLookupTable,
    AddressLookupTableAccount,
)
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from feedcrank.execution.collector import FeedUpdate
from feedcrank.shared.execution.crank_result import RelayError
from feedcrank.shared.system.logging import Logger


def decode_instruction(payload: Dict[str, Any]) -> Instruction:
    """Build an Instruction from its JSON form (programId / accounts / data)."""
    try:
        accounts = [
            AccountMeta(
                Pubkey.from_string(meta["pubkey"]),
                bool(meta.get("isSigner", False)),
                bool(meta.get("isWritable", False)),
            )
            for meta in payload.get("accounts", payload.get("keys", []))
        ]
        return Instruction(
            Pubkey.from_string(payload["programId"]),
            base64.b64decode(payload.get("data", "")),
            accounts,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RelayError(f"Malformed instruction payload: {e}") from e


class CrossbarRelayClient:
    """
    Relay + resolution collaborator for the feed collector.

    Usage:
        async with CrossbarRelayClient(rpc, crossbar_url, gateway_url) as relay:
            update = await relay.fetch_update_ix(feed, payer, num_signatures=1)
    """

    DEFAULT_CROSSBAR = "https://crossbar.switchboard.xyz"
    REQUEST_TIMEOUT = 10

    def __init__(
        self,
        rpc_client: Any,
        crossbar_url: str = DEFAULT_CROSSBAR,
        gateway_url: Optional[str] = None,
        network: str = "mainnet",
        timeout: float = REQUEST_TIMEOUT,
        debug: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            rpc_client: solana AsyncClient used to load lookup tables
            crossbar_url: Crossbar base URL
            gateway_url: Oracle gateway the crossbar should query
            network: "mainnet" or "devnet"
            timeout: HTTP timeout in seconds
            debug: Ask the gateway for verbose oracle responses
            http_client: Injected httpx client (tests)
        """
        self.rpc = rpc_client
        self.crossbar_url = crossbar_url.rstrip("/")
        self.gateway_url = gateway_url
        self.network = network
        self.debug = debug
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

        self._table_cache: Dict[Pubkey, AddressLookupTableAccount] = {}
        self._requests = 0
        self._failures = 0

    async def __aenter__(self) -> "CrossbarRelayClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # =========================================================================
    # RELAY
    # =========================================================================

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.crossbar_url}{path}"
        self._requests += 1
        try:
            response = await self._http.get(url, params=params)
        except httpx.HTTPError as e:
            self._failures += 1
            raise RelayError(f"Crossbar request failed: {e}") from e

        if response.status_code != 200:
            self._failures += 1
            raise RelayError(f"Crossbar HTTP {response.status_code}: {response.text[:200]}")
        return response.json()

    async def fetch_update_ix(
        self,
        feed: Pubkey,
        payer: Pubkey,
        num_signatures: int,
    ) -> FeedUpdate:
        """Fetch the update instruction and lookup tables for one feed."""
        params: Dict[str, Any] = {
            "payer": str(payer),
            "numSignatures": num_signatures,
            "debug": str(self.debug).lower(),
        }
        if self.gateway_url:
            params["gateway"] = self.gateway_url

        data = await self._get(f"/updates/solana/{self.network}/{feed}", params)
        if isinstance(data, list):
            if not data:
                raise RelayError(f"Empty relay response for feed {feed}")
            data = data[0]

        if not data.get("success", False):
            errors = [r.get("errors") for r in data.get("responses", []) if r.get("errors")]
            raise RelayError(f"Relay reported failure for feed {feed}: {errors or 'no detail'}")

        pull_ix = data.get("pullIx")
        if not pull_ix:
            raise RelayError(f"No update instruction in relay response for feed {feed}")

        responses = tuple(data.get("responses", []))
        num_success = sum(1 for r in responses if not r.get("errors"))
        if num_success < len(responses):
            Logger.warning(f"[RELAY] {feed}: {len(responses) - num_success} oracle responses had errors")
        else:
            Logger.debug(f"[RELAY] {feed}: {num_success}/{len(responses)} oracle responses ok")

        lookup_tables = await self.resolve_lookup_tables(data.get("lookupTables", []))

        return FeedUpdate(
            feed=feed,
            instruction=decode_instruction(pull_ix),
            lookup_tables=tuple(lookup_tables),
            responses=responses,
            num_success=num_success,
        )

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    async def resolve_lookup_tables(
        self,
        addresses: Sequence[str],
    ) -> List[AddressLookupTableAccount]:
        """Load lookup tables from the ledger, reusing already loaded ones."""
        keys = [Pubkey.from_string(a) for a in addresses]
        missing = [k for k in keys if k not in self._table_cache]

        if missing:
            try:
                resp = await self.rpc.get_multiple_accounts(missing)
            except Exception as e:
                raise RelayError(f"Lookup table fetch failed: {e}") from e

            for key, account in zip(missing, resp.value):
                if account is None:
                    raise RelayError(f"Lookup table {key} not found")
                table = AddressLookupTable.deserialize(bytes(account.data))
                self._table_cache[key] = AddressLookupTableAccount(
                    key=key,
                    addresses=list(table.addresses),
                )
            Logger.debug(f"[RELAY] Loaded {len(missing)} lookup tables")

        return [self._table_cache[k] for k in keys]

    def get_stats(self) -> Dict[str, int]:
        return {
            "requests": self._requests,
            "failures": self._failures,
            "cached_tables": len(self._table_cache),
        }
