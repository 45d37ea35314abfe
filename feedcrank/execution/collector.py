"""
Feed Update Collector
=====================
Requests one update instruction (plus its lookup tables) per feed from
the oracle relay and accumulates the results in feed order.

A single failed feed aborts the whole batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Protocol, Sequence, Tuple

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.address_lookup_table_account import AddressLookupTableAccount

from feedcrank.execution.instruction_factory import merge_lookup_tables
from feedcrank.shared.execution.crank_result import (
    CollectionError,
    ConfigurationError,
    ErrorCode,
)
from feedcrank.shared.system.logging import Logger


@dataclass(frozen=True)
class FeedUpdate:
    """Relay output for one feed."""

    feed: Pubkey
    instruction: Instruction
    lookup_tables: Tuple[AddressLookupTableAccount, ...] = ()
    responses: Tuple[Any, ...] = ()  # Per-oracle diagnostics
    num_success: int = 0


class FeedUpdateSource(Protocol):
    """Anything that can produce a FeedUpdate (CrossbarRelayClient in production)."""

    async def fetch_update_ix(
        self,
        feed: Pubkey,
        payer: Pubkey,
        num_signatures: int,
    ) -> FeedUpdate:
        ...


@dataclass
class CollectedUpdates:
    """Per-feed updates in feed order plus the deduplicated lookup tables."""

    updates: List[FeedUpdate] = field(default_factory=list)
    lookup_tables: List[AddressLookupTableAccount] = field(default_factory=list)

    @property
    def instructions(self) -> List[Instruction]:
        return [u.instruction for u in self.updates]

    @property
    def feeds(self) -> List[Pubkey]:
        return [u.feed for u in self.updates]


def parse_feeds(values: Iterable[str]) -> List[Pubkey]:
    """Parse base58 feed ids. Any malformed id is a configuration error."""
    feeds = []
    for value in values:
        try:
            feeds.append(Pubkey.from_string(value.strip()))
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid feed pubkey {value!r}: {e}",
                code=ErrorCode.INVALID_FEED,
            ) from e
    return feeds


async def collect_updates(
    feeds: Sequence[Pubkey],
    payer: Pubkey,
    source: FeedUpdateSource,
    num_signatures: int = 1,
    concurrent: bool = False,
) -> CollectedUpdates:
    """
    Fetch every feed's update instruction.

    Args:
        feeds: Ordered feed ids (duplicates tolerated)
        payer: Fee payer of the final transaction
        source: Relay client
        num_signatures: Oracle attestations required per update
        concurrent: Issue all requests at once (order is still preserved)

    Returns:
        CollectedUpdates

    Raises:
        ConfigurationError: empty feed list or num_signatures < 1 (no request made)
        CollectionError: a feed's request failed (names the feed)
    """
    if not feeds:
        raise ConfigurationError("No feeds provided", code=ErrorCode.EMPTY_FEED_LIST)
    if num_signatures < 1:
        raise ConfigurationError(f"num_signatures must be >= 1, got {num_signatures}")

    if concurrent:
        results = await asyncio.gather(
            *(_fetch_one(source, feed, payer, num_signatures) for feed in feeds),
            return_exceptions=True,
        )
        # Report the first failure in feed order, not completion order
        for result in results:
            if isinstance(result, BaseException):
                raise result
        updates = list(results)
    else:
        updates = []
        for feed in feeds:
            updates.append(await _fetch_one(source, feed, payer, num_signatures))

    lookup_tables = merge_lookup_tables(u.lookup_tables for u in updates)
    Logger.info(
        f"[RELAY] Collected {len(updates)} update ixs, "
        f"{len(lookup_tables)} unique lookup tables"
    )
    return CollectedUpdates(updates=updates, lookup_tables=lookup_tables)


async def _fetch_one(
    source: FeedUpdateSource,
    feed: Pubkey,
    payer: Pubkey,
    num_signatures: int,
) -> FeedUpdate:
    Logger.info(f"[RELAY] Preparing update ix for feed: {feed}")
    try:
        return await source.fetch_update_ix(feed, payer, num_signatures)
    except Exception as e:
        Logger.error(f"[RELAY] Feed {feed} failed: {e}")
        raise CollectionError(str(feed), e) from e
