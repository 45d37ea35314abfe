"""
Instruction Factory
===================
Pure, deterministic instruction building for the batch crank.

100% testable without RPC or wallet connections.

Responsibilities:
- Size the ComputeBudget for a batch of feed updates
- Merge AddressLookupTables shared between feed updates
- Order the final instruction sequence
"""

from __future__ import annotations

from typing import Dict, Iterable, List
from dataclasses import dataclass

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price


# ═══════════════════════════════════════════════════════════════════════════════
# COMPUTE BUDGET POLICY
# ═══════════════════════════════════════════════════════════════════════════════

PER_FEED_UNITS = 300_000
MIN_UNITS = 300_000
MAX_UNITS = 1_400_000  # Ledger hard per-transaction limit
UNIT_PRICE_MICRO_LAMPORTS = 5_000

U32_MAX = 2**32 - 1


@dataclass(frozen=True)
class ComputeBudgetPlan:
    """Unit limit + unit price pair. Always the first two instructions."""

    unit_limit: int
    unit_price: int

    def instructions(self) -> List[Instruction]:
        """Returns [SetComputeUnitLimit, SetComputeUnitPrice]."""
        return [
            set_compute_unit_limit(self.unit_limit),
            set_compute_unit_price(self.unit_price),
        ]


def plan_compute_budget(
    feed_count: int,
    per_feed_units: int = PER_FEED_UNITS,
    min_units: int = MIN_UNITS,
    max_units: int = MAX_UNITS,
    unit_price: int = UNIT_PRICE_MICRO_LAMPORTS,
) -> ComputeBudgetPlan:
    """
    Derive the compute budget for a batch.

    unit_limit = clamp(feed_count * per_feed_units, min_units, max_units)

    The product saturates at u32::MAX before clamping, so arbitrarily
    large batches never wrap around.

    Args:
        feed_count: Number of feed updates in the transaction
        per_feed_units: Estimated CU cost of one update
        min_units: Floor (minimum useful limit)
        max_units: Ceiling (ledger per-tx maximum)
        unit_price: Priority fee in micro-lamports per CU

    Returns:
        ComputeBudgetPlan
    """
    requested = min(per_feed_units * max(feed_count, 0), U32_MAX)
    unit_limit = max(min_units, min(requested, max_units))
    return ComputeBudgetPlan(unit_limit=unit_limit, unit_price=unit_price)


# ═══════════════════════════════════════════════════════════════════════════════
# LOOKUP TABLES
# ═══════════════════════════════════════════════════════════════════════════════

def merge_lookup_tables(
    table_lists: Iterable[Iterable[AddressLookupTableAccount]],
) -> List[AddressLookupTableAccount]:
    """
    Fold per-feed lookup tables into one list unique by table key.

    First-seen wins: a published table is stable, so any instance
    of a given key is as good as another.
    """
    merged: Dict[Pubkey, AddressLookupTableAccount] = {}
    for tables in table_lists:
        for table in tables:
            merged.setdefault(table.key, table)
    return list(merged.values())


# ═══════════════════════════════════════════════════════════════════════════════
# SEQUENCING
# ═══════════════════════════════════════════════════════════════════════════════

def build_instruction_sequence(
    budget: ComputeBudgetPlan,
    update_instructions: Iterable[Instruction],
) -> List[Instruction]:
    """
    Order:
    1. ComputeBudget (limit + price)
    2. Feed updates, in the order the feeds were supplied
    """
    instructions = budget.instructions()
    instructions.extend(update_instructions)
    return instructions
