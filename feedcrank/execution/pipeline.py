"""
Batch Crank Pipeline
====================
Collect → Budget → Assemble → Simulate → Submit, strictly in that order.

The "Pilot" of the crank: one run per invocation, fail-fast, no retry.
A transaction is built from a freshly fetched blockhash on every run and
the exact bytes that passed simulation are the bytes that get sent.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from feedcrank.execution.collector import FeedUpdateSource, collect_updates
from feedcrank.execution.instruction_factory import (
    MAX_UNITS,
    MIN_UNITS,
    PER_FEED_UNITS,
    UNIT_PRICE_MICRO_LAMPORTS,
    ComputeBudgetPlan,
    plan_compute_budget,
)
from feedcrank.execution.simulation_gate import SimulationGate
from feedcrank.execution.submitter import TransactionSubmitter
from feedcrank.execution.transaction_builder import (
    MAX_ACCOUNT_LOCKS,
    PACKET_DATA_SIZE,
    TransactionAssembler,
    build_plan,
)
from feedcrank.shared.execution.crank_result import (
    ConfigurationError,
    CrankError,
    CrankResult,
    LedgerError,
    PipelineStage,
)
from feedcrank.shared.system.logging import Logger


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CrankConfig:
    """Policy for one crank run."""

    # Compute budget
    per_feed_units: int = PER_FEED_UNITS
    min_units: int = MIN_UNITS
    max_units: int = MAX_UNITS
    unit_price: int = UNIT_PRICE_MICRO_LAMPORTS
    fixed_unit_limit: Optional[int] = None  # Bypasses the per-feed formula

    # Relay
    num_signatures: int = 1
    concurrent_fetch: bool = False

    # Transaction limits
    max_tx_size: int = PACKET_DATA_SIZE
    max_account_locks: int = MAX_ACCOUNT_LOCKS

    # Simulation
    sig_verify: bool = True

    def __post_init__(self):
        if self.min_units > self.max_units:
            raise ConfigurationError(
                f"min_units ({self.min_units}) exceeds max_units ({self.max_units})"
            )
        if self.per_feed_units < 0 or self.unit_price < 0:
            raise ConfigurationError("Compute budget values must be non-negative")
        if self.num_signatures < 1:
            raise ConfigurationError(f"num_signatures must be >= 1, got {self.num_signatures}")
        if self.fixed_unit_limit is not None and not 0 < self.fixed_unit_limit <= self.max_units:
            raise ConfigurationError(
                f"fixed_unit_limit ({self.fixed_unit_limit}) must be within 1..{self.max_units}"
            )

    @classmethod
    def from_settings(cls, settings: Any = None, **overrides: Any) -> "CrankConfig":
        """Build from config.settings.Settings; keyword overrides win."""
        if settings is None:
            from config.settings import Settings
            settings = Settings

        values = {
            "per_feed_units": _parse_int("CRANK_PER_FEED_CU", settings.PER_FEED_CU),
            "min_units": _parse_int("CRANK_MIN_CU", settings.MIN_CU),
            "max_units": _parse_int("CRANK_MAX_CU", settings.MAX_CU),
            "unit_price": _parse_int("CRANK_CU_PRICE", settings.CU_PRICE_MICRO_LAMPORTS),
            "num_signatures": _parse_int("SWB_NUM_SIGNATURES", settings.NUM_SIGNATURES),
            "concurrent_fetch": bool(settings.CONCURRENT_FETCH),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def plan_budget(self, feed_count: int) -> ComputeBudgetPlan:
        if self.fixed_unit_limit is not None:
            return ComputeBudgetPlan(unit_limit=self.fixed_unit_limit, unit_price=self.unit_price)
        return plan_compute_budget(
            feed_count,
            per_feed_units=self.per_feed_units,
            min_units=self.min_units,
            max_units=self.max_units,
            unit_price=self.unit_price,
        )


def _parse_int(name: str, value: Any) -> int:
    try:
        return int(str(value).replace("_", ""))
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════════════════════

class CrankPipeline:
    """
    Single-use batch crank.

    Usage:
        pipeline = CrankPipeline(rpc_client, relay, keypair, CrankConfig())
        result = await pipeline.run(feeds)
    """

    def __init__(
        self,
        rpc_client: Any,
        source: FeedUpdateSource,
        keypair: Keypair,
        config: Optional[CrankConfig] = None,
    ):
        self.rpc = rpc_client
        self.source = source
        self.keypair = keypair
        self.payer = keypair.pubkey()
        self.config = config or CrankConfig()

        self.assembler = TransactionAssembler(
            max_tx_size=self.config.max_tx_size,
            max_account_locks=self.config.max_account_locks,
        )
        self.gate = SimulationGate(rpc_client, sig_verify=self.config.sig_verify)
        self.submitter = TransactionSubmitter(rpc_client)

        self.stage: Optional[PipelineStage] = None
        self.history: List[PipelineStage] = []

    def _advance(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.history.append(stage)
        Logger.debug(f"[CRANK] Stage -> {stage.value}")

    async def _latest_blockhash(self):
        try:
            resp = await self.rpc.get_latest_blockhash(commitment=Confirmed)
        except Exception as e:
            raise LedgerError(f"get_latest_blockhash failed: {e}") from e
        return resp.value

    async def run(self, feeds: Sequence[Pubkey], simulate_only: bool = False) -> CrankResult:
        """
        Execute one batch crank.

        Args:
            feeds: Ordered feed ids
            simulate_only: Stop after the simulation gate (nothing is sent)

        Returns:
            CrankResult (signature is None when simulate_only)

        Raises:
            CrankError subclass, with .stage set to the failing stage
        """
        if self.history:
            raise RuntimeError("CrankPipeline is single-use; build a new one per run")

        start_time = time.time()
        feed_labels = [str(f) for f in feeds]
        Logger.section(f"Batch Crank: {len(feeds)} feeds")

        try:
            self._advance(PipelineStage.COLLECTING)
            collected = await collect_updates(
                feeds,
                self.payer,
                self.source,
                num_signatures=self.config.num_signatures,
                concurrent=self.config.concurrent_fetch,
            )

            self._advance(PipelineStage.BUDGETING)
            budget = self.config.plan_budget(len(feeds))
            Logger.info(
                f"[BUDGET] {len(feeds)} feeds -> cu_limit={budget.unit_limit}, "
                f"cu_price={budget.unit_price}"
            )

            self._advance(PipelineStage.ASSEMBLING)
            latest = await self._latest_blockhash()
            plan = build_plan(
                budget,
                collected.instructions,
                collected.lookup_tables,
                self.payer,
                latest.blockhash,
                latest.last_valid_block_height,
            )
            tx = self.assembler.assemble(plan, self.keypair)

            self._advance(PipelineStage.SIMULATING)
            outcome = await self.gate.check(tx, label=f"{len(feeds)} feeds")

            result = CrankResult(
                signature=None,
                feeds=feed_labels,
                unit_limit=budget.unit_limit,
                unit_price=budget.unit_price,
                instruction_count=len(plan.instructions),
                lookup_table_count=len(plan.lookup_tables),
                tx_size=len(bytes(tx)),
                simulation_logs=outcome.logs,
                units_consumed=outcome.units_consumed,
            )

            if simulate_only:
                self._advance(PipelineStage.DONE)
                result.latency_ms = (time.time() - start_time) * 1000
                Logger.success(f"[CRANK] Simulation-only run complete for {len(feeds)} feeds")
                return result

            self._advance(PipelineStage.SUBMITTING)
            signature = await self.submitter.submit(tx, plan.last_valid_block_height)

            self._advance(PipelineStage.DONE)
            result.signature = str(signature)
            result.latency_ms = (time.time() - start_time) * 1000

        except CrankError as e:
            if e.stage is None:
                e.stage = self.stage
            self._advance(PipelineStage.FAILED)
            Logger.error(f"[CRANK] {e.code.value} during {e.stage.value if e.stage else '?'}: {e}")
            raise
        except Exception:
            self._advance(PipelineStage.FAILED)
            raise

        Logger.success(f"[CRANK] Cranked {len(feeds)} feeds in one tx -> {result.signature}")
        for label in feed_labels:
            Logger.info(f"[CRANK]   • {label}")
        return result
