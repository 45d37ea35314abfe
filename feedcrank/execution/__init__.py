"""
Execution Pipeline
==================
SRP-compliant batch crank layer.

Components:
- collect_updates: Per-feed relay requests (The Collector)
- InstructionFactory functions: Compute budget + lookup-table merging (The Architect)
- TransactionAssembler: v0 compile + sign (The Builder)
- SimulationGate: Dry run before spending fees (The Gate)
- TransactionSubmitter: Send + confirm (The Pilot)
- CrankPipeline: Stage orchestration
"""

from feedcrank.execution.instruction_factory import (
    ComputeBudgetPlan,
    plan_compute_budget,
    merge_lookup_tables,
    build_instruction_sequence,
)

from feedcrank.execution.collector import (
    FeedUpdate,
    FeedUpdateSource,
    CollectedUpdates,
    collect_updates,
    parse_feeds,
)

from feedcrank.execution.transaction_builder import (
    TransactionAssembler,
    TransactionPlan,
    build_plan,
)

from feedcrank.execution.simulation_gate import (
    SimulationGate,
    SimulationOutcome,
)

from feedcrank.execution.submitter import TransactionSubmitter

from feedcrank.execution.pipeline import (
    CrankConfig,
    CrankPipeline,
)


__all__ = [
    # Factory
    "ComputeBudgetPlan",
    "plan_compute_budget",
    "merge_lookup_tables",
    "build_instruction_sequence",
    # Collector
    "FeedUpdate",
    "FeedUpdateSource",
    "CollectedUpdates",
    "collect_updates",
    "parse_feeds",
    # Assembler
    "TransactionAssembler",
    "TransactionPlan",
    "build_plan",
    # Gate
    "SimulationGate",
    "SimulationOutcome",
    # Submitter
    "TransactionSubmitter",
    # Pipeline
    "CrankConfig",
    "CrankPipeline",
]
