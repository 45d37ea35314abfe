"""
Simulation Gate
===============
Dry-runs the exact transaction that will be sent. Logs are always
surfaced; a reported execution error stops the pipeline before any fee
is spent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from solana.rpc.commitment import Commitment, Processed
from solders.transaction import VersionedTransaction

from feedcrank.shared.execution.crank_result import LedgerError, SimulationError
from feedcrank.shared.system.logging import Logger


@dataclass
class SimulationOutcome:
    """Transient dry-run result. Only used to gate submission."""

    logs: List[str] = field(default_factory=list)
    err: Optional[Any] = None
    units_consumed: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.err is None


class SimulationGate:
    """
    Usage:
        gate = SimulationGate(rpc_client)
        outcome = await gate.check(tx)   # raises SimulationError on failure
    """

    def __init__(
        self,
        rpc_client: Any,
        sig_verify: bool = True,
        commitment: Commitment = Processed,
    ):
        """
        Args:
            rpc_client: solana AsyncClient
            sig_verify: Verify signatures during the dry run
            commitment: State to simulate against (processed = most current)
        """
        self.rpc = rpc_client
        self.sig_verify = sig_verify
        self.commitment = commitment

    async def simulate(self, tx: VersionedTransaction) -> SimulationOutcome:
        """Run the dry run. The recent blockhash is never replaced."""
        try:
            resp = await self.rpc.simulate_transaction(
                tx,
                sig_verify=self.sig_verify,
                commitment=self.commitment,
            )
        except Exception as e:
            raise LedgerError(f"simulate_transaction failed: {e}") from e

        value = resp.value
        return SimulationOutcome(
            logs=list(value.logs or []),
            err=value.err,
            units_consumed=value.units_consumed,
        )

    async def check(self, tx: VersionedTransaction, label: str = "") -> SimulationOutcome:
        outcome = await self.simulate(tx)
        self._dump_logs(outcome.logs, label)

        if not outcome.ok:
            Logger.error(f"[SIM] Simulation failed: {outcome.err}")
            raise SimulationError(outcome.err, outcome.logs)

        Logger.success(f"[SIM] Simulation passed (units consumed: {outcome.units_consumed})")
        return outcome

    @staticmethod
    def _dump_logs(logs: List[str], label: str) -> None:
        if not logs:
            return
        header = f"--- simulation logs ({label}) ---" if label else "--- simulation logs ---"
        Logger.info(f"[SIM] {header}")
        for line in logs:
            Logger.info(f"[SIM] {line}")
        Logger.info(f"[SIM] {'-' * len(header)}")
