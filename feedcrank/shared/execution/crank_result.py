"""
Unified Crank Result
====================
Standardized result and error types for the batch crank pipeline.

Every stage either returns its declared output or raises a CrankError
subclass carrying an ErrorCode and the PipelineStage it failed in.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from enum import Enum
import time


class PipelineStage(Enum):
    """Pipeline states. FAILED is absorbing; no stage is re-entered."""

    COLLECTING = "COLLECTING"
    BUDGETING = "BUDGETING"
    ASSEMBLING = "ASSEMBLING"
    SIMULATING = "SIMULATING"
    SUBMITTING = "SUBMITTING"
    DONE = "DONE"
    FAILED = "FAILED"


class ErrorCode(Enum):
    """Standardized error codes for crank failures."""

    # Configuration errors
    EMPTY_FEED_LIST = "EMPTY_FEED_LIST"
    INVALID_FEED = "INVALID_FEED"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    INVALID_SETTING = "INVALID_SETTING"

    # Relay errors
    RELAY_FAILED = "RELAY_FAILED"

    # Assembly errors
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    COMPILATION_FAILED = "COMPILATION_FAILED"
    SIGNER_MISMATCH = "SIGNER_MISMATCH"

    # Ledger errors
    RPC_ERROR = "RPC_ERROR"
    SIMULATION_FAILED = "SIMULATION_FAILED"
    TIMEOUT = "TIMEOUT"
    BLOCKHASH_EXPIRED = "BLOCKHASH_EXPIRED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"

    # General
    UNKNOWN = "UNKNOWN"


# ═══════════════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class CrankError(Exception):
    """Base class for every typed pipeline failure."""

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        stage: Optional[PipelineStage] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.stage = stage

    def __str__(self) -> str:
        return self.message


class ConfigurationError(CrankError):
    """Empty feed list, malformed feed id, unreadable credential, bad setting."""

    default_code = ErrorCode.INVALID_SETTING


class RelayError(CrankError):
    """The oracle relay returned an unusable response."""

    default_code = ErrorCode.RELAY_FAILED


class CollectionError(CrankError):
    """A single feed's update request failed; the whole batch is abandoned."""

    default_code = ErrorCode.RELAY_FAILED

    def __init__(self, feed: str, reason: Any):
        self.feed = str(feed)
        self.reason = reason
        super().__init__(f"Failed to fetch update ix for feed {self.feed}: {reason}")


class CompilationError(CrankError):
    """The instruction set could not be compiled into a v0 message."""

    default_code = ErrorCode.COMPILATION_FAILED


class BatchTooLargeError(CompilationError):
    """Too many feeds for one transaction (size or account limit exceeded)."""

    default_code = ErrorCode.BATCH_TOO_LARGE


class SigningError(CrankError):
    """The signing keypair does not match the declared payer."""

    default_code = ErrorCode.SIGNER_MISMATCH


class LedgerError(CrankError):
    """A ledger RPC call (blockhash, simulate) failed at the transport level."""

    default_code = ErrorCode.RPC_ERROR


class SimulationError(CrankError):
    """The dry run reported the transaction would fail on-chain."""

    default_code = ErrorCode.SIMULATION_FAILED

    def __init__(self, err: Any, logs: Optional[List[str]] = None):
        self.err = err
        self.logs = list(logs or [])
        super().__init__(f"simulation failed: {err!r}")


class SubmissionError(CrankError):
    """
    Send or confirmation failed. The outcome may be indeterminate:
    look the signature up on-chain before re-running the pipeline.
    """

    default_code = ErrorCode.RPC_ERROR

    def __init__(
        self,
        message: str,
        signature: Optional[str] = None,
        code: Optional[ErrorCode] = None,
    ):
        self.signature = signature
        if signature:
            message = f"{message} (verify signature {signature} on-chain before retrying)"
        super().__init__(message, code=code)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class CrankResult:
    """
    Terminal artifact of a successful pipeline run.

    signature is None when the run stopped after the simulation gate.
    """

    signature: Optional[str]
    feeds: List[str] = field(default_factory=list)

    # Budget
    unit_limit: int = 0
    unit_price: int = 0

    # Transaction shape
    instruction_count: int = 0
    lookup_table_count: int = 0
    tx_size: int = 0

    # Simulation
    simulation_logs: List[str] = field(default_factory=list)
    units_consumed: Optional[int] = None

    # Context
    timestamp: float = field(default_factory=time.time)
    latency_ms: float = 0.0

    @property
    def submitted(self) -> bool:
        return self.signature is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/storage."""
        return {
            "signature": self.signature,
            "feeds": list(self.feeds),
            "unit_limit": self.unit_limit,
            "unit_price": self.unit_price,
            "instruction_count": self.instruction_count,
            "lookup_table_count": self.lookup_table_count,
            "tx_size": self.tx_size,
            "units_consumed": self.units_consumed,
            "latency_ms": self.latency_ms,
        }

    def __repr__(self) -> str:
        if self.submitted:
            return (
                f"CrankResult(CONFIRMED: {len(self.feeds)} feeds, "
                f"cu_limit={self.unit_limit}, tx={self.signature[:12]}...)"
            )
        return f"CrankResult(SIMULATED: {len(self.feeds)} feeds, cu_limit={self.unit_limit})"
