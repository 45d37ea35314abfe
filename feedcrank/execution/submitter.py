"""
Transaction Submitter
=====================
Sends the transaction that passed simulation and blocks until the ledger
confirms it.

No automatic retry: a stale-blockhash transaction must never be resent.
The pipeline is re-run from assembly with a fresh blockhash instead.
"""

from __future__ import annotations

from typing import Any, Optional

from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from feedcrank.shared.execution.crank_result import ErrorCode, SubmissionError
from feedcrank.shared.system.logging import Logger


class TransactionSubmitter:
    """
    Usage:
        submitter = TransactionSubmitter(rpc_client)
        signature = await submitter.submit(tx, last_valid_block_height)
    """

    def __init__(
        self,
        rpc_client: Any,
        commitment: Commitment = Confirmed,
        poll_interval_sec: float = 0.5,
    ):
        self.rpc = rpc_client
        self.commitment = commitment
        self.poll_interval_sec = poll_interval_sec

    async def submit(
        self,
        tx: VersionedTransaction,
        last_valid_block_height: Optional[int] = None,
    ) -> Signature:
        """
        Send and confirm.

        Raises:
            SubmissionError: carries the signature, since the transaction
                may have landed even when confirmation failed
        """
        expected_sig = str(tx.signatures[0])

        try:
            resp = await self.rpc.send_transaction(
                tx,
                opts=TxOpts(
                    skip_confirmation=True,
                    skip_preflight=False,
                    preflight_commitment=self.commitment,
                ),
            )
        except Exception as e:
            raise SubmissionError(
                f"send_transaction failed: {e}", signature=expected_sig
            ) from e

        signature = resp.value
        Logger.info(f"[SUBMIT] TX sent: {signature}")

        try:
            confirm_resp = await self.rpc.confirm_transaction(
                signature,
                commitment=self.commitment,
                sleep_seconds=self.poll_interval_sec,
                last_valid_block_height=last_valid_block_height,
            )
        except TransactionExpiredBlockheightExceededError as e:
            raise SubmissionError(
                f"Blockhash expired before confirmation: {e}",
                signature=str(signature),
                code=ErrorCode.BLOCKHASH_EXPIRED,
            ) from e
        except UnconfirmedTxError as e:
            raise SubmissionError(
                f"Confirmation timed out: {e}",
                signature=str(signature),
                code=ErrorCode.TIMEOUT,
            ) from e
        except Exception as e:
            raise SubmissionError(
                f"confirm_transaction failed: {e}", signature=str(signature)
            ) from e

        statuses = confirm_resp.value or []
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise SubmissionError(
                f"Transaction landed with error: {status.err}",
                signature=str(signature),
                code=ErrorCode.TRANSACTION_FAILED,
            )

        Logger.success(f"[SUBMIT] Confirmed ({self.commitment}): {signature}")
        return signature
