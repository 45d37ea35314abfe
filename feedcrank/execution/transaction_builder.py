"""
Transaction Assembler
=====================
Compiles the budget + update instructions into one signed v0 transaction,
resolving account references through the merged lookup tables.

The natural ceiling on batch size lives here: an oversized batch is
reported as BatchTooLargeError, separate from other compile failures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from feedcrank.execution.instruction_factory import (
    ComputeBudgetPlan,
    build_instruction_sequence,
)
from feedcrank.shared.execution.crank_result import (
    BatchTooLargeError,
    CompilationError,
    SigningError,
)
from feedcrank.shared.system.logging import Logger


PACKET_DATA_SIZE = 1232  # Max serialized transaction size
MAX_ACCOUNT_LOCKS = 64   # Max accounts a transaction may reference


@dataclass(frozen=True)
class TransactionPlan:
    """
    Everything needed to compile one transaction.

    Consumed once: the blockhash expires, so a plan is never reused
    across submission attempts.
    """

    instructions: Tuple[Instruction, ...]
    lookup_tables: Tuple[AddressLookupTableAccount, ...]
    payer: Pubkey
    recent_blockhash: Hash
    last_valid_block_height: int = 0


def build_plan(
    budget: ComputeBudgetPlan,
    update_instructions: Iterable[Instruction],
    lookup_tables: Iterable[AddressLookupTableAccount],
    payer: Pubkey,
    recent_blockhash: Hash,
    last_valid_block_height: int = 0,
) -> TransactionPlan:
    """Order instructions (budget first, then feeds) and freeze the plan."""
    return TransactionPlan(
        instructions=tuple(build_instruction_sequence(budget, update_instructions)),
        lookup_tables=tuple(lookup_tables),
        payer=payer,
        recent_blockhash=recent_blockhash,
        last_valid_block_height=last_valid_block_height,
    )


def count_account_references(message: MessageV0) -> int:
    """Static keys plus every address loaded through a lookup table."""
    loaded = sum(
        len(lookup.writable_indexes) + len(lookup.readonly_indexes)
        for lookup in message.address_table_lookups
    )
    return len(message.account_keys) + loaded


class TransactionAssembler:
    """
    Compiles and signs a TransactionPlan.

    Usage:
        assembler = TransactionAssembler()
        tx = assembler.assemble(plan, keypair)
    """

    def __init__(
        self,
        max_tx_size: int = PACKET_DATA_SIZE,
        max_account_locks: int = MAX_ACCOUNT_LOCKS,
    ):
        self.max_tx_size = max_tx_size
        self.max_account_locks = max_account_locks

    def compile(self, plan: TransactionPlan) -> MessageV0:
        """Compile the v0 message. Raises CompilationError / BatchTooLargeError."""
        try:
            message = MessageV0.try_compile(
                payer=plan.payer,
                instructions=list(plan.instructions),
                address_lookup_table_accounts=list(plan.lookup_tables),
                recent_blockhash=plan.recent_blockhash,
            )
        except Exception as e:
            if "overflow" in str(e).lower():
                raise BatchTooLargeError(
                    f"Too many feeds for one transaction: {e}"
                ) from e
            raise CompilationError(f"Message compilation failed: {e}") from e

        account_refs = count_account_references(message)
        if account_refs > self.max_account_locks:
            raise BatchTooLargeError(
                f"Too many feeds for one transaction: {account_refs} account references "
                f"(max {self.max_account_locks})"
            )
        return message

    def assemble(self, plan: TransactionPlan, keypair: Keypair) -> VersionedTransaction:
        """
        Compile and sign.

        Raises:
            SigningError: keypair is not the declared payer
            BatchTooLargeError: size or account limit exceeded
            CompilationError: any other compile failure
        """
        if keypair.pubkey() != plan.payer:
            raise SigningError(
                f"Keypair {keypair.pubkey()} does not match payer {plan.payer}"
            )

        message = self.compile(plan)
        tx = VersionedTransaction(message, [keypair])

        tx_size = len(bytes(tx))
        if tx_size > self.max_tx_size:
            raise BatchTooLargeError(
                f"Too many feeds for one transaction: {tx_size} bytes "
                f"(max {self.max_tx_size})"
            )

        Logger.info(
            f"[ASSEMBLER] TX built: {len(plan.instructions)} ixs, "
            f"{len(plan.lookup_tables)} LUTs, {tx_size} bytes"
        )
        return tx

    @staticmethod
    def program_ids(message: MessageV0) -> List[Pubkey]:
        """Program id of each compiled instruction, in order."""
        keys = message.account_keys
        return [keys[ix.program_id_index] for ix in message.instructions]
