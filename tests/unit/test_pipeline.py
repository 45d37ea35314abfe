"""
Batch Crank Pipeline Tests
==========================
End-to-end runs of Collect -> Budget -> Assemble -> Simulate -> Submit
against mock relay and ledger collaborators.
"""

import struct

import pytest
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction


def _unit_limit_of(tx: VersionedTransaction) -> int:
    data = bytes(tx.message.instructions[0].data)
    assert data[0] == 2
    return struct.unpack("<I", data[1:5])[0]


def _unit_price_of(tx: VersionedTransaction) -> int:
    data = bytes(tx.message.instructions[1].data)
    assert data[0] == 3
    return struct.unpack("<Q", data[1:9])[0]


class TestScenarios:
    """Batch sizes and their compute limits."""

    @pytest.mark.asyncio
    async def test_three_feeds_one_transaction(self, mock_rpc, mock_relay, payer, feeds):
        """Three feeds -> 5 ixs, 900k CU, one signature."""
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import PipelineStage

        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)
        result = await pipeline.run(feeds)

        assert len(mock_rpc.sent) == 1
        tx = mock_rpc.sent[0]
        assert len(tx.message.instructions) == 5
        assert _unit_limit_of(tx) == 900_000
        assert _unit_price_of(tx) == 5_000
        assert result.signature == str(tx.signatures[0])
        assert result.feeds == [str(f) for f in feeds]
        assert result.unit_limit == 900_000
        assert result.instruction_count == 5
        assert result.submitted
        assert pipeline.stage == PipelineStage.DONE

    @pytest.mark.asyncio
    async def test_single_feed_floor(self, mock_rpc, mock_relay, payer, feeds):
        """One feed -> 3 ixs, limit floored at 300k."""
        from feedcrank.execution.pipeline import CrankPipeline

        result = await CrankPipeline(mock_rpc, mock_relay, payer).run(feeds[:1])

        tx = mock_rpc.sent[0]
        assert len(tx.message.instructions) == 3
        assert _unit_limit_of(tx) == 300_000
        assert result.unit_limit == 300_000

    @pytest.mark.asyncio
    async def test_three_feeds_sharing_one_table(self, mock_rpc, mock_relay, payer, feeds, make_lookup_table):
        """Every feed returns table T -> one merged table, 900k CU."""
        from feedcrank.execution.pipeline import CrankPipeline

        shared_accounts = [Pubkey.new_unique() for _ in range(3)]
        table = make_lookup_table(shared_accounts)
        for feed in feeds:
            mock_relay.tables_for(feed, [table])

        result = await CrankPipeline(mock_rpc, mock_relay, payer).run(feeds)

        tx = mock_rpc.sent[0]
        assert result.lookup_table_count == 1
        assert _unit_limit_of(tx) == 900_000
        assert len(tx.message.instructions) == 5

    @pytest.mark.asyncio
    async def test_ten_feeds_ceiling(self, mock_rpc, mock_relay, payer):
        """Ten feeds -> 12 ixs, limit capped at 1.4M."""
        from feedcrank.execution.pipeline import CrankPipeline

        ten = [Pubkey.new_unique() for _ in range(10)]
        result = await CrankPipeline(mock_rpc, mock_relay, payer).run(ten)

        tx = mock_rpc.sent[0]
        assert len(tx.message.instructions) == 12
        assert _unit_limit_of(tx) == 1_400_000
        assert result.unit_limit == 1_400_000
        assert result.feeds == [str(f) for f in ten]

    @pytest.mark.asyncio
    async def test_relay_failure_on_second_feed(self, mock_rpc, mock_relay, payer, feeds):
        """Nothing is simulated or sent; error names the failing feed."""
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import CollectionError, PipelineStage

        mock_relay.fail_for(feeds[1], RuntimeError("gateway 502"))
        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)

        with pytest.raises(CollectionError) as exc_info:
            await pipeline.run(feeds)

        assert exc_info.value.feed == str(feeds[1])
        assert exc_info.value.stage == PipelineStage.COLLECTING
        assert mock_rpc.simulated == []
        assert mock_rpc.sent == []
        assert pipeline.stage == PipelineStage.FAILED

    @pytest.mark.asyncio
    async def test_empty_feed_list(self, mock_rpc, mock_relay, payer):
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import ConfigurationError, ErrorCode

        with pytest.raises(ConfigurationError) as exc_info:
            await CrankPipeline(mock_rpc, mock_relay, payer).run([])

        assert exc_info.value.code == ErrorCode.EMPTY_FEED_LIST
        assert mock_relay.requests == []
        assert mock_rpc.calls == []


class TestGateAndSubmission:
    """Simulation gates submission; sent bytes equal simulated bytes."""

    @pytest.mark.asyncio
    async def test_simulation_failure_blocks_send(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import PipelineStage, SimulationError

        mock_rpc.set_simulation(err={"InstructionError": [3, {"Custom": 1}]}, logs=["Program failed"])
        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)

        with pytest.raises(SimulationError) as exc_info:
            await pipeline.run(feeds)

        assert exc_info.value.stage == PipelineStage.SIMULATING
        assert exc_info.value.logs == ["Program failed"]
        assert mock_rpc.sent == []

    @pytest.mark.asyncio
    async def test_sent_bytes_equal_simulated_bytes(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline

        await CrankPipeline(mock_rpc, mock_relay, payer).run(feeds)

        assert len(mock_rpc.simulated) == 1
        assert bytes(mock_rpc.sent[0]) == bytes(mock_rpc.simulated[0])

    @pytest.mark.asyncio
    async def test_blockhash_fetched_fresh_and_used(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline

        await CrankPipeline(mock_rpc, mock_relay, payer).run(feeds)

        assert mock_rpc.calls.count("get_latest_blockhash") == 1
        assert mock_rpc.sent[0].message.recent_blockhash == mock_rpc.blockhash
        assert mock_rpc.confirmed[0][1] == mock_rpc.last_valid_block_height

    @pytest.mark.asyncio
    async def test_call_order(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline

        await CrankPipeline(mock_rpc, mock_relay, payer).run(feeds)

        assert mock_rpc.calls == [
            "get_latest_blockhash",
            "simulate_transaction",
            "send_transaction",
            "confirm_transaction",
        ]

    @pytest.mark.asyncio
    async def test_submission_failure_keeps_signature(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import PipelineStage, SubmissionError

        mock_rpc.send_error = ConnectionError("reset")
        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)

        with pytest.raises(SubmissionError) as exc_info:
            await pipeline.run(feeds)

        assert exc_info.value.stage == PipelineStage.SUBMITTING
        assert exc_info.value.signature == str(mock_rpc.sent[0].signatures[0])

    @pytest.mark.asyncio
    async def test_blockhash_rpc_failure(self, mock_rpc, mock_relay, payer, feeds, monkeypatch):
        from unittest.mock import AsyncMock
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import LedgerError, PipelineStage

        monkeypatch.setattr(mock_rpc, "get_latest_blockhash", AsyncMock(side_effect=OSError("down")))

        with pytest.raises(LedgerError) as exc_info:
            await CrankPipeline(mock_rpc, mock_relay, payer).run(feeds)

        assert exc_info.value.stage == PipelineStage.ASSEMBLING
        assert mock_rpc.simulated == []


class TestStateMachine:
    """Stage history and single use."""

    @pytest.mark.asyncio
    async def test_stage_history_success(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import PipelineStage as S

        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)
        await pipeline.run(feeds)

        assert pipeline.history == [S.COLLECTING, S.BUDGETING, S.ASSEMBLING, S.SIMULATING, S.SUBMITTING, S.DONE]

    @pytest.mark.asyncio
    async def test_stage_history_failure_is_terminal(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import PipelineStage as S, SimulationError

        mock_rpc.set_simulation(err="BlockhashNotFound")
        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)

        with pytest.raises(SimulationError):
            await pipeline.run(feeds)

        assert pipeline.history == [S.COLLECTING, S.BUDGETING, S.ASSEMBLING, S.SIMULATING, S.FAILED]

    @pytest.mark.asyncio
    async def test_single_use(self, mock_rpc, mock_relay, payer, feeds):
        from feedcrank.execution.pipeline import CrankPipeline

        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)
        await pipeline.run(feeds)

        with pytest.raises(RuntimeError, match="single-use"):
            await pipeline.run(feeds)

    @pytest.mark.asyncio
    async def test_simulate_only(self, mock_rpc, mock_relay, payer, feeds):
        """Stops after the gate: no send, no signature."""
        from feedcrank.execution.pipeline import CrankPipeline
        from feedcrank.shared.execution.crank_result import PipelineStage as S

        pipeline = CrankPipeline(mock_rpc, mock_relay, payer)
        result = await pipeline.run(feeds, simulate_only=True)

        assert result.signature is None
        assert not result.submitted
        assert result.simulation_logs == ["Program log: ok"]
        assert mock_rpc.sent == []
        assert pipeline.history[-2:] == [S.SIMULATING, S.DONE]


class TestCrankConfig:
    """Policy object."""

    def test_defaults(self):
        from feedcrank.execution.pipeline import CrankConfig

        config = CrankConfig()

        assert config.plan_budget(3).unit_limit == 900_000
        assert config.num_signatures == 1
        assert config.concurrent_fetch is False

    def test_fixed_unit_limit(self):
        from feedcrank.execution.pipeline import CrankConfig

        config = CrankConfig(fixed_unit_limit=1_200_000)

        assert config.plan_budget(1).unit_limit == 1_200_000

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_units": 2_000_000},
            {"per_feed_units": -1},
            {"unit_price": -5},
            {"num_signatures": 0},
        ],
    )
    def test_invalid_policy(self, kwargs):
        from feedcrank.execution.pipeline import CrankConfig
        from feedcrank.shared.execution.crank_result import ConfigurationError

        with pytest.raises(ConfigurationError):
            CrankConfig(**kwargs)

    def test_from_settings(self):
        from types import SimpleNamespace
        from feedcrank.execution.pipeline import CrankConfig

        settings = SimpleNamespace(
            PER_FEED_CU="200_000",
            MIN_CU="100000",
            MAX_CU="1000000",
            CU_PRICE_MICRO_LAMPORTS="1",
            NUM_SIGNATURES="2",
            CONCURRENT_FETCH=True,
        )

        config = CrankConfig.from_settings(settings, num_signatures=None, max_tx_size=1000)

        assert config.per_feed_units == 200_000
        assert config.num_signatures == 2
        assert config.concurrent_fetch is True
        assert config.max_tx_size == 1000

    def test_from_settings_bad_integer(self):
        from types import SimpleNamespace
        from feedcrank.execution.pipeline import CrankConfig
        from feedcrank.shared.execution.crank_result import ConfigurationError

        settings = SimpleNamespace(
            PER_FEED_CU="lots",
            MIN_CU="1",
            MAX_CU="2",
            CU_PRICE_MICRO_LAMPORTS="1",
            NUM_SIGNATURES="1",
            CONCURRENT_FETCH=False,
        )

        with pytest.raises(ConfigurationError, match="CRANK_PER_FEED_CU"):
            CrankConfig.from_settings(settings)

    @pytest.mark.parametrize("limit", [0, 1_400_001, 2_000_000])
    def test_fixed_unit_limit_out_of_range(self, limit):
        from feedcrank.execution.pipeline import CrankConfig
        from feedcrank.shared.execution.crank_result import ConfigurationError

        with pytest.raises(ConfigurationError, match="fixed_unit_limit"):
            CrankConfig(fixed_unit_limit=limit)

    def test_fixed_unit_limit_at_ceiling(self):
        from feedcrank.execution.pipeline import CrankConfig

        assert CrankConfig(fixed_unit_limit=1_400_000).plan_budget(1).unit_limit == 1_400_000
