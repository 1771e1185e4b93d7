"""
Tests for bundle_builder.py
"""
import pytest
from solders.compute_budget import set_compute_unit_limit

from bundlebot.bundle_builder import (
    BASELINE_PRIORITY_FEE_MICRO_LAMPORTS,
    BundleBuilder,
    BundleOptions,
    BundleStatus,
    PrivacyLevel,
)
from bundlebot.errors import EmptyQueue, NoValidTransactions
from bundlebot.instruction_queue import InstructionQueue, InstructionStatus
from bundlebot.instructions import FeeInstruction, fee_adjustment, is_fee_adjustment


class TestBundleOptions:
    
    def test_defaults(self):
        options = BundleOptions()
        assert options.privacy_level == PrivacyLevel.NONE
        assert options.group_by_target is True
        assert options.max_instructions_per_transaction == 10
    
    def test_accepts_string_privacy_level(self):
        assert BundleOptions(privacy_level="maximum").privacy_level == PrivacyLevel.MAXIMUM
    
    def test_rejects_zero_chunk_size(self):
        with pytest.raises(ValueError):
            BundleOptions(max_instructions_per_transaction=0)


class TestBundleBuilder:
    """Tests for BundleBuilder class."""
    
    @pytest.fixture
    def queue(self):
        return InstructionQueue()
    
    @pytest.fixture
    def builder(self, queue, mock_wallet_manager):
        return BundleBuilder(queue, mock_wallet_manager)
    
    def test_empty_queue(self, builder):
        with pytest.raises(EmptyQueue):
            builder.build()
    
    def test_orders_by_descending_priority(self, builder, queue, make_instruction):
        low, high, mid = make_instruction(1), make_instruction(5), make_instruction(3)
        queue.enqueue(0, low, priority=1)
        queue.enqueue(0, high, priority=5)
        queue.enqueue(0, mid, priority=3)
        
        bundle = builder.build()
        
        assert len(bundle.transactions) == 1
        instructions = [ix for ix in bundle.transactions[0].instructions if not is_fee_adjustment(ix)]
        assert instructions == [high, mid, low]
    
    def test_equal_priority_keeps_enqueue_order(self, builder, queue, make_instruction):
        payloads = [make_instruction(i) for i in range(4)]
        queue.enqueue_many(0, payloads, priority=1)
        
        bundle = builder.build()
        
        assert bundle.transactions[0].instructions == payloads
    
    def test_high_priority_chunk_gets_fee_first(self, builder, queue, make_instruction):
        queue.enqueue(0, make_instruction(), priority=3)
        
        bundle = builder.build()
        
        instructions = bundle.transactions[0].instructions
        assert instructions[0] == fee_adjustment(BASELINE_PRIORITY_FEE_MICRO_LAMPORTS)
        assert sum(1 for ix in instructions if is_fee_adjustment(ix)) == 1
    
    def test_low_priority_chunk_has_no_fee(self, builder, queue, make_instruction):
        queue.enqueue(0, make_instruction(), priority=2)
        
        bundle = builder.build()
        
        assert not any(is_fee_adjustment(ix) for ix in bundle.transactions[0].instructions)
    
    def test_chunks_by_max_instructions(self, builder, queue, make_instruction):
        queue.enqueue_many(0, [make_instruction(i) for i in range(25)])
        
        bundle = builder.build(BundleOptions(max_instructions_per_transaction=10))
        
        assert [len(tx.instructions) for tx in bundle.transactions] == [10, 10, 5]
        assert all(tx.wallet_index == 0 for tx in bundle.transactions)
    
    def test_one_transaction_per_wallet(self, builder, queue, make_instruction):
        queue.enqueue(1, make_instruction())
        queue.enqueue(0, make_instruction())
        queue.enqueue(1, make_instruction())
        
        bundle = builder.build()
        
        assert bundle.wallet_indices == [1, 0]
        assert [len(tx.instruction_ids) for tx in bundle.transactions] == [2, 1]
    
    def test_marks_instructions_bundled(self, builder, queue, make_instruction):
        ids = queue.enqueue_many(0, [make_instruction(i) for i in range(3)])
        
        bundle = builder.build()
        
        assert bundle.status == BundleStatus.PENDING
        assert sorted(bundle.instruction_ids) == sorted(ids)
        for instruction_id in ids:
            assert queue.get(instruction_id).status == InstructionStatus.BUNDLED
            assert queue.get(instruction_id).bundle_id == bundle.id
        assert queue.pending_count() == 0
    
    def test_skips_wallet_not_in_custody(self, builder, queue, make_instruction):
        kept = queue.enqueue(0, make_instruction())
        orphan = queue.enqueue(9, make_instruction())
        
        bundle = builder.build()
        
        assert bundle.instruction_ids == [kept]
        assert queue.get(orphan).status == InstructionStatus.PENDING
    
    def test_no_valid_transactions(self, builder, queue, make_instruction):
        orphan = queue.enqueue(9, make_instruction())
        
        with pytest.raises(NoValidTransactions):
            builder.build()
        assert queue.get(orphan).status == InstructionStatus.PENDING
    
    def test_second_build_sees_only_new_instructions(self, builder, queue, make_instruction):
        queue.enqueue(0, make_instruction())
        first = builder.build()
        late = queue.enqueue(0, make_instruction())
        
        second = builder.build()
        
        assert second.instruction_ids == [late]
        assert set(first.instruction_ids).isdisjoint(second.instruction_ids)
    
    def test_maximum_privacy_is_high_priority(self, builder, queue, make_instruction):
        queue.enqueue(0, make_instruction())
        assert builder.build(BundleOptions(privacy_level=PrivacyLevel.MAXIMUM)).has_high_priority()
    
    def test_caller_fee_suppresses_baseline_fee(self, builder, queue, make_instruction):
        """A chunk never carries two compute-unit prices."""
        queue.enqueue(0, FeeInstruction(30_000), priority=3)
        queue.enqueue(0, make_instruction(), priority=3)
        
        bundle = builder.build()
        
        fees = [ix for ix in bundle.transactions[0].instructions if is_fee_adjustment(ix)]
        assert fees == [fee_adjustment(30_000)]
    
    def test_compute_unit_limit_still_gets_baseline_fee(self, builder, queue):
        queue.enqueue(0, set_compute_unit_limit(400_000), priority=3)
        
        bundle = builder.build()
        
        assert bundle.transactions[0].instructions == [
            fee_adjustment(BASELINE_PRIORITY_FEE_MICRO_LAMPORTS),
            set_compute_unit_limit(400_000),
        ]
