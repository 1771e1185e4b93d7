"""
Bundle model and builder.

A bundle is a point-in-time snapshot of the pending queue, partitioned into
per-wallet transactions.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List

from solders.instruction import Instruction

from .errors import EmptyQueue, NoValidTransactions
from .instruction_queue import InstructionQueue, QueuedInstruction
from .instructions import compile_payload, fee_adjustment, is_fee_adjustment
from .utils import get_terminal_colors

colors = get_terminal_colors()
logger = logging.getLogger(__name__)

DEFAULT_MAX_INSTRUCTIONS_PER_TRANSACTION = 10
# Chunks holding any instruction above this priority get the baseline fee
HIGH_PRIORITY_THRESHOLD = 2
BASELINE_PRIORITY_FEE_MICRO_LAMPORTS = 20_000


class PrivacyLevel(str, Enum):
    NONE = "none"
    BASIC = "basic"
    MAXIMUM = "maximum"


class BundleStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BundleOptions:
    privacy_level: PrivacyLevel = PrivacyLevel.NONE
    group_by_target: bool = True
    max_instructions_per_transaction: int = DEFAULT_MAX_INSTRUCTIONS_PER_TRANSACTION
    
    def __post_init__(self):
        self.privacy_level = PrivacyLevel(self.privacy_level)
        if self.max_instructions_per_transaction < 1:
            raise ValueError(
                f"max_instructions_per_transaction must be >= 1, got {self.max_instructions_per_transaction}"
            )


@dataclass
class WalletTransaction:
    """Instructions submitted together for one wallet under one confirmation."""
    wallet_index: int
    instructions: List[Instruction] = field(default_factory=list)
    instruction_ids: List[str] = field(default_factory=list)


@dataclass
class Bundle:
    id: str
    options: BundleOptions
    transactions: List[WalletTransaction] = field(default_factory=list)
    status: BundleStatus = BundleStatus.PENDING
    created_at: float = field(default_factory=time.time)
    executed_at: Optional[float] = None
    error_message: Optional[str] = None
    
    def add_transaction(self, transaction: WalletTransaction):
        self.transactions.append(transaction)
    
    def has_high_priority(self) -> bool:
        return self.options.privacy_level == PrivacyLevel.MAXIMUM
    
    @property
    def instruction_ids(self) -> List[str]:
        return [iid for tx in self.transactions for iid in tx.instruction_ids]
    
    @property
    def wallet_indices(self) -> List[int]:
        seen: List[int] = []
        for tx in self.transactions:
            if tx.wallet_index not in seen:
                seen.append(tx.wallet_index)
        return seen


class BundleBuilder:
    """Groups pending instructions by wallet and chunks them into transactions."""
    
    def __init__(self, queue: InstructionQueue, wallet_manager):
        self.queue = queue
        self.wallets = wallet_manager
    
    def build(self, options: Optional[BundleOptions] = None) -> Bundle:
        """
        Build a bundle from every currently pending instruction.
        
        Not safe to run concurrently with itself on the same queue; callers
        serialise builds (BundleManager holds a lock).
        
        Raises:
            EmptyQueue: No pending instructions
            NoValidTransactions: No instruction targets a wallet held in custody
        """
        options = options or BundleOptions()
        pending = self.queue.pending()
        if not pending:
            raise EmptyQueue()
        
        bundle = Bundle(id=str(uuid.uuid4()), options=options)
        
        # dicts keep first-seen order, so wallets appear in enqueue order
        by_wallet: Dict[int, List[QueuedInstruction]] = {}
        for instruction in pending:
            by_wallet.setdefault(instruction.wallet_index, []).append(instruction)
        
        chunk_size = options.max_instructions_per_transaction
        for wallet_index, instructions in by_wallet.items():
            if self.wallets.get_wallet(wallet_index) is None:
                logger.warning(
                    f"Skipping {len(instructions)} instruction(s) for wallet {wallet_index}: not in custody"
                )
                continue
            
            # stable: equal priorities keep enqueue order
            ordered = sorted(instructions, key=lambda i: -i.priority)
            
            for start in range(0, len(ordered), chunk_size):
                chunk = ordered[start:start + chunk_size]
                tx = WalletTransaction(wallet_index=wallet_index)
                
                for instruction in chunk:
                    tx.instructions.append(compile_payload(instruction.payload))
                    tx.instruction_ids.append(instruction.id)
                
                # The runtime rejects a second compute-unit price in one transaction
                has_fee = any(is_fee_adjustment(ix) for ix in tx.instructions)
                if not has_fee and any(i.priority > HIGH_PRIORITY_THRESHOLD for i in chunk):
                    tx.instructions.insert(0, fee_adjustment(BASELINE_PRIORITY_FEE_MICRO_LAMPORTS))
                
                bundle.add_transaction(tx)
        
        if not bundle.transactions:
            raise NoValidTransactions()
        
        for instruction_id in bundle.instruction_ids:
            self.queue.mark_bundled(instruction_id, bundle.id)
        
        logger.info(
            f"Created bundle {colors['CYAN']}{bundle.id}{colors['RESET']} with "
            f"{colors['GREEN']}{len(bundle.transactions)}{colors['RESET']} transactions"
        )
        return bundle
