"""
Instruction queue: every submitted operation with its target wallet, priority
and lifecycle state.

Instructions are kept for audit after execution; nothing is evicted.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, List, Sequence

from .instructions import Payload

logger = logging.getLogger(__name__)


class InstructionStatus(str, Enum):
    PENDING = "pending"
    BUNDLED = "bundled"
    EXECUTED = "executed"
    FAILED = "failed"


@dataclass
class QueuedInstruction:
    """Instruction with scheduling metadata."""
    id: str
    wallet_index: int
    payload: Payload
    priority: int
    added_at: float
    status: InstructionStatus = InstructionStatus.PENDING
    bundle_id: Optional[str] = None
    executed_at: Optional[float] = None
    error: Optional[str] = None


class InstructionQueue:
    """
    Indexed container of queued instructions (id -> record, insertion ordered).
    
    Mutators contain no awaits, so each call is atomic on the event loop.
    """
    
    def __init__(self):
        self._instructions: Dict[str, QueuedInstruction] = {}
    
    def enqueue(self, wallet_index: int, payload: Payload, priority: int = 1) -> str:
        """Add one instruction in `pending` state and return its id."""
        instruction_id = str(uuid.uuid4())
        self._instructions[instruction_id] = QueuedInstruction(
            id=instruction_id,
            wallet_index=wallet_index,
            payload=payload,
            priority=int(priority),
            added_at=time.time(),
        )
        logger.debug(f"Added instruction {instruction_id} for wallet {wallet_index} with priority {priority}")
        return instruction_id
    
    def enqueue_many(self, wallet_index: int, payloads: Sequence[Payload], priority: int = 1) -> List[str]:
        """Add a sequence as one unit: consecutive, same wallet and priority."""
        return [self.enqueue(wallet_index, payload, priority) for payload in payloads]
    
    def get(self, instruction_id: str) -> Optional[QueuedInstruction]:
        return self._instructions.get(instruction_id)
    
    def all(self) -> List[QueuedInstruction]:
        return list(self._instructions.values())
    
    def pending(self) -> List[QueuedInstruction]:
        """Pending instructions in enqueue order."""
        return [i for i in self._instructions.values() if i.status == InstructionStatus.PENDING]
    
    def pending_count(self) -> int:
        return sum(1 for i in self._instructions.values() if i.status == InstructionStatus.PENDING)
    
    def pending_counts_by_wallet(self) -> Dict[int, int]:
        counts: Dict[int, int] = {}
        for instruction in self.pending():
            counts[instruction.wallet_index] = counts.get(instruction.wallet_index, 0) + 1
        return counts
    
    def for_bundle(self, bundle_id: str) -> List[QueuedInstruction]:
        return [i for i in self._instructions.values() if i.bundle_id == bundle_id]
    
    def mark_bundled(self, instruction_id: str, bundle_id: str):
        instruction = self._instructions[instruction_id]
        if instruction.status != InstructionStatus.PENDING:
            raise ValueError(
                f"Instruction {instruction_id} is {instruction.status.value}, only pending instructions can be bundled"
            )
        instruction.status = InstructionStatus.BUNDLED
        instruction.bundle_id = bundle_id
    
    def mark_executed(self, instruction_id: str):
        instruction = self._instructions[instruction_id]
        instruction.status = InstructionStatus.EXECUTED
        instruction.executed_at = time.time()
        instruction.error = None
    
    def mark_failed(self, instruction_id: str, error: str):
        instruction = self._instructions[instruction_id]
        instruction.status = InstructionStatus.FAILED
        instruction.error = error
    
    def __len__(self) -> int:
        return len(self._instructions)
