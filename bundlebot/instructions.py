"""
Instruction payload types.

Three kinds of payload can sit in the queue:

- ``solders.instruction.Instruction``: an opaque caller operation that may
  mutate ledger state.
- ``InertInstruction``: a decoy. It has no account list at all, so the compiled
  instruction references no accounts and cannot write to any of them; it only
  consumes compute budget.
- ``FeeInstruction``: a compute-unit price adjustment.
"""
import os
from dataclasses import dataclass
from typing import Union

from solders.compute_budget import ID as COMPUTE_BUDGET_PROGRAM_ID
from solders.compute_budget import set_compute_unit_price
from solders.instruction import Instruction
from solders.pubkey import Pubkey

# SPL Memo v2: logs its data, touches no account it is not handed
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")

DECOY_PAYLOAD_BYTES = 16
# ComputeBudgetInstruction::SetComputeUnitPrice
SET_COMPUTE_UNIT_PRICE_DISCRIMINATOR = 3


@dataclass(frozen=True)
class InertInstruction:
    """Decoy instruction carrying random bytes and no accounts."""
    memo: bytes
    
    @classmethod
    def random(cls, size: int = DECOY_PAYLOAD_BYTES) -> "InertInstruction":
        return cls(memo=os.urandom(size))
    
    def to_instruction(self) -> Instruction:
        # Memo requires UTF-8 data; hex keeps the random payload valid
        return Instruction(MEMO_PROGRAM_ID, self.memo.hex().encode("ascii"), [])


@dataclass(frozen=True)
class FeeInstruction:
    """Compute-unit price (priority fee) in micro-lamports per CU."""
    micro_lamports: int
    
    def __post_init__(self):
        if self.micro_lamports < 0:
            raise ValueError(f"micro_lamports must be non-negative, got {self.micro_lamports}")
    
    def to_instruction(self) -> Instruction:
        return set_compute_unit_price(self.micro_lamports)


Payload = Union[Instruction, InertInstruction, FeeInstruction]


def compile_payload(payload: Payload) -> Instruction:
    """Turn a queued payload into the instruction placed in a transaction."""
    if isinstance(payload, (InertInstruction, FeeInstruction)):
        return payload.to_instruction()
    if isinstance(payload, Instruction):
        return payload
    raise TypeError(f"Unsupported instruction payload: {type(payload).__name__}")


def is_fee_adjustment(instruction: Instruction) -> bool:
    """True for SetComputeUnitPrice only; other ComputeBudget operations are caller instructions."""
    data = bytes(instruction.data)
    return (
        instruction.program_id == COMPUTE_BUDGET_PROGRAM_ID
        and len(data) > 0
        and data[0] == SET_COMPUTE_UNIT_PRICE_DISCRIMINATOR
    )


def fee_adjustment(micro_lamports: int) -> Instruction:
    return FeeInstruction(micro_lamports).to_instruction()
