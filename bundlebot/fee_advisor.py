"""
Priority fee advisor.

Recommends a compute-unit price from recent network prioritization fees and
applies fixed per-level fees to pending bundles.
"""
import logging
import math
from enum import Enum
from typing import List

from .bundle_builder import Bundle, BundleStatus
from .errors import InvalidBundleState
from .instructions import fee_adjustment, is_fee_adjustment
from .solana_client import SolanaClient
from .utils import get_terminal_colors

colors = get_terminal_colors()
logger = logging.getLogger(__name__)

BASELINE_FEE_MICRO_LAMPORTS = 10_000
FALLBACK_FEE_MICRO_LAMPORTS = 25_000
FEE_PERCENTILE = 0.8


class PriorityLevel(str, Enum):
    """Execution priority with its fixed compute-unit price."""
    NORMAL = "normal"
    HIGH = "high"
    MAXIMUM = "maximum"
    
    @property
    def micro_lamports(self) -> int:
        return _LEVEL_FEES[self]
    
    @classmethod
    def from_priority(cls, priority: int) -> "PriorityLevel":
        """Map a numeric instruction priority (1-5) to a level."""
        if priority >= 5:
            return cls.MAXIMUM
        if priority >= 3:
            return cls.HIGH
        return cls.NORMAL


_LEVEL_FEES = {
    PriorityLevel.NORMAL: 10_000,
    PriorityLevel.HIGH: 25_000,
    PriorityLevel.MAXIMUM: 50_000,
}


def percentile_fee(samples: List[int], baseline: int = BASELINE_FEE_MICRO_LAMPORTS) -> int:
    """
    Nearest-rank 80th percentile of fee samples.
    
    Falls back to the median, then to `baseline`, when the selected value is
    zero (no fee paid in that slot) or the sample list is empty.
    """
    if not samples:
        return baseline
    ordered = sorted(samples)
    rank = max(1, math.ceil(FEE_PERCENTILE * len(ordered)))
    p80 = ordered[rank - 1]
    median = ordered[len(ordered) // 2]
    return p80 or median or baseline


class FeeAdvisor:
    """Computes recommended priority fees and applies priority levels."""
    
    def __init__(self, solana_client: SolanaClient, multiplier: float = 1.0):
        if multiplier <= 0:
            raise ValueError(f"Fee multiplier must be positive, got {multiplier}")
        self.solana = solana_client
        self.multiplier = multiplier
    
    async def recommend(self) -> int:
        """
        Recommended compute-unit price in micro-lamports.
        
        Never raises: a failed network query yields the fixed fallback fee.
        """
        try:
            samples = await self.solana.get_recent_prioritization_fees()
        except Exception as e:
            logger.error(f"Error calculating optimal priority fee: {e}")
            return FALLBACK_FEE_MICRO_LAMPORTS
        
        if not samples:
            fee = int(BASELINE_FEE_MICRO_LAMPORTS * self.multiplier)
            logger.debug(f"No prioritization fee samples, using baseline {fee}")
            return fee
        
        fee = int(percentile_fee(samples) * self.multiplier)
        logger.debug(
            f"Recommended priority fee: {colors['YELLOW']}{fee}{colors['RESET']} micro-lamports/CU "
            f"from {len(samples)} samples"
        )
        return fee
    
    def set_execution_priority(self, bundle: Bundle, level: PriorityLevel):
        """
        Replace every fee-adjustment instruction in a pending bundle with the
        fixed fee for `level`.
        
        Raises:
            InvalidBundleState: Bundle is not pending
        """
        level = PriorityLevel(level)
        if bundle.status != BundleStatus.PENDING:
            raise InvalidBundleState(bundle.id, bundle.status.value, action="modify priority of")
        
        for tx in bundle.transactions:
            tx.instructions = [ix for ix in tx.instructions if not is_fee_adjustment(ix)]
            tx.instructions.insert(0, fee_adjustment(level.micro_lamports))
        
        logger.info(
            f"Set bundle {colors['CYAN']}{bundle.id}{colors['RESET']} priority to "
            f"{colors['YELLOW']}{level.value}{colors['RESET']}"
        )
