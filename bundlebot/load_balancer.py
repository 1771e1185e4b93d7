"""
Wallet selection for new instructions.
"""
import logging
from typing import Dict, Mapping

from .instruction_queue import InstructionQueue

logger = logging.getLogger(__name__)


def optimal_wallet(pending_counts: Mapping[int, int], balances: Mapping[int, int]) -> int:
    """
    Pick the least loaded, best funded wallet.
    
    Ranks the wallets present in `balances` by ascending pending instruction
    count, then by descending balance (index breaks remaining ties).
    
    Returns:
        Wallet index, or 0 when no balances are known
    """
    if not balances:
        return 0
    return min(
        balances,
        key=lambda index: (pending_counts.get(index, 0), -balances[index], index)
    )


class WalletLoadBalancer:
    """Chooses a target wallet from the live queue and current balances."""
    
    def __init__(self, queue: InstructionQueue, wallet_manager):
        self.queue = queue
        self.wallets = wallet_manager
    
    async def get_optimal_wallet(self) -> int:
        balances: Dict[int, int] = await self.wallets.balance_check()
        index = optimal_wallet(self.queue.pending_counts_by_wallet(), balances)
        logger.debug(f"Optimal wallet: {index}")
        return index
