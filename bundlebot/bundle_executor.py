"""
Bundle executor: submits a bundle's wallet transactions one at a time.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, List

from .bundle_builder import Bundle, BundleStatus
from .errors import InvalidBundleState
from .instruction_queue import InstructionQueue
from .solana_client import SolanaClient
from .utils import get_terminal_colors, short_key

colors = get_terminal_colors()
logger = logging.getLogger(__name__)


@dataclass
class TransactionResult:
    wallet_index: int
    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BundleExecutionResult:
    """
    Outcome of one execution attempt.
    
    `success` is True when at least one wallet transaction landed. Wallet
    transactions are not atomic with each other, so callers that need the
    whole bundle must check `fully_succeeded` or `failed_wallets`.
    """
    bundle_id: str
    start_time: float
    end_time: float = 0.0
    success: bool = False
    transaction_results: List[TransactionResult] = field(default_factory=list)
    error: Optional[str] = None
    
    @property
    def failed_wallets(self) -> List[int]:
        return [r.wallet_index for r in self.transaction_results if not r.success]
    
    @property
    def fully_succeeded(self) -> bool:
        return bool(self.transaction_results) and all(r.success for r in self.transaction_results)


class BundleExecutor:
    """Signs and submits bundle transactions sequentially."""
    
    def __init__(self, solana_client: SolanaClient, wallet_manager, queue: InstructionQueue, commitment: Optional[str] = None):
        self.solana = solana_client
        self.wallets = wallet_manager
        self.queue = queue
        self.commitment = commitment
    
    async def execute(self, bundle: Bundle) -> BundleExecutionResult:
        """
        Execute a pending bundle.
        
        Every wallet transaction is attempted even when earlier ones fail.
        Network and signing failures are recorded in the result, never raised.
        
        Raises:
            InvalidBundleState: Bundle is not pending
        """
        if bundle.status != BundleStatus.PENDING:
            raise InvalidBundleState(bundle.id, bundle.status.value, action="execute")
        
        # Flip before the first await so a second execute() is rejected
        bundle.status = BundleStatus.EXECUTING
        result = BundleExecutionResult(bundle_id=bundle.id, start_time=time.time())
        logger.info(
            f"{colors['CYAN']}Executing bundle {bundle.id}:{colors['RESET']} "
            f"{colors['GREEN']}{len(bundle.transactions)}{colors['RESET']} transactions"
        )
        
        try:
            await self._execute_transactions(bundle, result)
        except asyncio.CancelledError:
            # Outcome of the in-flight transaction is unknown; its instructions stay bundled
            bundle.status = BundleStatus.FAILED
            bundle.error_message = "Execution cancelled"
            logger.error(f"{colors['RED']}Bundle {bundle.id} execution cancelled{colors['RESET']}")
            raise
        
        result.success = any(r.success for r in result.transaction_results)
        if result.success:
            bundle.status = BundleStatus.COMPLETED
            bundle.executed_at = time.time()
            if result.failed_wallets:
                logger.warning(
                    f"Bundle {bundle.id} partially executed, failed wallets: {result.failed_wallets}"
                )
        else:
            bundle.status = BundleStatus.FAILED
            bundle.error_message = "All transactions failed"
            result.error = bundle.error_message
            logger.error(f"{colors['RED']}Bundle {bundle.id} failed: all transactions failed{colors['RESET']}")
        
        result.end_time = time.time()
        return result
    
    async def _execute_transactions(self, bundle: Bundle, result: BundleExecutionResult):
        for tx in bundle.transactions:
            wallet = self.wallets.get_wallet(tx.wallet_index)
            if wallet is None:
                # Never attempted: member instructions stay bundled
                logger.warning(f"{colors['RED']}Wallet {tx.wallet_index} not found, skipping transaction{colors['RESET']}")
                result.transaction_results.append(
                    TransactionResult(wallet_index=tx.wallet_index, success=False, error="Wallet not found")
                )
                continue
            
            try:
                signature = await self.solana.send_and_confirm(
                    tx.instructions,
                    payer=wallet,
                    commitment=self.commitment
                )
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error(f"{colors['RED']}Error executing transaction for wallet {tx.wallet_index}:{colors['RESET']} {error}")
                result.transaction_results.append(
                    TransactionResult(wallet_index=tx.wallet_index, success=False, error=error)
                )
                for instruction_id in tx.instruction_ids:
                    self.queue.mark_failed(instruction_id, error)
                continue
            
            result.transaction_results.append(
                TransactionResult(wallet_index=tx.wallet_index, success=True, signature=signature)
            )
            for instruction_id in tx.instruction_ids:
                self.queue.mark_executed(instruction_id)
            logger.info(
                f"Transaction executed for wallet {tx.wallet_index}: "
                f"{colors['CYAN']}{short_key(signature)}{colors['RESET']}"
            )
