"""
Bundle execution manager: owns the instruction queue, bundles and execution
results, and exposes the caller-facing scheduling operations.
"""
import asyncio
import logging
from typing import Optional, Dict, List, Sequence

from .bundle_builder import Bundle, BundleBuilder, BundleOptions
from .bundle_executor import BundleExecutionResult, BundleExecutor
from .errors import BundleNotFound, InvalidWallet
from .fee_advisor import FeeAdvisor, PriorityLevel
from .instruction_queue import InstructionQueue, QueuedInstruction
from .instructions import Payload
from .load_balancer import WalletLoadBalancer
from .solana_client import SolanaClient

logger = logging.getLogger(__name__)


class BundleManager:
    """Caller-facing facade over queue, builder, executor and fee advisor."""
    
    def __init__(
        self,
        solana_client: SolanaClient,
        wallet_manager,
        fee_advisor: Optional[FeeAdvisor] = None,
        commitment: Optional[str] = None
    ):
        self.solana = solana_client
        self.wallets = wallet_manager
        self.queue = InstructionQueue()
        self.fee_advisor = fee_advisor or FeeAdvisor(solana_client)
        self.builder = BundleBuilder(self.queue, wallet_manager)
        self.executor = BundleExecutor(solana_client, wallet_manager, self.queue, commitment=commitment)
        self.load_balancer = WalletLoadBalancer(self.queue, wallet_manager)
        self._bundles: Dict[str, Bundle] = {}
        self._results: Dict[str, BundleExecutionResult] = {}
        # Serialises build() so two bundles never race for the same instructions
        self._build_lock = asyncio.Lock()
    
    def _validate_wallet(self, wallet_index: int):
        if self.wallets.get_wallet(wallet_index) is None:
            raise InvalidWallet(wallet_index)
    
    def _get_bundle(self, bundle_id: str) -> Bundle:
        bundle = self._bundles.get(bundle_id)
        if bundle is None:
            raise BundleNotFound(bundle_id)
        return bundle
    
    def add_instruction(self, wallet_index: int, payload: Payload, priority: int = 1) -> str:
        """
        Queue one instruction for a wallet.
        
        Raises:
            InvalidWallet: Wallet is not held in custody
        """
        self._validate_wallet(wallet_index)
        instruction_id = self.queue.enqueue(wallet_index, payload, priority)
        logger.info(f"Added instruction {instruction_id} for wallet {wallet_index} with priority {priority}")
        return instruction_id
    
    def add_instructions(self, wallet_index: int, payloads: Sequence[Payload], priority: int = 1) -> List[str]:
        """Queue a sequence of instructions as one unit."""
        self._validate_wallet(wallet_index)
        ids = self.queue.enqueue_many(wallet_index, payloads, priority)
        logger.info(f"Added {len(ids)} instructions for wallet {wallet_index} with priority {priority}")
        return ids
    
    async def create_bundle(self, options: Optional[BundleOptions] = None) -> str:
        """
        Snapshot the pending queue into a new bundle.
        
        Raises:
            EmptyQueue: Nothing is pending
            NoValidTransactions: No transaction could be built
        """
        async with self._build_lock:
            bundle = self.builder.build(options)
            self._bundles[bundle.id] = bundle
        return bundle.id
    
    async def execute_bundle(self, bundle_id: str) -> BundleExecutionResult:
        """
        Execute a pending bundle and store its result (replacing any previous one).
        
        Raises:
            BundleNotFound: Unknown bundle id
            InvalidBundleState: Bundle is not pending
        """
        bundle = self._get_bundle(bundle_id)
        result = await self.executor.execute(bundle)
        self._results[bundle_id] = result
        return result
    
    def set_execution_priority(self, bundle_id: str, level: PriorityLevel):
        self.fee_advisor.set_execution_priority(self._get_bundle(bundle_id), level)
    
    def get_bundle(self, bundle_id: str) -> Optional[Bundle]:
        return self._bundles.get(bundle_id)
    
    def get_all_bundles(self) -> List[Bundle]:
        return list(self._bundles.values())
    
    def get_bundle_result(self, bundle_id: str) -> Optional[BundleExecutionResult]:
        return self._results.get(bundle_id)
    
    def get_instruction(self, instruction_id: str) -> Optional[QueuedInstruction]:
        return self.queue.get(instruction_id)
    
    def get_pending_instructions_count(self) -> int:
        return self.queue.pending_count()
    
    async def get_optimal_wallet(self) -> int:
        return await self.load_balancer.get_optimal_wallet()
