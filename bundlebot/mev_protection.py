"""
Front-running countermeasures applied before instructions reach the queue.

1. Priority fee - recommended compute-unit price prepended to the sequence
2. Obfuscation - inert decoy instructions around the real ones
3. Time randomisation - random pause between bundle creation and hand-back
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Optional, List, Sequence

from .bundle_builder import BundleOptions, PrivacyLevel
from .fee_advisor import FeeAdvisor, PriorityLevel
from .instructions import FeeInstruction, InertInstruction, Payload

logger = logging.getLogger(__name__)

DECOY_PREFIX_RANGE = (1, 3)
DECOY_SUFFIX_RANGE = (1, 2)
DELAY_RANGE_SECONDS = (0.5, 2.5)

_rng = random.SystemRandom()


@dataclass
class MevProtectionConfig:
    obfuscation_enabled: bool = True
    time_randomization_enabled: bool = True


def create_decoy_instructions(minimum: int, maximum: int) -> List[InertInstruction]:
    """Between `minimum` and `maximum` (inclusive) decoys with random payloads."""
    count = _rng.randint(minimum, maximum)
    return [InertInstruction.random() for _ in range(count)]


class MevProtection:
    """Wraps caller instructions, queues them and builds a private bundle."""
    
    def __init__(self, bundle_manager, fee_advisor: Optional[FeeAdvisor] = None, config: Optional[MevProtectionConfig] = None):
        self.bundle_manager = bundle_manager
        # A dedicated advisor lets fee sampling go through a private RPC endpoint
        self.fee_advisor = fee_advisor or bundle_manager.fee_advisor
        self.config = config or MevProtectionConfig()
    
    async def apply_protection_strategies(self, instructions: Sequence[Payload]) -> List[Payload]:
        protected: List[Payload] = list(instructions)
        
        priority_fee = await self.fee_advisor.recommend()
        protected.insert(0, FeeInstruction(priority_fee))
        
        if self.config.obfuscation_enabled:
            protected = (
                create_decoy_instructions(*DECOY_PREFIX_RANGE)
                + protected
                + create_decoy_instructions(*DECOY_SUFFIX_RANGE)
            )
        return protected
    
    async def protect_transaction(self, wallet_index: int, instructions: Sequence[Payload], priority: int = 3) -> str:
        """
        Protect, queue and bundle a caller's instructions.
        
        The bundle is returned pending; the caller decides when to execute it.
        
        Returns:
            Bundle id
        """
        protected = await self.apply_protection_strategies(instructions)
        
        self.bundle_manager.add_instructions(wallet_index, protected, priority)
        
        bundle_id = await self.bundle_manager.create_bundle(BundleOptions(
            privacy_level=PrivacyLevel.MAXIMUM,
            group_by_target=False
        ))
        
        self.bundle_manager.set_execution_priority(bundle_id, PriorityLevel.from_priority(priority))
        
        if self.config.time_randomization_enabled:
            delay = _rng.uniform(*DELAY_RANGE_SECONDS)
            logger.debug(f"Delaying bundle {bundle_id} hand-back by {delay:.2f}s")
            await asyncio.sleep(delay)
        
        return bundle_id
