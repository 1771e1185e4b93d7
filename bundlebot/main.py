"""
Main entry point for the bundle execution engine.
"""
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Optional

from .bundle_manager import BundleManager
from .config import Settings, load_settings
from .fee_advisor import FeeAdvisor
from .mev_protection import MevProtection, MevProtectionConfig
from .scheduler import Scheduler
from .solana_client import SolanaClient
from .utils import get_terminal_colors, lamports_to_sol
from .wallet_manager import BalanceThresholds, WalletManager

colors = get_terminal_colors()
logger = logging.getLogger(__name__)

MODES = ('setup', 'balances', 'rebalance', 'monitor')


def setup_logging(level: str = "INFO", log_file: Optional[str] = "bundlebot.log"):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


@dataclass
class Components:
    solana: SolanaClient
    wallets: WalletManager
    bundles: BundleManager
    protection: MevProtection
    private_solana: Optional[SolanaClient] = None
    
    async def close(self):
        await self.solana.close()
        if self.private_solana is not None:
            await self.private_solana.close()


def build_components(settings: Settings) -> Components:
    """Wire clients, custody store and managers from settings."""
    solana = SolanaClient(
        settings.rpc_url,
        fallback_rpc_url=settings.fallback_rpc_url,
        commitment=settings.commitment,
        confirm_timeout=settings.confirm_timeout
    )
    wallets = WalletManager(
        solana,
        settings.master_wallet_path,
        settings.encryption_password,
        config_path=settings.wallet_config_path,
        funding_amount_sol=settings.funding_amount_sol,
        default_thresholds=BalanceThresholds(
            min=settings.min_balance_sol,
            target=settings.target_balance_sol,
            max=settings.max_balance_sol
        ),
        master_safety_margin_sol=settings.master_safety_margin_sol
    )
    fee_advisor = FeeAdvisor(solana, multiplier=settings.priority_fee_multiplier)
    bundles = BundleManager(solana, wallets, fee_advisor=fee_advisor, commitment=settings.commitment)
    
    private_solana = None
    protection_advisor = fee_advisor
    if settings.private_rpc_url:
        private_solana = SolanaClient(settings.private_rpc_url, commitment=settings.commitment)
        protection_advisor = FeeAdvisor(private_solana, multiplier=settings.priority_fee_multiplier)
    
    protection = MevProtection(
        bundles,
        fee_advisor=protection_advisor,
        config=MevProtectionConfig(
            obfuscation_enabled=settings.obfuscation_enabled,
            time_randomization_enabled=settings.time_randomization_enabled
        )
    )
    return Components(solana, wallets, bundles, protection, private_solana)


async def log_balances(wallets: WalletManager):
    balances = await wallets.balance_check()
    for index in sorted(balances):
        logger.info(
            f"Wallet {index}: {colors['CYAN']}{wallets.get_wallet_public_key(index)}{colors['RESET']} "
            f"{colors['GREEN']}{lamports_to_sol(balances[index]):.4f} SOL{colors['RESET']}"
        )
    return balances


async def run_monitor(components: Components, settings: Settings, stop_event: Optional[asyncio.Event] = None):
    """Run periodic rebalancing and balance checks until stop_event is set."""
    scheduler = Scheduler()
    scheduler.every('rebalance', settings.rebalance_interval_sec, components.wallets.rebalance_wallets)
    scheduler.every('balance-check', settings.balance_check_interval_sec, components.wallets.balance_check)
    scheduler.start_all()
    stop_event = stop_event or asyncio.Event()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop_all()


async def main(mode: str = 'setup', settings: Optional[Settings] = None):
    """Main function."""
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode}. Use one of: {', '.join(MODES)}")
    
    settings = settings or load_settings()
    setup_logging(settings.log_level, settings.log_file)
    settings.validate()
    logger.info(f"Starting bundle engine (mode: {colors['CYAN']}{mode}{colors['RESET']})")
    
    components = build_components(settings)
    try:
        await components.wallets.initialize_wallets(settings.wallet_count)
        logger.info(f"Master wallet: {colors['CYAN']}{components.wallets.get_master_public_key()}{colors['RESET']}")
        
        if mode == 'setup':
            info = await components.wallets.get_wallet_info()
            logger.info(f"Wallet setup complete: {colors['GREEN']}{len(info)}{colors['RESET']} wallets initialized")
        elif mode == 'balances':
            await log_balances(components.wallets)
        elif mode == 'rebalance':
            actions = await components.wallets.rebalance_wallets()
            done = sum(1 for a in actions if a.success)
            logger.info(f"Rebalance finished: {done}/{len(actions)} transfers succeeded")
        elif mode == 'monitor':
            await run_monitor(components, settings)
    finally:
        await components.close()
        logger.info("Bundle engine stopped")


if __name__ == '__main__':
    asyncio.run(main())
