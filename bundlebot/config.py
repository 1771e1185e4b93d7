"""
Runtime configuration from .env and config.json.

Environment variables take precedence over config.json, which takes
precedence over the defaults below.
"""
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Any

import dotenv

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
INSECURE_DEFAULT_PASSWORD = "default-password-change-me"
VALID_COMMITMENTS = ("processed", "confirmed", "finalized")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value and value.strip() else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value and value.strip() else default


@dataclass
class Settings:
    """All settings consumed by the engine."""
    rpc_url: str = "https://api.devnet.solana.com"
    fallback_rpc_url: Optional[str] = None
    private_rpc_url: Optional[str] = None
    commitment: str = "confirmed"
    confirm_timeout: float = 30.0
    
    encryption_password: str = ""
    master_wallet_path: str = str(PROJECT_ROOT / "keys" / "master-wallet.json")
    wallet_config_path: str = str(Path.home() / ".bundlebot" / "wallets.json")
    
    wallet_count: int = 20
    funding_amount_sol: float = 0.05
    min_balance_sol: float = 0.01
    target_balance_sol: float = 0.05
    max_balance_sol: float = 0.1
    master_safety_margin_sol: float = 0.01
    
    priority_fee_multiplier: float = 1.0
    obfuscation_enabled: bool = True
    time_randomization_enabled: bool = True
    
    rebalance_interval_sec: float = 300.0
    balance_check_interval_sec: float = 60.0
    
    log_level: str = "INFO"
    log_file: Optional[str] = "bundlebot.log"
    
    def validate(self, allow_insecure_password: bool = False):
        """
        Raises:
            ValueError: On inconsistent or missing settings
        """
        if self.commitment not in VALID_COMMITMENTS:
            raise ValueError(f"COMMITMENT must be one of {VALID_COMMITMENTS}, got '{self.commitment}'")
        if not self.encryption_password:
            raise ValueError("ENCRYPTION_PASSWORD must be set")
        if self.encryption_password == INSECURE_DEFAULT_PASSWORD and not allow_insecure_password:
            raise ValueError("ENCRYPTION_PASSWORD is the well-known default, choose a real secret")
        if self.wallet_count < 0:
            raise ValueError(f"WALLET_COUNT must be non-negative, got {self.wallet_count}")
        if self.funding_amount_sol <= 0:
            raise ValueError(f"WALLET_FUNDING_SOL must be positive, got {self.funding_amount_sol}")
        if not (0 <= self.min_balance_sol <= self.target_balance_sol <= self.max_balance_sol):
            raise ValueError(
                f"Balance thresholds must satisfy min <= target <= max "
                f"(min={self.min_balance_sol}, target={self.target_balance_sol}, max={self.max_balance_sol})"
            )
        if self.priority_fee_multiplier <= 0:
            raise ValueError(f"PRIORITY_FEE_MULTIPLIER must be positive, got {self.priority_fee_multiplier}")
        if self.rebalance_interval_sec <= 0 or self.balance_check_interval_sec <= 0:
            raise ValueError("Scheduler intervals must be positive")


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """Load config.json; a missing file yields an empty dict."""
    if not config_path.exists():
        logger.debug(f"config.json not found at {config_path}")
        return {}
    with open(config_path, 'r') as f:
        return json.load(f)


def load_settings(env_path: Optional[Path] = None, config_path: Optional[Path] = None) -> Settings:
    """Build Settings from .env, config.json and defaults."""
    env_path = env_path or PROJECT_ROOT / '.env'
    if env_path.exists():
        dotenv.load_dotenv(env_path)
    else:
        logger.warning(f".env file not found at {env_path}")
    
    config = load_config_file(config_path or PROJECT_ROOT / 'config.json')
    wallets_cfg = config.get('wallets', {})
    thresholds_cfg = wallets_cfg.get('thresholds', {})
    fees_cfg = config.get('fees', {})
    protection_cfg = config.get('protection', {})
    scheduler_cfg = config.get('scheduler', {})
    
    defaults = Settings()
    settings = Settings(
        rpc_url=os.getenv('SOLANA_RPC_URL') or config.get('rpc_url', defaults.rpc_url),
        fallback_rpc_url=os.getenv('SOLANA_FALLBACK_RPC_URL') or config.get('fallback_rpc_url'),
        private_rpc_url=os.getenv('PRIVATE_RPC_URL') or protection_cfg.get('private_rpc_url'),
        commitment=(os.getenv('COMMITMENT') or config.get('commitment', defaults.commitment)).lower(),
        confirm_timeout=_env_float('CONFIRM_TIMEOUT_SEC', config.get('confirm_timeout', defaults.confirm_timeout)),
        encryption_password=os.getenv('ENCRYPTION_PASSWORD', ''),
        master_wallet_path=os.getenv('MASTER_WALLET_PATH') or wallets_cfg.get('master_wallet_path', defaults.master_wallet_path),
        wallet_config_path=os.getenv('WALLET_CONFIG_PATH') or wallets_cfg.get('config_path', defaults.wallet_config_path),
        wallet_count=_env_int('WALLET_COUNT', wallets_cfg.get('count', defaults.wallet_count)),
        funding_amount_sol=_env_float('WALLET_FUNDING_SOL', wallets_cfg.get('funding_sol', defaults.funding_amount_sol)),
        min_balance_sol=_env_float('WALLET_MIN_SOL', thresholds_cfg.get('min', defaults.min_balance_sol)),
        target_balance_sol=_env_float('WALLET_TARGET_SOL', thresholds_cfg.get('target', defaults.target_balance_sol)),
        max_balance_sol=_env_float('WALLET_MAX_SOL', thresholds_cfg.get('max', defaults.max_balance_sol)),
        master_safety_margin_sol=_env_float('MASTER_SAFETY_MARGIN_SOL', wallets_cfg.get('master_safety_margin_sol', defaults.master_safety_margin_sol)),
        priority_fee_multiplier=_env_float('PRIORITY_FEE_MULTIPLIER', fees_cfg.get('multiplier', defaults.priority_fee_multiplier)),
        obfuscation_enabled=_env_bool('OBFUSCATION_ENABLED', protection_cfg.get('obfuscation_enabled', defaults.obfuscation_enabled)),
        time_randomization_enabled=_env_bool('TIME_RANDOMIZATION_ENABLED', protection_cfg.get('time_randomization_enabled', defaults.time_randomization_enabled)),
        rebalance_interval_sec=_env_float('REBALANCE_INTERVAL_SEC', scheduler_cfg.get('rebalance_interval_sec', defaults.rebalance_interval_sec)),
        balance_check_interval_sec=_env_float('BALANCE_CHECK_INTERVAL_SEC', scheduler_cfg.get('balance_check_interval_sec', defaults.balance_check_interval_sec)),
        log_level=(os.getenv('LOG_LEVEL') or config.get('log_level', defaults.log_level)).upper(),
        log_file=os.getenv('LOG_FILE', config.get('log_file', defaults.log_file)),
    )
    return settings
