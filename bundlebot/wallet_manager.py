"""
Wallet custody: encrypted storage, funding and rebalancing of the wallet pool.

Holds N indexed bot wallets plus one master wallet. Every private key is
encrypted at rest; only public keys ever reach the logs.
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .crypto import KeyCipher
from .errors import (
    InsufficientFunds,
    InvalidWallet,
    KeyDecryptionError,
    NetworkFailure,
    PersistenceFailure,
)
from .solana_client import SolanaClient
from .utils import get_terminal_colors, lamports_to_sol, sol_to_lamports, short_key

colors = get_terminal_colors()
logger = logging.getLogger(__name__)


@dataclass
class BalanceThresholds:
    """Per-wallet balance bounds in SOL."""
    min: float = 0.01
    target: float = 0.05
    max: float = 0.1
    
    def __post_init__(self):
        if not (0 <= self.min <= self.target <= self.max):
            raise ValueError(
                f"Balance thresholds must satisfy 0 <= min <= target <= max, "
                f"got min={self.min}, target={self.target}, max={self.max}"
            )
    
    def to_dict(self) -> Dict[str, float]:
        return {"min": self.min, "target": self.target, "max": self.max}


@dataclass
class WalletRecord:
    """Persisted wallet entry. The private key is only ever held encrypted."""
    index: int
    label: str
    public_key: str
    encrypted_private_key: str
    balance_thresholds: BalanceThresholds = field(default_factory=BalanceThresholds)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "label": self.label,
            "publicKey": self.public_key,
            "encryptedPrivateKey": self.encrypted_private_key,
            "balanceThresholds": self.balance_thresholds.to_dict(),
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WalletRecord":
        thresholds = data.get("balanceThresholds") or {}
        return cls(
            index=int(data["index"]),
            label=data.get("label") or f"Wallet {data['index']}",
            public_key=data["publicKey"],
            encrypted_private_key=data["encryptedPrivateKey"],
            balance_thresholds=BalanceThresholds(**thresholds),
        )


@dataclass
class RebalanceAction:
    """Outcome of one rebalance decision for a wallet."""
    wallet_index: int
    direction: str  # 'top_up', 'return', 'skipped'
    lamports: int
    signature: Optional[str] = None
    error: Optional[str] = None
    
    @property
    def success(self) -> bool:
        return self.signature is not None


class WalletManager:
    """Custody store for the wallet pool and the master wallet."""
    
    def __init__(
        self,
        solana_client: SolanaClient,
        master_wallet_path: str,
        encryption_password: str,
        config_path: Optional[str] = None,
        funding_amount_sol: float = 0.05,
        default_thresholds: Optional[BalanceThresholds] = None,
        master_safety_margin_sol: float = 0.01,
        cipher: Optional[KeyCipher] = None
    ):
        self.solana = solana_client
        self.master_wallet_path = Path(master_wallet_path)
        self.config_path = Path(config_path) if config_path else Path.home() / ".bundlebot" / "wallets.json"
        self.funding_lamports = sol_to_lamports(funding_amount_sol)
        self.default_thresholds = default_thresholds or BalanceThresholds()
        self.master_safety_margin_lamports = sol_to_lamports(master_safety_margin_sol)
        # Derived once per manager
        self._cipher = cipher or KeyCipher.from_password(encryption_password)
        
        self._wallets: Dict[int, Keypair] = {}
        self._records: Dict[int, WalletRecord] = {}
        
        self.master_wallet = self._load_or_create_master_wallet()
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._load_wallet_configs()
    
    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    
    def _write_private_file(self, path: Path, content: str):
        """Write a file readable only by the owner, replacing it atomically."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w") as f:
            f.write(content)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
    
    def _load_or_create_master_wallet(self) -> Keypair:
        if self.master_wallet_path.exists():
            try:
                encrypted = json.loads(self.master_wallet_path.read_text())
            except (OSError, ValueError) as e:
                logger.error(f"Failed to read master wallet file {self.master_wallet_path}: {e}")
                raise PersistenceFailure(f"Cannot read master wallet file: {e}") from e
            # Never fall back to a fresh master when the stored one does not decrypt
            secret = self._cipher.decrypt(encrypted)
            master = Keypair.from_bytes(secret)
            logger.info(f"Master wallet loaded: {colors['CYAN']}{master.pubkey()}{colors['RESET']}")
            return master
        
        master = Keypair()
        self.store_master_wallet(master)
        logger.warning(f"Created new master wallet: {colors['CYAN']}{master.pubkey()}{colors['RESET']}")
        logger.warning("YOU MUST FUND THIS WALLET BEFORE USING THE SYSTEM")
        return master
    
    def store_master_wallet(self, keypair: Keypair):
        """Persist the master keypair encrypted at master_wallet_path."""
        try:
            self._write_private_file(
                self.master_wallet_path,
                json.dumps(self._cipher.encrypt(bytes(keypair)))
            )
        except OSError as e:
            logger.error(f"Error saving master wallet: {e}")
            raise PersistenceFailure(f"Cannot save master wallet: {e}") from e
    
    def _load_wallet_configs(self):
        if not self.config_path.exists():
            logger.info(f"No wallet configuration at {self.config_path}, starting with an empty pool")
            return
        
        try:
            data = json.loads(self.config_path.read_text())
            records = [WalletRecord.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError, TypeError) as e:
            # A corrupt store is never treated as empty
            logger.error(f"Error loading wallet configurations: {e}")
            raise PersistenceFailure(f"Cannot load wallet configuration {self.config_path}: {e}") from e
        
        for record in records:
            self._records[record.index] = record
        logger.info(f"Loaded {colors['GREEN']}{len(self._records)}{colors['RESET']} wallet configurations")
    
    def _save_wallet_configs(self):
        data = [self._records[i].to_dict() for i in sorted(self._records)]
        try:
            self._write_private_file(self.config_path, json.dumps(data, indent=2))
        except OSError as e:
            logger.error(f"Error saving wallet configurations: {e}")
            raise PersistenceFailure(f"Cannot save wallet configuration {self.config_path}: {e}") from e
        logger.debug("Wallet configurations saved")
    
    # ------------------------------------------------------------------
    # Pool lifecycle
    # ------------------------------------------------------------------
    
    async def initialize_wallets(self, count: int = 20):
        """
        Ensure `count` wallets exist and load them into memory.
        
        Missing indices are generated, funded from the master wallet and
        persisted one at a time. Existing wallets are never recreated.
        Afterwards only indices below `count` are loaded.
        
        Raises:
            NetworkFailure: If funding a new wallet fails
            PersistenceFailure: If the configuration cannot be saved
        """
        if count < 0:
            raise ValueError(f"Wallet count must be non-negative, got {count}")
        
        missing = [i for i in range(count) if i not in self._records]
        logger.info(
            f"Initializing wallets: {colors['GREEN']}{count - len(missing)}{colors['RESET']} existing, "
            f"{colors['GREEN']}{len(missing)}{colors['RESET']} new needed"
        )
        
        for index in missing:
            await self._create_new_wallet(index)
        
        for index in range(count):
            if index in self._wallets:
                continue
            record = self._records.get(index)
            if record is None:
                continue
            try:
                secret = self._cipher.decrypt(record.encrypted_private_key)
                keypair = Keypair.from_bytes(secret)
            except (KeyDecryptionError, ValueError) as e:
                logger.error(f"{colors['RED']}Refusing to load wallet {index}:{colors['RESET']} {e}")
                continue
            if str(keypair.pubkey()) != record.public_key:
                logger.error(f"{colors['RED']}Refusing to load wallet {index}:{colors['RESET']} key does not match stored public key")
                continue
            self._wallets[index] = keypair
        
        # Records above `count` stay persisted but are not signing handles
        for index in [i for i in self._wallets if i >= count]:
            del self._wallets[index]
        
        logger.info(f"{colors['GREEN']}{len(self._wallets)}{colors['RESET']} wallets loaded into memory")
    
    async def _create_new_wallet(self, index: int):
        wallet = Keypair()
        try:
            await self.solana.transfer(self.master_wallet, wallet.pubkey(), self.funding_lamports)
        except Exception as e:
            logger.error(f"{colors['RED']}Error creating wallet {index}:{colors['RESET']} {e}")
            if isinstance(e, NetworkFailure):
                raise
            raise NetworkFailure(f"Funding wallet {index} failed: {e}") from e
        
        record = WalletRecord(
            index=index,
            label=f"Bot Wallet {index}",
            public_key=str(wallet.pubkey()),
            encrypted_private_key=self._cipher.encrypt(bytes(wallet)),
            balance_thresholds=BalanceThresholds(**self.default_thresholds.to_dict()),
        )
        self._records[index] = record
        self._wallets[index] = wallet
        logger.info(
            f"Created and funded wallet {index}: {colors['CYAN']}{wallet.pubkey()}{colors['RESET']} "
            f"({colors['GREEN']}{lamports_to_sol(self.funding_lamports):.4f} SOL{colors['RESET']})"
        )
        self._save_wallet_configs()
    
    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    
    def get_wallet(self, index: int) -> Optional[Keypair]:
        """Signing handle for a wallet, or None if it is not loaded."""
        return self._wallets.get(index)
    
    def require_wallet(self, index: int) -> Keypair:
        wallet = self._wallets.get(index)
        if wallet is None:
            raise InvalidWallet(index)
        return wallet
    
    def get_wallet_public_key(self, index: int) -> Optional[Pubkey]:
        wallet = self._wallets.get(index)
        return wallet.pubkey() if wallet else None
    
    def get_record(self, index: int) -> Optional[WalletRecord]:
        return self._records.get(index)
    
    def wallet_indices(self) -> List[int]:
        return sorted(self._wallets)
    
    @property
    def wallet_count(self) -> int:
        return len(self._wallets)
    
    def get_master_public_key(self) -> str:
        return str(self.master_wallet.pubkey())
    
    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------
    
    async def _fetch_balance(self, index: int, wallet: Keypair) -> Optional[int]:
        try:
            return await self.solana.get_balance(wallet.pubkey())
        except Exception as e:
            logger.error(f"Error checking balance for wallet {index}: {e}")
            return None
    
    async def balance_check(self) -> Dict[int, int]:
        """
        Current balances in lamports by wallet index.
        
        Wallets whose query fails are omitted. Never mutates state.
        """
        indices = self.wallet_indices()
        results = await asyncio.gather(*(self._fetch_balance(i, self._wallets[i]) for i in indices))
        
        balances: Dict[int, int] = {}
        for index, balance in zip(indices, results):
            if balance is None:
                continue
            balances[index] = balance
            record = self._records.get(index)
            if record and balance < sol_to_lamports(record.balance_thresholds.min):
                logger.info(
                    f"Wallet {index} balance ({colors['GREEN']}{lamports_to_sol(balance):.4f} SOL{colors['RESET']}) "
                    f"below minimum threshold, needs funding"
                )
        return balances
    
    async def get_wallet_info(self) -> List[Dict[str, Any]]:
        balances = await self.balance_check()
        info = []
        for index in self.wallet_indices():
            if index not in balances:
                continue
            record = self._records.get(index)
            info.append({
                "index": index,
                "label": record.label if record else f"Wallet {index}",
                "publicKey": str(self._wallets[index].pubkey()),
                "balance": lamports_to_sol(balances[index]),
                "thresholds": record.balance_thresholds.to_dict() if record else None,
            })
        return info
    
    async def rebalance_wallets(self) -> List[RebalanceAction]:
        """
        Bring every wallet back inside its thresholds.
        
        Wallets below `min` are topped up to `target` from the master wallet when
        the master can cover it plus the safety margin; otherwise they are skipped
        with a warning. Wallets above `max` return the excess over `target`.
        A failure on one wallet never stops the others.
        
        Raises:
            NetworkFailure: If the master wallet balance cannot be read
        """
        master_balance = await self.solana.get_balance(self.master_wallet.pubkey())
        logger.info(f"Master wallet balance: {colors['GREEN']}{lamports_to_sol(master_balance):.4f} SOL{colors['RESET']}")
        
        balances = await self.balance_check()
        actions: List[RebalanceAction] = []
        
        for index in self.wallet_indices():
            record = self._records.get(index)
            if record is None or index not in balances:
                continue
            wallet = self._wallets[index]
            balance = balances[index]
            thresholds = record.balance_thresholds
            
            if balance < sol_to_lamports(thresholds.min):
                top_up = sol_to_lamports(thresholds.target) - balance
                if master_balance <= top_up + self.master_safety_margin_lamports:
                    shortfall = InsufficientFunds(index, top_up, master_balance)
                    logger.warning(f"{colors['YELLOW']}{shortfall}{colors['RESET']}")
                    actions.append(RebalanceAction(index, "skipped", top_up, error=str(shortfall)))
                    continue
                action = RebalanceAction(index, "top_up", top_up)
                try:
                    action.signature = await self.solana.transfer(self.master_wallet, wallet.pubkey(), top_up)
                    master_balance -= top_up
                    logger.info(
                        f"Topped up wallet {index} with {colors['GREEN']}{lamports_to_sol(top_up):.4f} SOL{colors['RESET']} "
                        f"({colors['CYAN']}{short_key(action.signature)}{colors['RESET']})"
                    )
                except Exception as e:
                    action.error = str(e)
                    logger.error(f"{colors['RED']}Top-up of wallet {index} failed:{colors['RESET']} {e}")
                actions.append(action)
            
            elif balance > sol_to_lamports(thresholds.max):
                excess = balance - sol_to_lamports(thresholds.target)
                action = RebalanceAction(index, "return", excess)
                try:
                    action.signature = await self.solana.transfer(wallet, self.master_wallet.pubkey(), excess)
                    master_balance += excess
                    logger.info(
                        f"Returned {colors['GREEN']}{lamports_to_sol(excess):.4f} SOL{colors['RESET']} "
                        f"from wallet {index} to master wallet"
                    )
                except Exception as e:
                    action.error = str(e)
                    logger.error(f"{colors['RED']}Return from wallet {index} failed:{colors['RESET']} {e}")
                actions.append(action)
        
        return actions
