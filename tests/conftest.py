"""
Pytest configuration and fixtures for bundle engine tests.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from bundlebot.crypto import KeyCipher


@pytest.fixture(scope="session")
def cipher():
    """Cipher with a pre-derived key (skips scrypt in every test)."""
    return KeyCipher(b"k" * 32)


@pytest.fixture
def mock_solana_client():
    """Create a mock SolanaClient for testing."""
    client = AsyncMock()
    client.get_balance.return_value = 0
    client.transfer.return_value = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBVGHVuRdUSv8Z"
    client.send_and_confirm.return_value = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBVGHVuRdUSv8Z"
    client.get_recent_prioritization_fees.return_value = []
    return client


@pytest.fixture
def wallets():
    """Three keypairs standing in for custody wallets 0, 1 and 2."""
    return {0: Keypair(), 1: Keypair(), 2: Keypair()}


@pytest.fixture
def mock_wallet_manager(wallets):
    """Wallet manager stub holding `wallets` in custody."""
    manager = MagicMock()
    manager.get_wallet.side_effect = lambda index: wallets.get(index)
    manager.balance_check = AsyncMock(return_value={})
    return manager


@pytest.fixture
def make_instruction():
    """Factory for distinguishable opaque caller instructions."""
    program_id = Pubkey.new_unique()
    
    def _make(tag: int = 0) -> Instruction:
        account = AccountMeta(Pubkey.new_unique(), is_signer=False, is_writable=True)
        return Instruction(program_id, bytes([tag]), [account])
    
    return _make
