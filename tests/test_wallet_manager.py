"""
Tests for wallet_manager.py
"""
import base64
import json
import os
import stat
import pytest
from unittest.mock import patch
from solders.keypair import Keypair

from bundlebot.crypto import KeyCipher
from bundlebot.errors import InvalidWallet, KeyDecryptionError, NetworkFailure, PersistenceFailure
from bundlebot.wallet_manager import BalanceThresholds, WalletManager, WalletRecord
from bundlebot.utils import sol_to_lamports


class TestBalanceThresholds:
    
    def test_defaults(self):
        thresholds = BalanceThresholds()
        assert (thresholds.min, thresholds.target, thresholds.max) == (0.01, 0.05, 0.1)
    
    def test_rejects_unordered_thresholds(self):
        with pytest.raises(ValueError, match="min <= target <= max"):
            BalanceThresholds(min=0.2, target=0.05, max=0.1)


class TestWalletRecord:
    
    def test_round_trip_uses_camel_case(self):
        record = WalletRecord(index=3, label="Bot Wallet 3", public_key="pk", encrypted_private_key="enc")
        data = record.to_dict()
        assert set(data) == {"index", "label", "publicKey", "encryptedPrivateKey", "balanceThresholds"}
        assert WalletRecord.from_dict(data) == record


class TestWalletManager:
    """Tests for WalletManager class."""
    
    @pytest.fixture
    def paths(self, tmp_path):
        return {
            "master_wallet_path": str(tmp_path / "keys" / "master-wallet.json"),
            "config_path": str(tmp_path / "state" / "wallets.json"),
        }
    
    @pytest.fixture
    def make_manager(self, mock_solana_client, paths, cipher):
        def _make(**overrides):
            kwargs = dict(paths, encryption_password="unused", cipher=cipher)
            kwargs.update(overrides)
            return WalletManager(mock_solana_client, **kwargs)
        return _make
    
    @pytest.fixture
    def manager(self, make_manager):
        return make_manager()
    
    def _balances(self, mock_solana_client, by_pubkey):
        def _get_balance(pubkey):
            value = by_pubkey[pubkey]
            if isinstance(value, Exception):
                raise value
            return value
        mock_solana_client.get_balance.side_effect = _get_balance
    
    def test_creates_encrypted_master_wallet(self, manager, paths, cipher):
        path = paths["master_wallet_path"]
        assert os.path.exists(path)
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        
        stored = json.loads(open(path).read())
        assert Keypair.from_bytes(cipher.decrypt(stored)).pubkey() == manager.master_wallet.pubkey()
    
    def test_reloads_existing_master_wallet(self, manager, make_manager):
        assert make_manager().get_master_public_key() == manager.get_master_public_key()
    
    def test_master_wallet_wrong_secret(self, manager, make_manager):
        with pytest.raises(KeyDecryptionError):
            make_manager(cipher=KeyCipher(b"w" * 32))
    
    @pytest.mark.asyncio
    async def test_initialize_creates_and_funds_wallets(self, manager, mock_solana_client, paths, cipher):
        await manager.initialize_wallets(3)
        
        assert manager.wallet_indices() == [0, 1, 2]
        assert mock_solana_client.transfer.call_count == 3
        for call in mock_solana_client.transfer.call_args_list:
            assert call.args[0] == manager.master_wallet
            assert call.args[2] == sol_to_lamports(0.05)
        
        config_path = paths["config_path"]
        assert stat.S_IMODE(os.stat(config_path).st_mode) == 0o600
        stored = json.loads(open(config_path).read())
        assert [item["index"] for item in stored] == [0, 1, 2]
        for item in stored:
            secret = cipher.decrypt(item["encryptedPrivateKey"])
            assert str(Keypair.from_bytes(secret).pubkey()) == item["publicKey"]
    
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, manager, make_manager, mock_solana_client):
        await manager.initialize_wallets(3)
        keys = [manager.get_wallet_public_key(i) for i in range(3)]
        mock_solana_client.transfer.reset_mock()
        
        reloaded = make_manager()
        await reloaded.initialize_wallets(3)
        
        mock_solana_client.transfer.assert_not_called()
        assert [reloaded.get_wallet_public_key(i) for i in range(3)] == keys
    
    @pytest.mark.asyncio
    async def test_initialize_extends_pool(self, manager, mock_solana_client):
        await manager.initialize_wallets(2)
        mock_solana_client.transfer.reset_mock()
        
        await manager.initialize_wallets(4)
        
        assert mock_solana_client.transfer.call_count == 2
        assert manager.wallet_count == 4
    
    @pytest.mark.asyncio
    async def test_funding_failure_is_not_recorded(self, manager, mock_solana_client):
        mock_solana_client.transfer.side_effect = Exception("insufficient funds")
        
        with pytest.raises(NetworkFailure, match="Funding wallet 0 failed"):
            await manager.initialize_wallets(1)
        
        assert manager.get_record(0) is None
        assert manager.get_wallet(0) is None
    
    def test_corrupt_config_raises(self, make_manager, paths):
        os.makedirs(os.path.dirname(paths["config_path"]), exist_ok=True)
        with open(paths["config_path"], "w") as f:
            f.write("{not json")
        
        with pytest.raises(PersistenceFailure):
            make_manager()
    
    @pytest.mark.asyncio
    async def test_mismatched_key_is_not_loaded(self, manager, make_manager, paths, cipher):
        await manager.initialize_wallets(2)
        stored = json.loads(open(paths["config_path"]).read())
        stored[1]["encryptedPrivateKey"] = cipher.encrypt(bytes(Keypair()))
        with open(paths["config_path"], "w") as f:
            f.write(json.dumps(stored))
        
        reloaded = make_manager()
        await reloaded.initialize_wallets(2)
        
        assert reloaded.wallet_indices() == [0]
        assert reloaded.get_wallet(1) is None
    
    @pytest.mark.asyncio
    async def test_require_wallet(self, manager):
        await manager.initialize_wallets(1)
        assert manager.require_wallet(0) is manager.get_wallet(0)
        with pytest.raises(InvalidWallet, match="Invalid wallet index: 7"):
            manager.require_wallet(7)
    
    @pytest.mark.asyncio
    async def test_balance_check_omits_failures(self, manager, mock_solana_client):
        await manager.initialize_wallets(3)
        self._balances(mock_solana_client, {
            manager.get_wallet_public_key(0): 10,
            manager.get_wallet_public_key(1): NetworkFailure("RPC error"),
            manager.get_wallet_public_key(2): 30,
        })
        
        balances = await manager.balance_check()
        
        assert balances == {0: 10, 2: 30}
    
    @pytest.mark.asyncio
    async def test_get_wallet_info(self, manager, mock_solana_client):
        await manager.initialize_wallets(1)
        self._balances(mock_solana_client, {manager.get_wallet_public_key(0): sol_to_lamports(0.05)})
        
        info = await manager.get_wallet_info()
        
        assert info == [{
            "index": 0,
            "label": "Bot Wallet 0",
            "publicKey": str(manager.get_wallet_public_key(0)),
            "balance": 0.05,
            "thresholds": {"min": 0.01, "target": 0.05, "max": 0.1},
        }]
    
    @pytest.mark.asyncio
    async def test_rebalance_tops_up_and_returns(self, manager, mock_solana_client):
        await manager.initialize_wallets(3)
        mock_solana_client.transfer.reset_mock()
        self._balances(mock_solana_client, {
            manager.master_wallet.pubkey(): sol_to_lamports(1),
            manager.get_wallet_public_key(0): sol_to_lamports(0.005),
            manager.get_wallet_public_key(1): sol_to_lamports(0.2),
            manager.get_wallet_public_key(2): sol_to_lamports(0.05),
        })
        
        actions = await manager.rebalance_wallets()
        
        assert [(a.wallet_index, a.direction, a.lamports) for a in actions] == [
            (0, "top_up", sol_to_lamports(0.045)),
            (1, "return", sol_to_lamports(0.15)),
        ]
        assert all(a.success for a in actions)
        top_up, give_back = mock_solana_client.transfer.call_args_list
        assert top_up.args == (manager.master_wallet, manager.get_wallet_public_key(0), sol_to_lamports(0.045))
        assert give_back.args == (manager.get_wallet(1), manager.master_wallet.pubkey(), sol_to_lamports(0.15))
    
    @pytest.mark.asyncio
    async def test_rebalance_skips_when_master_cannot_cover(self, manager, mock_solana_client):
        """The tracked master balance shrinks after each top-up."""
        await manager.initialize_wallets(2)
        mock_solana_client.transfer.reset_mock()
        self._balances(mock_solana_client, {
            manager.master_wallet.pubkey(): sol_to_lamports(0.1),
            manager.get_wallet_public_key(0): sol_to_lamports(0.005),
            manager.get_wallet_public_key(1): sol_to_lamports(0.005),
        })
        
        actions = await manager.rebalance_wallets()
        
        assert [(a.wallet_index, a.direction) for a in actions] == [(0, "top_up"), (1, "skipped")]
        assert "insufficient funds" in actions[1].error
        assert mock_solana_client.transfer.call_count == 1
    
    @pytest.mark.asyncio
    async def test_rebalance_continues_after_transfer_failure(self, manager, mock_solana_client):
        await manager.initialize_wallets(2)
        mock_solana_client.transfer.reset_mock()
        mock_solana_client.transfer.side_effect = [NetworkFailure("dropped"), "sig-2"]
        self._balances(mock_solana_client, {
            manager.master_wallet.pubkey(): sol_to_lamports(1),
            manager.get_wallet_public_key(0): sol_to_lamports(0.005),
            manager.get_wallet_public_key(1): sol_to_lamports(0.005),
        })
        
        actions = await manager.rebalance_wallets()
        
        assert [a.success for a in actions] == [False, True]
        assert actions[0].error == "dropped"
    
    @pytest.mark.asyncio
    async def test_save_failure_keeps_funded_wallet(self, manager, mock_solana_client, paths):
        with patch.object(manager, '_write_private_file', side_effect=OSError("disk full")):
            with pytest.raises(PersistenceFailure, match="Cannot save wallet configuration"):
                await manager.initialize_wallets(1)
        
        mock_solana_client.transfer.assert_called_once()
        assert manager.get_wallet(0) is not None
        assert manager.get_record(0).public_key == str(manager.get_wallet_public_key(0))
        
        # the record is written by the next successful save
        mock_solana_client.transfer.reset_mock()
        await manager.initialize_wallets(2)
        stored = json.loads(open(paths["config_path"]).read())
        assert [item["index"] for item in stored] == [0, 1]
        assert mock_solana_client.transfer.call_count == 1
    
    @pytest.mark.asyncio
    async def test_tampered_ciphertext_is_not_loaded(self, manager, make_manager, paths):
        await manager.initialize_wallets(3)
        stored = json.loads(open(paths["config_path"]).read())
        blob = bytearray(base64.b64decode(stored[1]["encryptedPrivateKey"]))
        blob[-1] ^= 0x01
        stored[1]["encryptedPrivateKey"] = base64.b64encode(bytes(blob)).decode()
        with open(paths["config_path"], "w") as f:
            f.write(json.dumps(stored))
        
        reloaded = make_manager()
        await reloaded.initialize_wallets(3)
        
        assert reloaded.wallet_indices() == [0, 2]
        assert reloaded.get_wallet(1) is None
        assert reloaded.get_record(1) is not None
    
    @pytest.mark.asyncio
    async def test_key_from_other_secret_is_not_loaded(self, manager, make_manager, paths):
        await manager.initialize_wallets(2)
        stored = json.loads(open(paths["config_path"]).read())
        stored[0]["encryptedPrivateKey"] = KeyCipher(b"o" * 32).encrypt(bytes(manager.get_wallet(0)))
        with open(paths["config_path"], "w") as f:
            f.write(json.dumps(stored))
        
        reloaded = make_manager()
        await reloaded.initialize_wallets(2)
        
        assert reloaded.wallet_indices() == [1]
    
    @pytest.mark.asyncio
    async def test_smaller_count_unloads_extra_wallets(self, manager, mock_solana_client, paths):
        await manager.initialize_wallets(4)
        mock_solana_client.transfer.reset_mock()
        
        await manager.initialize_wallets(2)
        
        assert manager.wallet_indices() == [0, 1]
        assert manager.get_wallet(3) is None
        mock_solana_client.transfer.assert_not_called()
        stored = json.loads(open(paths["config_path"]).read())
        assert len(stored) == 4
