"""
Tests for utils.py
"""
from unittest.mock import patch
from solders.keypair import Keypair

from bundlebot.utils import get_terminal_colors, lamports_to_sol, short_key, sol_to_lamports


class TestGetTerminalColors:
    """Tests for get_terminal_colors function."""
    
    def test_get_terminal_colors_with_tty(self):
        """Test get_terminal_colors returns color codes when stdout is a TTY."""
        with patch('sys.stdout.isatty', return_value=True):
            colors = get_terminal_colors()
            assert colors['GREEN'] == '\033[92m'
            assert colors['CYAN'] == '\033[96m'
            assert colors['RED'] == '\033[91m'
            assert colors['DIM'] == '\033[90m'
            assert colors['RESET'] == '\033[0m'
    
    def test_get_terminal_colors_without_tty(self):
        """Test get_terminal_colors returns empty strings when stdout is not a TTY."""
        with patch('sys.stdout.isatty', return_value=False):
            colors = get_terminal_colors()
            assert all(value == '' for value in colors.values())
    
    def test_get_terminal_colors_all_keys_present(self):
        colors = get_terminal_colors()
        required_keys = ['GREEN', 'CYAN', 'YELLOW', 'RED', 'DIM', 'RESET']
        assert all(key in colors for key in required_keys)


class TestAmounts:
    
    def test_sol_to_lamports(self):
        assert sol_to_lamports(0.05) == 50_000_000
        assert sol_to_lamports(1) == 1_000_000_000
    
    def test_sol_to_lamports_rounds_float_error(self):
        assert sol_to_lamports(0.07) == 70_000_000
    
    def test_lamports_to_sol(self):
        assert lamports_to_sol(25_000_000) == 0.025


class TestShortKey:
    
    def test_short_key_pubkey(self):
        pubkey = Keypair().pubkey()
        text = str(pubkey)
        assert short_key(pubkey) == f"{text[:4]}...{text[-4:]}"
    
    def test_short_key_leaves_short_strings(self):
        assert short_key("abc") == "abc"
