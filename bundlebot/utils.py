"""
Utility functions for the bundle execution engine.
"""
import sys
from typing import Dict

LAMPORTS_PER_SOL = 1_000_000_000


def get_terminal_colors() -> Dict[str, str]:
    """
    Get ANSI color codes for terminal output.
    
    Returns empty strings if output is not a TTY (e.g., redirected to file).
    This keeps log files free of ANSI escape codes.
    
    Returns:
        Dictionary with color codes: GREEN, CYAN, YELLOW, RED, DIM, RESET
    """
    use_color = sys.stdout.isatty()
    return {
        'GREEN': '\033[92m' if use_color else '',   # Balances, counts, amounts
        'CYAN': '\033[96m' if use_color else '',    # Wallets, bundle ids, signatures
        'YELLOW': '\033[93m' if use_color else '',  # Fees and priority levels
        'RED': '\033[91m' if use_color else '',     # Failures
        'DIM': '\033[90m' if use_color else '',     # Service messages (ticks, start/stop)
        'RESET': '\033[0m' if use_color else ''
    }


def sol_to_lamports(sol: float) -> int:
    """Convert a SOL amount to lamports (rounded to the nearest lamport)."""
    return int(round(sol * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def short_key(key) -> str:
    """
    Shorten a public key or signature for log output: 'AbCd...WxYz'.
    
    Accepts anything with a base58 string form (Pubkey, Signature, str).
    """
    text = str(key)
    if len(text) <= 12:
        return text
    return f"{text[:4]}...{text[-4:]}"
