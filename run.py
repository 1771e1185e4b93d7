#!/usr/bin/env python3
"""
Launcher for the bundle engine.

    python run.py setup        # create, fund and load the wallet pool
    python run.py balances     # print pool balances
    python run.py rebalance    # one rebalancing pass
    python run.py monitor      # periodic rebalancing and balance checks
"""
import argparse
import asyncio
import sys
from pathlib import Path

from bundlebot.config import load_settings
from bundlebot.main import MODES, main


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Solana Bundle Execution Engine')
    parser.add_argument('mode', nargs='?', default='setup', choices=MODES, help='Operation mode (default: setup)')
    parser.add_argument('--env-file', type=Path, default=None, help='Path to .env (default: project root)')
    parser.add_argument('--config', type=Path, default=None, help='Path to config.json (default: project root)')
    parser.add_argument('--log-level', default=None, help='Override LOG_LEVEL')
    return parser.parse_args(argv)


if __name__ == '__main__':
    args = parse_args()
    settings = load_settings(env_path=args.env_file, config_path=args.config)
    if args.log_level:
        settings.log_level = args.log_level.upper()
    
    try:
        asyncio.run(main(mode=args.mode, settings=settings))
    except KeyboardInterrupt:
        print("\nEngine stopped by user")
        sys.exit(0)
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(2)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
