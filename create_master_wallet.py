#!/usr/bin/env python3
"""
Create (or import) the master wallet that funds the bot wallet pool.

The keypair is written encrypted with ENCRYPTION_PASSWORD. Only the public
address is printed. Set MASTER_WALLET_PRIVATE_KEY (base58) to import an
existing wallet instead of generating a new one.
"""
import json
import os
import sys

import base58
from solders.keypair import Keypair

from bundlebot.config import load_settings
from bundlebot.crypto import KeyCipher


def main():
    settings = load_settings()
    try:
        settings.validate()
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    
    if os.path.exists(settings.master_wallet_path):
        print(f"Master wallet already exists at {settings.master_wallet_path}, refusing to overwrite")
        sys.exit(1)
    
    imported = os.getenv("MASTER_WALLET_PRIVATE_KEY")
    if imported:
        keypair = Keypair.from_bytes(base58.b58decode(imported))
    else:
        keypair = Keypair()
    
    cipher = KeyCipher.from_password(settings.encryption_password)
    directory = os.path.dirname(os.path.abspath(settings.master_wallet_path))
    os.makedirs(directory, exist_ok=True)
    with open(settings.master_wallet_path, "w") as f:
        f.write(json.dumps(cipher.encrypt(bytes(keypair))))
    os.chmod(settings.master_wallet_path, 0o600)
    
    print("=" * 60)
    print("MASTER WALLET IMPORTED" if imported else "MASTER WALLET CREATED")
    print("=" * 60)
    print(f"\nPublic Address:")
    print(str(keypair.pubkey()))
    print(f"\nEncrypted key written to: {settings.master_wallet_path}")
    print("\n" + "=" * 60)
    print("⚠️  IMPORTANT:")
    print("1. Fund this address with SOL before running setup")
    print("2. Keep ENCRYPTION_PASSWORD safe, the key cannot be recovered without it")
    print("=" * 60)


if __name__ == "__main__":
    main()
