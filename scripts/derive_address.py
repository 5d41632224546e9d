#!/usr/bin/env python3
"""Show what the Keevo keyring derives for a seed phrase.

Prints the ETH account xpub (m/44'/60'/0') the way the device would report it,
and the checksummed addresses the keyring derives from it. Use only with
throwaway test mnemonics.

Usage:
    python scripts/derive_address.py "your seed phrase here"
    python scripts/derive_address.py --count 3   # prompts for seed phrase
"""

import argparse
import sys
from getpass import getpass

from bip_utils import Bip39SeedGenerator, Bip44, Bip44Coins

from keevo_keyring.hdwallet.eth import derive_address, parse_extended_key


def derive_account_xpub(mnemonic: str) -> str:
    """ETH account-level xpub (m/44'/60'/0') for a mnemonic."""
    seed = Bip39SeedGenerator(mnemonic).Generate()
    account = Bip44.FromSeed(seed, Bip44Coins.ETHEREUM).Purpose().Coin().Account(0)
    return account.PublicKey().ToExtended()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Derive Keevo keyring addresses")
    parser.add_argument("mnemonic", nargs="*", help="Seed phrase (prompted if omitted)")
    parser.add_argument("--count", type=int, default=1, help="Number of addresses")
    args = parser.parse_args()

    if args.mnemonic:
        mnemonic = " ".join(args.mnemonic)
    else:
        print("Enter your seed phrase (12 or 24 words):")
        mnemonic = getpass("Seed phrase: ")

    words = mnemonic.strip().split()
    if len(words) not in [12, 24]:
        print(f"Error: Expected 12 or 24 words, got {len(words)}")
        sys.exit(1)

    xpub = derive_account_xpub(mnemonic)
    hd_key = parse_extended_key(xpub)

    print("=" * 60)
    print(f"Account xpub: {xpub}")
    print("=" * 60)
    for index in range(args.count):
        print(f"m/44'/60'/0'/0/{index}  {derive_address(hd_key, index)}")


if __name__ == "__main__":
    main()
