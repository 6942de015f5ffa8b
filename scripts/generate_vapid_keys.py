#!/usr/bin/env python3
"""
One-time script to generate the VAPID key pair used for Web Push.

Run this script locally once, then add the printed values to your .env file.
Regenerating the keys invalidates every stored browser subscription.

Usage:
    python scripts/generate_vapid_keys.py
"""
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from py_vapid import Vapid01
from py_vapid.utils import b64urlencode


def main():
    vapid = Vapid01()
    vapid.generate_keys()

    public_key = b64urlencode(
        vapid.public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
    )
    private_key = b64urlencode(
        vapid.private_key.private_numbers().private_value.to_bytes(32, "big")
    )

    print("=" * 60)
    print("Add the following to your .env file:")
    print("=" * 60)
    print()
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")
    print()
    print("=" * 60)


if __name__ == "__main__":
    main()
