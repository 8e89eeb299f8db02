"""CLI script to generate a VAPID key pair for Web Push."""
from __future__ import annotations

import base64

from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def main() -> None:
    vapid = Vapid()
    vapid.generate_keys()

    public_key = vapid.public_key.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    )
    private_key = vapid.private_key.private_numbers().private_value.to_bytes(32, "big")

    print("Add these to your .env file:")
    print(f"VAPID_PUBLIC_KEY={_b64url(public_key)}")
    print(f"VAPID_PRIVATE_KEY={_b64url(private_key)}")


if __name__ == "__main__":
    main()
