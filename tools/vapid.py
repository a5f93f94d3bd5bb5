"""VAPID key pair generation for `python main.py --generate-vapid-keys`."""
import base64
from typing import Tuple

from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_vapid_keys() -> Tuple[str, str]:
    """
    Return (private_key, public_key), both base64url without padding.

    The private key is the raw 32-byte P-256 scalar, which pywebpush accepts
    as-is; the public key is the uncompressed point browsers expect as
    applicationServerKey.
    """
    vapid = Vapid()
    vapid.generate_keys()
    private_raw = vapid.private_key.private_numbers().private_value.to_bytes(32, "big")
    public_raw = vapid.public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )
    return _b64url(private_raw), _b64url(public_raw)
