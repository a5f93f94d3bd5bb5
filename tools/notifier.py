"""
Web Push notifier.

One deliver() call is one delivery attempt to one browser push endpoint,
VAPID-signed and aes128gcm-encrypted by pywebpush. pywebpush is blocking
(requests under the hood), so the call runs in a worker thread.

The VAPID key is parsed once when the notifier is built; a bad key is a
startup error and never reaches a delivery round.

Failures are classified for the dispatcher:
- 404/410, or a capability blob that does not parse -> InvalidPushCapability
- 400/413 -> MalformedPayloadError
- network errors, 429, 5xx -> TransientDeliveryError
- any other push failure without a response -> DeliveryError
"""
import asyncio
import base64
import copy
import logging
from typing import Any, Dict, Optional

import requests
from cryptography.hazmat.primitives.asymmetric import ec
from py_vapid import Vapid
from pywebpush import WebPusher, WebPushException, webpush

from core.errors import DeliveryError, InvalidPushCapability, MalformedPayloadError, TransientDeliveryError

logger = logging.getLogger(__name__)

GONE_STATUSES = (404, 410)
PAYLOAD_STATUSES = (400, 413)
VAPID_SUBJECT_PREFIXES = ("mailto:", "https://")


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def parse_capability(push: Dict[str, Any]) -> None:
    """
    Check that `push` is a usable PushSubscription: an endpoint plus a P-256
    p256dh point and an auth secret. Raises InvalidPushCapability otherwise.
    """
    endpoint = str(push.get("endpoint", ""))[:60] if isinstance(push, dict) else ""
    try:
        WebPusher(copy.deepcopy(push))
        keys = push["keys"]
        ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), _b64url_decode(keys["p256dh"]))
        if not _b64url_decode(keys["auth"]):
            raise ValueError("empty auth secret")
    except (WebPushException, ValueError, TypeError, KeyError) as e:
        raise InvalidPushCapability(f"unusable push capability ({endpoint}): {e}") from e


def load_vapid_key(private_key: str, subject: str) -> Vapid:
    """Parse the base64url VAPID private key; ValueError on a bad key or subject."""
    if not subject.startswith(VAPID_SUBJECT_PREFIXES):
        raise ValueError(f"VAPID subject must start with mailto: or https://, got {subject!r}")
    try:
        return Vapid.from_string(private_key=private_key)
    except (ValueError, TypeError) as e:
        raise ValueError(f"invalid VAPID private key: {e}") from e


class WebPushNotifier:
    def __init__(self, vapid_private_key: str, vapid_subject: str, ttl: int = 30, timeout: Optional[float] = 10.0):
        self.vapid = load_vapid_key(vapid_private_key, vapid_subject)
        self.vapid_subject = vapid_subject
        self.ttl = ttl
        self.timeout = timeout

    async def deliver(self, push: Dict[str, Any], payload: bytes) -> None:
        parse_capability(push)
        await asyncio.to_thread(self._send, push, payload)

    def _send(self, push: Dict[str, Any], payload: bytes) -> None:
        endpoint = str(push.get("endpoint", ""))[:60]
        try:
            webpush(
                subscription_info=push,
                data=payload,
                vapid_private_key=self.vapid,
                # pywebpush fills in aud/exp on this dict, so never share it
                vapid_claims={"sub": self.vapid_subject},
                ttl=self.ttl,
                timeout=self.timeout,
            )
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            if status is None:
                raise DeliveryError(f"push failed before reaching the service ({endpoint}): {e}") from e
            if status in GONE_STATUSES:
                raise InvalidPushCapability(f"push endpoint rejected subscription ({endpoint}): {e}", status) from e
            if status in PAYLOAD_STATUSES:
                raise MalformedPayloadError(f"push service rejected payload ({endpoint}): {e}", status) from e
            raise TransientDeliveryError(f"push service error {status} ({endpoint}): {e}", status) from e
        except requests.RequestException as e:
            raise TransientDeliveryError(f"push request failed ({endpoint}): {e}") from e
