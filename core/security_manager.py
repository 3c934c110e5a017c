# core/security_manager.py
"""
Webhook security for queue delivery callbacks:
- Signature verification against the current and next QStash signing keys
- Idempotent delivery ledger backed by Redis
- Security event logging
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis
from qstash import Receiver
from qstash.errors import SignatureError

from core.exceptions import SignatureVerificationError

logger = logging.getLogger(__name__)


def log_security_event(event_type: str, details: Optional[Dict[str, Any]] = None):
    """Log a security-relevant event in a uniform format"""
    logger.warning(f"Security event {event_type} at "
                   f"{datetime.now(timezone.utc).isoformat()}: {details or {}}")


class SignatureVerifier:
    """
    Validates Upstash-Signature headers on inbound queue callbacks

    A callback is accepted when its signature validates with either the
    current or the next signing key. Everything else is rejected.
    """

    def __init__(self, current_signing_key: Optional[str], next_signing_key: Optional[str],
                 clock_tolerance: int = 0, receiver: Optional[Receiver] = None):
        self.clock_tolerance = clock_tolerance
        self.configured = bool(current_signing_key and next_signing_key)
        self.receiver = receiver
        if self.receiver is None and self.configured:
            self.receiver = Receiver(
                current_signing_key=current_signing_key,
                next_signing_key=next_signing_key,
            )

    def verify(self, raw_body: str, signature: Optional[str], url: Optional[str] = None) -> None:
        """
        Verify a callback body against its signature header

        Raises:
            SignatureVerificationError: missing header, unconfigured keys, or no key validates
        """
        if self.receiver is None:
            log_security_event('signature_keys_missing', {'url': url})
            raise SignatureVerificationError("Signing keys are not configured")

        if not signature:
            log_security_event('signature_missing', {'url': url})
            raise SignatureVerificationError("Missing signature")

        try:
            self.receiver.verify(
                body=raw_body,
                signature=signature,
                url=url,
                clock_tolerance=self.clock_tolerance,
            )
        except SignatureError as e:
            log_security_event('signature_invalid', {'url': url, 'reason': str(e)})
            raise SignatureVerificationError("Invalid signature") from e


class DeliveryLedger:
    """
    Records queue message ids that have already been delivered so a
    redelivered callback does not send the same email twice
    """

    KEY_PREFIX = 'blog-notify:delivered:'

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 86400):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    def claim(self, message_id: Optional[str]) -> bool:
        """
        Claim a message id for delivery

        Returns:
            False when the id was already claimed, True otherwise. Messages
            without an id and Redis outages are always allowed through.
        """
        if not message_id:
            return True

        try:
            claimed = self.redis_client.set(
                f"{self.KEY_PREFIX}{message_id}",
                datetime.now(timezone.utc).isoformat(),
                nx=True,
                ex=self.ttl_seconds,
            )
        except redis.RedisError as e:
            logger.warning(f"Delivery ledger unavailable, proceeding without dedupe: {e}")
            return True

        return bool(claimed)

    def release(self, message_id: Optional[str]):
        """Forget a claim so the queue's retry can deliver again"""
        if not message_id:
            return

        try:
            self.redis_client.delete(f"{self.KEY_PREFIX}{message_id}")
        except redis.RedisError as e:
            logger.warning(f"Failed to release delivery claim {message_id}: {e}")
