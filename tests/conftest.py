"""Shared fixtures and test doubles for the notification service."""

import base64
import hashlib
import time
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import jwt
import pytest

from app import create_app
from config.settings import TestingConfig
from core.exceptions import DeliveryError
from core.models import DeliveryResult
from core.security_manager import DeliveryLedger, SignatureVerifier
from core.template_engine import BlogEmailRenderer
from services.data_store import SupabaseDirectory
from services.dispatch import DispatchGateway
from services.notifications import BlogNotifier

PUBLIC_BASE_URL = "https://notify.example.com"
WEBHOOK_URL = f"{PUBLIC_BASE_URL}/api/qstash-send-email"
FIXED_NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def sign_body(body: str, key: str, url: str = WEBHOOK_URL, expires_in: int = 300) -> str:
    """Mint an Upstash-style signature JWT over a request body."""
    now = int(time.time())
    digest = hashlib.sha256(body.encode()).digest()
    claims = {
        "iss": "Upstash",
        "sub": url,
        "iat": now - 5,
        "nbf": now - 5,
        "exp": now + expires_in,
        "jti": uuid.uuid4().hex,
        "body": base64.urlsafe_b64encode(digest).decode().rstrip("="),
    }
    return jwt.encode(claims, key, algorithm="HS256")


class FakeTransport:
    """Records messages instead of talking SMTP."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, message):
        if message.recipient in self.fail_for:
            raise DeliveryError("SMTP authentication failed", recipient=message.recipient,
                                smtp_code=535, reason="authentication")
        self.sent.append(message)
        return DeliveryResult(
            recipient=message.recipient,
            message_id=f"<{len(self.sent)}@example.com>",
            smtp_code=250,
            smtp_message="OK",
            sent_at=FIXED_NOW,
        )


class FakeQueueMessages:
    def __init__(self):
        self.published = []
        self.error = None

    def publish_json(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.published.append(kwargs)
        return SimpleNamespace(message_id=f"msg_{len(self.published)}")


class FakeQueueClient:
    def __init__(self):
        self.message = FakeQueueMessages()


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.error = None

    def set(self, name, value, nx=False, ex=None):
        if self.error is not None:
            raise self.error
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def delete(self, *names):
        if self.error is not None:
            raise self.error
        return sum(1 for name in names if self.store.pop(name, None) is not None)


class FakeQuery:
    """Chainable stand-in for a postgrest query builder."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args, **kwargs)

    def eq(self, *args, **kwargs):
        return self._record("eq", *args, **kwargs)

    def order(self, *args, **kwargs):
        return self._record("order", *args, **kwargs)

    def limit(self, *args, **kwargs):
        return self._record("limit", *args, **kwargs)

    def execute(self):
        if self.client.error is not None:
            raise self.client.error
        return SimpleNamespace(data=self.client.rows.get(self.table, []))


class FakeSupabase:
    def __init__(self, rows=None):
        self.rows = rows or {}
        self.queries = []
        self.error = None

    def table(self, name):
        query = FakeQuery(self, name)
        self.queries.append(query)
        return query


@pytest.fixture
def config():
    return TestingConfig(PUBLIC_BASE_URL=PUBLIC_BASE_URL)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def queue_client():
    return FakeQueueClient()


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def supabase():
    return FakeSupabase(rows={
        "users": [
            {"uid": "u1", "display_name": "Asha", "email": "asha@example.com", "role": "student"},
            {"uid": "u2", "display_name": "Bala", "email": "bala@example.com", "role": "student"},
            {"uid": "u3", "display_name": "Chitra", "email": None, "role": "student"},
        ],
        "blogs": [
            {"id": 7, "title": "Stored Post", "content": "<p>From the store</p>", "slug": "stored-post"},
        ],
        "programs": [
            {"id": 2, "title": "Spring Cohort", "description": "Newest", "is_active": True,
             "created_at": "2026-02-01T00:00:00+00:00"},
            {"id": 1, "title": "Winter Cohort", "description": None, "is_active": True,
             "created_at": "2025-11-01T00:00:00+00:00"},
        ],
    })


@pytest.fixture
def verifier(config):
    return SignatureVerifier(config.QSTASH_CURRENT_SIGNING_KEY, config.QSTASH_NEXT_SIGNING_KEY)


@pytest.fixture
def gateway(transport, queue_client, verifier):
    return DispatchGateway(transport, queue_client, verifier, retries=3)


@pytest.fixture
def notifier(gateway, supabase, redis_client, config):
    return BlogNotifier(
        gateway=gateway,
        directory=SupabaseDirectory(supabase),
        renderer=BlogEmailRenderer(site_url=config.SITE_URL, brand_name=config.BRAND_NAME),
        ledger=DeliveryLedger(redis_client),
        public_base_url=config.PUBLIC_BASE_URL,
        sanitize=config.SANITIZE_BLOG_CONTENT,
    )


@pytest.fixture
def app(config, notifier):
    return create_app(config, notifier=notifier)


@pytest.fixture
def client(app):
    return app.test_client()
