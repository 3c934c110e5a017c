"""Tests for the HTTP surface of the notification service."""

import json

import pytest

from app import create_app, main
from config.settings import Config, TestingConfig
from core.exceptions import ConfigurationError

from conftest import sign_body

BLOG = {"id": 1, "title": "Launch", "content": "<p>Hi</p>", "slug": "launch"}
WEBHOOK_PATH = "/api/qstash-send-email"


def _post_signed(client, payload, key, message_id="msg_1"):
    body = json.dumps(payload)
    headers = {"Upstash-Message-Id": message_id, "Upstash-Signature": sign_body(body, key)}
    return client.post(WEBHOOK_PATH, data=body, content_type="application/json", headers=headers)


class TestHealth:
    def test_index(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"

    def test_health_includes_version(self, client):
        data = client.get("/health").get_json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"

    def test_security_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_unknown_route_is_json(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.get_json()["success"] is False


class TestDirectoryEndpoints:
    def test_students(self, client):
        data = client.get("/api/students").get_json()
        assert data["success"] is True
        assert len(data["students"]) == 3

    def test_users(self, client):
        data = client.get("/api/users").get_json()
        assert data["success"] is True
        assert "users" in data

    def test_programs(self, client):
        data = client.get("/api/programs").get_json()
        assert [p["title"] for p in data["programs"]] == ["Spring Cohort", "Winter Cohort"]

    def test_data_store_failure(self, client, supabase):
        supabase.error = RuntimeError("connection reset")
        response = client.get("/api/students")
        assert response.status_code == 502
        assert response.get_json()["success"] is False


class TestSendBlogEmail:
    def test_direct_mode(self, client, transport):
        response = client.post("/api/send-blog-email", json={
            "emails": ["asha@example.com"], "blog": BLOG, "mode": "direct",
        })
        assert response.status_code == 200
        assert response.get_json()["successCount"] == 1
        assert transport.sent[0].recipient == "asha@example.com"

    def test_queue_mode_by_default(self, client, queue_client):
        response = client.post("/api/send-blog-email", json={
            "emails": ["asha@example.com", "bala@example.com"], "blog": BLOG,
        })
        assert response.get_json()["queuedCount"] == 2
        assert len(queue_client.message.published) == 2

    def test_missing_recipients(self, client):
        response = client.post("/api/send-blog-email", json={"blog": BLOG})
        assert response.status_code == 400
        assert response.get_json() == {"success": False, "error": "No recipients provided"}

    def test_invalid_blog(self, client):
        response = client.post("/api/send-blog-email", json={
            "emails": ["asha@example.com"], "blog": {"title": "Launch"},
        })
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid blog data"

    def test_delivery_failure_reported_per_recipient(self, client, transport):
        transport.fail_for.add("asha@example.com")
        data = client.post("/api/send-blog-email", json={
            "emails": ["asha@example.com"], "blog": BLOG, "mode": "direct",
        }).get_json()
        assert data["successCount"] == 0
        assert data["failedCount"] == 1

    def test_queue_failure(self, client, queue_client):
        queue_client.message.error = RuntimeError("unauthorized")
        response = client.post("/api/send-blog-email", json={
            "emails": ["asha@example.com"], "blog": BLOG, "mode": "queue",
        })
        assert response.status_code == 502


class TestSendBlogEmailAll:
    def test_direct_to_all_students(self, client, transport):
        data = client.post("/api/send-blog-email-all", json={"blog": BLOG, "mode": "direct"}).get_json()
        assert data["totalStudents"] == 3
        assert data["successCount"] == 2

    def test_no_students(self, client, supabase):
        supabase.rows["users"] = []
        response = client.post("/api/send-blog-email-all", json={"blog": BLOG})
        assert response.status_code == 400
        assert response.get_json()["error"] == "No students found"


class TestTestEmail:
    def test_sends(self, client, transport):
        response = client.post("/api/test-email", json={"email": "asha@example.com"})
        assert response.status_code == 200
        assert transport.sent[0].recipient == "asha@example.com"

    def test_bad_credentials(self, client, transport):
        transport.fail_for.add("asha@example.com")
        response = client.post("/api/test-email", json={"email": "asha@example.com"})
        assert response.status_code == 502
        assert response.get_json()["success"] is False

    def test_requires_email(self, client):
        assert client.post("/api/test-email", json={}).status_code == 400


class TestQueueWebhook:
    def test_current_key_delivers(self, client, config, transport):
        response = _post_signed(client, {"email": "asha@example.com", "blog": BLOG},
                                config.QSTASH_CURRENT_SIGNING_KEY)
        assert response.status_code == 200
        assert transport.sent[0].recipient == "asha@example.com"

    def test_next_key_delivers(self, client, config, transport):
        response = _post_signed(client, {"email": "asha@example.com", "blog": BLOG},
                                config.QSTASH_NEXT_SIGNING_KEY)
        assert response.status_code == 200
        assert len(transport.sent) == 1

    def test_forged_signature_rejected(self, client, transport):
        response = _post_signed(client, {"email": "asha@example.com", "blog": BLOG},
                                "sig_forged_0123456789abcdef0123456789abcdef")
        assert response.status_code == 401
        assert transport.sent == []

    def test_missing_signature_rejected(self, client, transport):
        response = client.post(WEBHOOK_PATH, json={"email": "asha@example.com", "blog": BLOG})
        assert response.status_code == 401
        assert transport.sent == []

    def test_duplicate_delivery_sends_once(self, client, config, transport):
        payload = {"email": "asha@example.com", "blog": BLOG}
        _post_signed(client, payload, config.QSTASH_CURRENT_SIGNING_KEY, message_id="msg_42")
        response = _post_signed(client, payload, config.QSTASH_CURRENT_SIGNING_KEY,
                                message_id="msg_42")
        assert response.status_code == 200
        assert response.get_json()["duplicate"] is True
        assert len(transport.sent) == 1

    def test_delivery_failure_returns_5xx_for_retry(self, client, config, transport):
        transport.fail_for.add("asha@example.com")
        response = _post_signed(client, {"email": "asha@example.com", "blog": BLOG},
                                config.QSTASH_CURRENT_SIGNING_KEY)
        assert response.status_code == 502

    def test_blog_not_found(self, client, config, supabase):
        supabase.rows["blogs"] = []
        response = _post_signed(client, {"email": "asha@example.com", "blogId": 5},
                                config.QSTASH_CURRENT_SIGNING_KEY)
        assert response.status_code == 404


class TestStartup:
    def test_missing_supabase_settings_fail_fast(self, notifier):
        config = TestingConfig(SUPABASE_URL=None, SUPABASE_KEY=None)
        with pytest.raises(ConfigurationError) as excinfo:
            create_app(config, notifier=notifier)
        assert "SUPABASE_URL" in str(excinfo.value)

    def test_vite_variable_names_are_accepted(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_KEY", raising=False)
        monkeypatch.setenv("VITE_SUPABASE_URL", "https://proj.supabase.co")
        monkeypatch.setenv("VITE_SUPABASE_ANON_KEY", "anon")
        config = Config(load_env_file=False)
        config.validate()
        assert config.SUPABASE_URL == "https://proj.supabase.co"

    def test_main_exits_without_serving(self, monkeypatch):
        for name in ("SUPABASE_URL", "SUPABASE_KEY", "VITE_SUPABASE_URL", "VITE_SUPABASE_ANON_KEY"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setattr("config.settings.load_dotenv", lambda: None)
        assert main() == 1

    def test_public_base_url_from_vercel(self, monkeypatch):
        monkeypatch.delenv("PUBLIC_BASE_URL", raising=False)
        monkeypatch.delenv("BASE_URL", raising=False)
        monkeypatch.setenv("VERCEL_URL", "blog-notify.vercel.app")
        assert Config(load_env_file=False).PUBLIC_BASE_URL == "https://blog-notify.vercel.app"
