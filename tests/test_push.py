"""Tests for the Web Push gateway and subscription fan-out."""

import importlib.util
import json
from pathlib import Path
from uuid import uuid4

import pytest
import requests
from pywebpush import WebPushException
from sqlalchemy import event as sa_event
from sqlmodel import Session, select

from tribu.core.config import settings
from tribu.models import Group, PushSubscription
from tribu.push import client as push_client
from tribu.push.client import DeliveryResult, PushPayload, WebPushGateway, get_push_gateway
from tribu.push.notify import (
    delete_subscription,
    save_subscription,
    send_push_to_group,
    send_push_to_user,
    subscriptions_for_group,
    subscriptions_for_names,
)

PAYLOAD = PushPayload(title="Sortie au parc", body="Bob participe à votre sortie", url="/events/1")


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


@pytest.fixture(name="subscription")
def subscription_fixture(add_subscription) -> PushSubscription:
    return add_subscription("https://push.example/alice", "Alice")


class TestWebPushGateway:
    """Tests for mapping pywebpush outcomes to delivery results."""

    def test_success(self, monkeypatch, subscription):
        """Test a delivered payload and the arguments handed to pywebpush."""
        calls = []
        monkeypatch.setattr(push_client, "webpush", lambda **kwargs: calls.append(kwargs))

        gateway = WebPushGateway(private_key="private", subject="mailto:test@example.com", ttl=60)
        result = gateway.send(subscription, PAYLOAD)

        assert result == DeliveryResult.SUCCESS
        assert calls[0]["subscription_info"] == {
            "endpoint": "https://push.example/alice",
            "keys": {"p256dh": "p256dh-key", "auth": "auth-secret"},
        }
        assert json.loads(calls[0]["data"]) == {
            "title": "Sortie au parc",
            "body": "Bob participe à votre sortie",
            "url": "/events/1",
        }
        assert calls[0]["vapid_claims"] == {"sub": "mailto:test@example.com"}
        assert calls[0]["ttl"] == 60

    @pytest.mark.parametrize(
        "status, expected",
        [
            (404, DeliveryResult.PERMANENT_FAILURE),
            (410, DeliveryResult.PERMANENT_FAILURE),
            (429, DeliveryResult.TRANSIENT_FAILURE),
            (500, DeliveryResult.TRANSIENT_FAILURE),
        ],
    )
    def test_push_service_errors(self, monkeypatch, subscription, status, expected):
        """Test that only gone endpoints are permanent failures."""

        def failing_webpush(**kwargs):
            raise WebPushException("Push failed", response=FakeResponse(status))

        monkeypatch.setattr(push_client, "webpush", failing_webpush)

        gateway = WebPushGateway(private_key="private", subject="mailto:test@example.com", ttl=60)
        assert gateway.send(subscription, PAYLOAD) == expected

    def test_error_without_response(self, monkeypatch, subscription):
        """Test errors raised before any response was received."""

        def failing_webpush(**kwargs):
            raise WebPushException("Bad key")

        monkeypatch.setattr(push_client, "webpush", failing_webpush)

        gateway = WebPushGateway(private_key="private", subject="mailto:test@example.com", ttl=60)
        assert gateway.send(subscription, PAYLOAD) == DeliveryResult.TRANSIENT_FAILURE

    def test_network_error(self, monkeypatch, subscription):
        """Test that transport errors are transient."""

        def failing_webpush(**kwargs):
            raise requests.ConnectionError("connection reset")

        monkeypatch.setattr(push_client, "webpush", failing_webpush)

        gateway = WebPushGateway(private_key="private", subject="mailto:test@example.com", ttl=60)
        assert gateway.send(subscription, PAYLOAD) == DeliveryResult.TRANSIENT_FAILURE


class TestGetPushGateway:
    """Tests for the gateway dependency."""

    def test_none_without_keys(self, monkeypatch):
        """Test that push is disabled without VAPID keys."""
        monkeypatch.setattr(settings, "vapid_public_key", "")
        monkeypatch.setattr(settings, "vapid_private_key", "")

        assert get_push_gateway() is None

    def test_cached_with_keys(self, monkeypatch):
        """Test that one gateway is built and reused."""
        monkeypatch.setattr(settings, "vapid_public_key", "public")
        monkeypatch.setattr(settings, "vapid_private_key", "private")
        monkeypatch.setattr(push_client, "_gateway", None)

        gateway = get_push_gateway()

        assert isinstance(gateway, WebPushGateway)
        assert get_push_gateway() is gateway


class TestSubscriptions:
    """Tests for storing subscriptions."""

    def test_save_and_refresh(self, session: Session, sample_group: Group):
        """Test that saving the same endpoint twice updates it in place."""
        save_subscription(session, "https://push.example/a", "k1", "a1", "Bob")
        saved = save_subscription(
            session, "https://push.example/a", "k2", "a2", " Bobby ", [sample_group.id, sample_group.id]
        )

        assert len(session.exec(select(PushSubscription)).all()) == 1
        assert (saved.p256dh, saved.auth, saved.username) == ("k2", "a2", "Bobby")
        assert saved.group_ids == [str(sample_group.id)]
        assert saved.username_key == "bobby"

    def test_delete(self, session: Session, subscription):
        """Test opting out."""
        assert delete_subscription(session, subscription.endpoint) is True
        assert delete_subscription(session, subscription.endpoint) is False


class TestRecipientLookup:
    """Tests for finding subscriptions by name and group."""

    def test_names_match_case_folded(self, session: Session):
        """Test that names match regardless of case, accents included."""
        save_subscription(session, "https://push.example/elodie", "k", "a", "Élodie")
        save_subscription(session, "https://push.example/bob", "k", "a", "Bob")
        save_subscription(session, "https://push.example/anon", "k", "a")

        found = subscriptions_for_names(session, ["ÉLODIE", " ", ""])

        assert [s.endpoint for s in found] == ["https://push.example/elodie"]
        assert subscriptions_for_names(session, ["", "  "]) == []

    def test_group_followers_only(self, session: Session, sample_group: Group, add_subscription):
        """Test that only followers of the group are returned."""
        other = uuid4()
        add_subscription("https://push.example/both", "Alice", [other, sample_group.id])
        add_subscription("https://push.example/other", "Bob", [other])
        add_subscription("https://push.example/none", "Carol")

        found = subscriptions_for_group(session, sample_group.id)

        assert [s.endpoint for s in found] == ["https://push.example/both"]
        assert subscriptions_for_group(session, None) == []

    @pytest.mark.parametrize("lookup", ["names", "group"])
    def test_filtered_in_query(self, session: Session, sample_group: Group, lookup):
        """Test that recipient lookups filter in SQL instead of loading every row."""
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        bind = session.get_bind()
        sa_event.listen(bind, "before_cursor_execute", record)
        try:
            if lookup == "names":
                subscriptions_for_names(session, ["Alice"])
            else:
                subscriptions_for_group(session, sample_group.id)
        finally:
            sa_event.remove(bind, "before_cursor_execute", record)

        selects = [s for s in statements if "FROM push_subscription" in s]
        assert selects
        assert all("WHERE" in s for s in selects)


class TestFanOut:
    """Tests for notifying users and groups."""

    def test_send_to_user_any_case(self, session: Session, gateway, add_subscription):
        """Test that every device of a user is notified."""
        add_subscription("https://push.example/phone", "Alice")
        add_subscription("https://push.example/laptop", "alice")
        add_subscription("https://push.example/bob", "Bob")

        stats = send_push_to_user(session, gateway, "ALICE", PAYLOAD)

        assert stats.sent == 2
        assert sorted(gateway.endpoints) == ["https://push.example/laptop", "https://push.example/phone"]

    def test_send_to_group_excludes_actor(self, session: Session, gateway, sample_group: Group, add_subscription):
        """Test that group followers except the actor are notified."""
        add_subscription("https://push.example/alice", "Alice", [sample_group.id])
        add_subscription("https://push.example/bob", "Bob", [sample_group.id])
        add_subscription("https://push.example/carol", "Carol")

        stats = send_push_to_group(session, gateway, sample_group.id, PAYLOAD, exclude_username="Alice")

        assert stats.endpoints == ["https://push.example/bob"]

    def test_prunes_gone_endpoints(self, session: Session, gateway, add_subscription):
        """Test that permanently failed subscriptions are removed."""
        add_subscription("https://push.example/old", "Alice")
        gateway.results["https://push.example/old"] = DeliveryResult.PERMANENT_FAILURE

        stats = send_push_to_user(session, gateway, "Alice", PAYLOAD)

        assert stats.pruned == 1
        assert session.exec(select(PushSubscription)).all() == []

    def test_no_gateway(self, session: Session, add_subscription):
        """Test that nothing is sent when push is not configured."""
        add_subscription("https://push.example/alice", "Alice")

        assert send_push_to_user(session, None, "Alice", PAYLOAD).sent == 0


class TestVapidKeyScript:
    """Tests for the VAPID key generation script."""

    def test_prints_key_pair(self, capsys):
        """Test that the script prints a usable key pair for .env."""
        path = Path(__file__).resolve().parent.parent / "scripts" / "generate_vapid_keys.py"
        module_spec = importlib.util.spec_from_file_location("generate_vapid_keys", path)
        module = importlib.util.module_from_spec(module_spec)
        module_spec.loader.exec_module(module)

        module.main()

        lines = dict(
            line.split("=", 1) for line in capsys.readouterr().out.splitlines() if line.startswith("VAPID_")
        )
        assert len(lines["VAPID_PUBLIC_KEY"]) == 87
        assert len(lines["VAPID_PRIVATE_KEY"]) == 43
