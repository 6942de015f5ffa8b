"""Web Push gateway using VAPID keys from the environment."""
import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Protocol

import requests
from pywebpush import WebPushException, webpush

from tribu.core.config import settings
from tribu.models import PushSubscription

logger = logging.getLogger(__name__)

# Push services answer 404/410 for endpoints that will never work again
GONE_STATUSES = {404, 410}


class DeliveryResult(str, Enum):
    """Outcome of one push delivery attempt."""

    SUCCESS = "success"
    PERMANENT_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class PushPayload:
    """What the service worker shows: a title, a body and a link to open."""

    title: str
    body: str
    url: str = "/"

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class PushGateway(Protocol):
    """Anything that can deliver a payload to one subscription."""

    def send(self, subscription: PushSubscription, payload: PushPayload) -> DeliveryResult:
        ...


class WebPushGateway:
    """Deliver payloads through the browser push services.

    Never raises: every failure is reported as a DeliveryResult.
    """

    def __init__(self, private_key: str, subject: str, ttl: int) -> None:
        self._private_key = private_key
        self._claims = {"sub": subject}
        self._ttl = ttl

    def send(self, subscription: PushSubscription, payload: PushPayload) -> DeliveryResult:
        subscription_info = {
            "endpoint": subscription.endpoint,
            "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
        }
        try:
            webpush(
                subscription_info=subscription_info,
                data=payload.to_json(),
                vapid_private_key=self._private_key,
                vapid_claims=dict(self._claims),
                ttl=self._ttl,
            )
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            if status in GONE_STATUSES:
                logger.info(f"Push endpoint gone ({status}): {subscription.endpoint}")
                return DeliveryResult.PERMANENT_FAILURE
            logger.warning(f"Push delivery failed ({status}): {e}")
            return DeliveryResult.TRANSIENT_FAILURE
        except requests.RequestException as e:
            logger.warning(f"Push delivery failed: {e}")
            return DeliveryResult.TRANSIENT_FAILURE
        return DeliveryResult.SUCCESS


# Cached gateway
_gateway: WebPushGateway | None = None


def has_vapid_keys() -> bool:
    """Check if VAPID keys are configured."""
    return bool(settings.vapid_public_key and settings.vapid_private_key)


def get_push_gateway() -> PushGateway | None:
    """Dependency returning the push gateway, or None when push is not configured."""
    global _gateway

    if not has_vapid_keys():
        return None

    if _gateway is None:
        _gateway = WebPushGateway(
            private_key=settings.vapid_private_key,
            subject=settings.vapid_subject,
            ttl=settings.push_ttl_seconds,
        )
    return _gateway
