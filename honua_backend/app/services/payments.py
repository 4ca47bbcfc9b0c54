import hashlib
import hmac
import logging
import time

import httpx

from app.config import settings
from app.errors import PaymentProviderError, WebhookSignatureError

logger = logging.getLogger("honua.payments")

SIGNATURE_SCHEME = "v1"


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def _intent_form(amount_cents: int, currency: str, metadata: dict, description: str | None, receipt_email: str | None) -> dict:
    form = {
        "amount": str(amount_cents),
        "currency": (currency or "usd").lower(),
        "automatic_payment_methods[enabled]": "true",
    }
    for key, value in (metadata or {}).items():
        form[f"metadata[{key}]"] = str(value)
    if description:
        form["description"] = description
    if receipt_email:
        form["receipt_email"] = receipt_email
    return form


async def create_payment_intent(
    amount_cents: int,
    currency: str,
    metadata: dict,
    *,
    description: str | None = None,
    receipt_email: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict:
    """Create a PaymentIntent through the processor's REST API.

    Returns the decoded intent; ``id`` and ``client_secret`` are what callers use.
    """
    if not settings.STRIPE_SECRET_KEY:
        logger.error("STRIPE_CONFIG_MISSING key=STRIPE_SECRET_KEY")
        raise PaymentProviderError("Payment system configuration error")
    if amount_cents <= 0:
        raise PaymentProviderError("Invalid payment amount")
    url = f"{settings.STRIPE_API_BASE.rstrip('/')}/v1/payment_intents"
    headers = {"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}"}
    data = _intent_form(amount_cents, currency, metadata, description, receipt_email)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=10) as own_client:
                resp = await own_client.post(url, data=data, headers=headers)
        else:
            resp = await client.post(url, data=data, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("STRIPE_REQUEST_FAILED error=%s", exc.__class__.__name__)
        raise PaymentProviderError("Payment processing failed") from exc
    body = resp.json() if resp.content else {}
    if resp.status_code >= 400:
        error = body.get("error") or {}
        logger.error(
            "STRIPE_INTENT_REJECTED status=%s type=%s code=%s message=%s",
            resp.status_code,
            error.get("type", "-"),
            error.get("code", "-"),
            error.get("message", "-"),
        )
        raise PaymentProviderError("Payment processing failed")
    logger.info("STRIPE_INTENT_CREATED intent=%s amount=%s", body.get("id"), amount_cents)
    return body


def compute_signature(payload: bytes, secret: str, timestamp: int | str) -> str:
    signed_payload = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def parse_signature_header(header: str | None) -> tuple[int, list[str]]:
    timestamp = None
    signatures = []
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookSignatureError("Malformed signature timestamp")
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)
    if timestamp is None or not signatures:
        raise WebhookSignatureError("Missing signature")
    return timestamp, signatures


def verify_webhook_signature(
    payload: bytes,
    header: str | None,
    secret: str | None = None,
    tolerance: int | None = None,
    now: float | None = None,
) -> None:
    """Raise ``WebhookSignatureError`` unless ``header`` signs ``payload``."""
    secret = secret if secret is not None else settings.STRIPE_WEBHOOK_SECRET
    tolerance = tolerance if tolerance is not None else settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
    if not secret:
        raise WebhookSignatureError("Webhook secret not configured")
    timestamp, signatures = parse_signature_header(header)
    current = int(now if now is not None else time.time())
    if tolerance and abs(current - timestamp) > tolerance:
        raise WebhookSignatureError("Signature timestamp outside tolerance")
    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise WebhookSignatureError("Signature mismatch")
