"""Webhook security utilities.

Provides HMAC signature generation and verification for webhook payloads
to ensure authenticity and prevent tampering.

Signatures are computed over a canonical byte encoding of the payload:
JSON with sorted keys, no insignificant whitespace and ASCII escaping. Any
signer or verifier that produces the same encoding agrees on the signature
regardless of the key order it received.
"""

import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

# Header names sent with every delivery
EVENT_HEADER = "X-DVCS-Event"
SIGNATURE_HEADER = "X-DVCS-Signature"
DELIVERY_HEADER = "X-DVCS-Delivery"

SignablePayload = Mapping[str, Any] | BaseModel | str | bytes


def canonical_json(payload: SignablePayload) -> bytes:
    """Encode a payload into its canonical byte form.

    Strings and bytes are parsed as JSON first, so a raw request body and the
    dictionary it was produced from canonicalise to the same bytes.

    Args:
        payload: Mapping, pydantic model, or JSON text.

    Returns:
        UTF-8 encoded canonical JSON.

    Raises:
        ValueError: If text input is not valid JSON.
        TypeError: If the payload contains values JSON cannot represent.
    """
    if isinstance(payload, BaseModel):
        obj: Any = payload.model_dump(mode="json")
    elif isinstance(payload, (str, bytes, bytearray)):
        obj = json.loads(payload)
    else:
        obj = payload

    return json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")


def sign(payload: SignablePayload, secret: str) -> str:
    """Generate the HMAC-SHA256 signature of a webhook payload.

    Args:
        payload: Webhook payload.
        secret: Webhook secret key.

    Returns:
        Lowercase hex signature (64 characters).
    """
    body = canonical_json(payload)
    signature = hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256,
    ).hexdigest()

    logger.debug(
        "webhook_signature_generated",
        payload_length=len(body),
    )

    return signature


def verify(payload: SignablePayload, signature: str, secret: str) -> bool:
    """Verify the HMAC-SHA256 signature of a webhook payload.

    Never raises: malformed payloads, malformed signatures and missing
    secrets all verify as False.

    Args:
        payload: Received webhook payload (dict or raw JSON body).
        signature: Claimed hex signature.
        secret: Webhook secret key.

    Returns:
        True if the signature matches, False otherwise.
    """
    if not isinstance(signature, str) or not signature or not secret:
        return False

    try:
        expected = sign(payload, secret)
    except (ValueError, TypeError) as e:
        logger.warning("webhook_signature_payload_invalid", error=str(e))
        return False

    # compare_digest rejects non-ASCII str input with TypeError
    try:
        is_valid = hmac.compare_digest(signature, expected)
    except TypeError:
        is_valid = False

    if not is_valid:
        logger.warning("webhook_signature_invalid")
    else:
        logger.debug("webhook_signature_verified")

    return is_valid


def create_signature_headers(
    signature: str,
    *,
    event: str,
    delivery_id: str,
) -> dict[str, str]:
    """Create HTTP headers for one webhook delivery attempt.

    The delivery identifier is not covered by the signature, so one
    signature serves every attempt of an episode.

    Args:
        signature: Signature returned by sign().
        event: Event type value.
        delivery_id: Unique identifier of this attempt.

    Returns:
        Dictionary of headers to include in request.
    """
    return {
        EVENT_HEADER: event,
        SIGNATURE_HEADER: signature,
        DELIVERY_HEADER: delivery_id,
    }


def verify_request(
    body: str | bytes,
    headers: Mapping[str, str],
    secret: str,
) -> bool:
    """Verify an inbound signed request from its body and headers.

    Header lookup is case-insensitive. A missing signature header verifies
    as False.

    Args:
        body: Raw request body.
        headers: Request headers.
        secret: Webhook secret key.

    Returns:
        True if the signature is valid.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    signature = lowered.get(SIGNATURE_HEADER.lower())

    if not signature:
        logger.warning("webhook_signature_missing", header=SIGNATURE_HEADER)
        return False

    return verify(body, signature, secret)
