"""Slack request signature verification.

Slack signs every request with HMAC-SHA256 over ``v0:<timestamp>:<body>``
using the app's signing secret, and sends the result as ``v0=<hex>`` in
``X-Slack-Signature``. The body must be the exact bytes received: form
decoding and re-encoding can reorder or re-escape fields and break the
signature.
"""

from __future__ import annotations

import hashlib
import hmac
import time

import structlog

from contextlayer.errors import AuthenticationError

logger = structlog.get_logger()

SIGNATURE_VERSION = "v0"
DEFAULT_MAX_AGE_S = 300


def compute_signature(signing_secret: str, timestamp: str, raw_body: bytes) -> str:
    """Return the ``v0=<hex>`` signature Slack would send for this body."""
    basestring = b":".join(
        (SIGNATURE_VERSION.encode(), timestamp.encode(), raw_body)
    )
    digest = hmac.new(signing_secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_request(
    raw_body: bytes,
    signature: str | None,
    timestamp: str | None,
    signing_secret: str,
    *,
    max_age: int = DEFAULT_MAX_AGE_S,
    now: float | None = None,
) -> bool:
    """Verify authenticity and freshness of an inbound Slack request.

    Returns True or raises AuthenticationError with a reason code.
    Freshness is checked first so a replayed request is rejected even
    when its signature is valid.
    """
    if not signature or not timestamp:
        raise AuthenticationError(AuthenticationError.MISSING_HEADERS)

    try:
        request_ts = int(timestamp)
    except ValueError:
        raise AuthenticationError(AuthenticationError.STALE_TIMESTAMP) from None

    current = time.time() if now is None else now
    if abs(current - request_ts) > max_age:
        logger.warning("slack_request_stale", timestamp=request_ts, skew_s=round(current - request_ts))
        raise AuthenticationError(AuthenticationError.STALE_TIMESTAMP)

    expected = compute_signature(signing_secret, timestamp, raw_body)
    if not hmac.compare_digest(expected.encode(), signature.encode()):
        logger.warning("slack_signature_mismatch")
        raise AuthenticationError(AuthenticationError.SIGNATURE_MISMATCH)

    return True
