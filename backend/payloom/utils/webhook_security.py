"""
Webhook security utilities - Paystack HMAC-SHA512 signature verification
"""

import hmac
import hashlib
import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"


def compute_paystack_signature(payload_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload_body, hashlib.sha512).hexdigest()


def verify_paystack_signature(
    payload_body: bytes,
    signature_header: Optional[str],
    secret: str,
) -> Tuple[bool, Optional[str]]:
    """
    Verify the x-paystack-signature header over the EXACT raw body bytes.

    Returns:
        (is_valid, error_code) - error_code is None when valid
    """
    if not secret:
        return False, "WEBHOOK_NOT_CONFIGURED"
    if not signature_header:
        return False, "WEBHOOK_MISSING_SIGNATURE"

    expected = compute_paystack_signature(payload_body, secret)
    # Constant-time comparison
    if not hmac.compare_digest(expected, signature_header.strip().lower()):
        logger.warning(
            "Paystack webhook signature mismatch",
            extra={"body_length_bytes": len(payload_body)},
        )
        return False, "WEBHOOK_INVALID_SIGNATURE"
    return True, None
