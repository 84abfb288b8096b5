"""Merchant payment references.

A reference is derived from (order_id, attempt) alone, so replaying an
initiation for the same attempt presents the same reference to the provider
and cannot create a second charge. A new attempt (after a failed or
cancelled payment) gets a new reference.
"""

import hashlib
import re

REFERENCE_PATTERN = re.compile(r"^FT_[A-Z0-9]{1,8}_[0-9]+_[A-Z0-9]{12}$")


def generate_payment_reference(order_id: str, attempt: int = 1) -> str:
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    digest = hashlib.sha256(f"{order_id}:{attempt}".encode()).hexdigest()[:12]
    tail = re.sub(r"[^A-Za-z0-9]", "", order_id)[-8:] or "0"
    return f"FT_{tail}_{attempt}_{digest}".upper()
