"""Sender identity hashing."""

import hashlib


def normalize_sender(sender_id: int | str) -> str:
    """Canonical form of a transport identity."""
    return str(sender_id).strip().lower()


def hash_sender(sender_id: int | str, salt: str = "") -> str:
    """Return the SHA-256 hex digest used as the session key for a sender."""
    payload = f"{salt}{normalize_sender(sender_id)}".encode()
    return hashlib.sha256(payload).hexdigest()


def mask_sender(sender_id: int | str) -> str:
    """Log-safe form of a sender identity."""
    normalized = normalize_sender(sender_id)
    if len(normalized) <= 4:
        return "****"
    return f"***{normalized[-4:]}"
