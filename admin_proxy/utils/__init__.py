import hashlib
from typing import Optional


def mask_token(text: str, token: Optional[str]) -> str:
    if not token:
        return text
    # Short tokens are hidden entirely; a prefix would reveal most of them
    visible = token[:4] if len(token) > 8 else ""
    return text.replace(token, f"{visible}****")


def token_fingerprint(token: Optional[str]) -> str:
    """Stable, low-leak identifier for a credential, safe to log."""
    if not token:
        return "<empty>"
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
    return f"len={len(token)} sha256={digest}"
