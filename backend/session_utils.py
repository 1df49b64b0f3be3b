import base64
import hashlib
import hmac
import json
import time
from typing import Any

import config


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("ascii"))


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def _session_secret() -> bytes:
    if not config.SESSION_SECRET:
        raise RuntimeError("SESSION_SECRET is required")
    return config.SESSION_SECRET.encode("utf-8")


def _sign(payload_part: str) -> bytes:
    return hmac.new(_session_secret(), payload_part.encode("ascii"), hashlib.sha256).digest()


def create_session_token(wallet_address: str, role: str = "admin", ttl_seconds: int | None = None) -> str:
    ttl = ttl_seconds if ttl_seconds is not None else config.SESSION_TTL_SECONDS
    payload = {
        "wallet": wallet_address.strip(),
        "role": role,
        "exp": int(time.time()) + int(ttl),
    }
    payload_part = _b64url_encode(_canonical_json(payload).encode("utf-8"))
    return f"{payload_part}.{_b64url_encode(_sign(payload_part))}"


def verify_session_token(token: str) -> dict[str, Any]:
    try:
        payload_part, signature_part = token.split(".", 1)
        provided = _b64url_decode(signature_part)
    except (ValueError, UnicodeEncodeError) as exc:
        raise ValueError("Invalid session token format") from exc

    if not hmac.compare_digest(_sign(payload_part), provided):
        raise ValueError("Invalid session token signature")

    payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    if int(payload.get("exp", 0)) < int(time.time()):
        raise ValueError("Session token expired")
    return payload
