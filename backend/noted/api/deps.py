"""Shared route dependencies: caller identity and cron authorization."""
import hmac

from fastapi import Header, HTTPException

from noted.config import settings


def current_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str:
    """Authentication happens upstream; the gateway forwards the user id in X-User-Id."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return user_id


def require_cron_secret(authorization: str | None = Header(None)) -> None:
    """When CRON_SECRET is set, triggers must send 'Authorization: Bearer <CRON_SECRET>'."""
    secret = settings.cron_secret
    if not secret:
        return
    if not hmac.compare_digest((authorization or "").strip(), f"Bearer {secret}"):
        raise HTTPException(status_code=401, detail="Unauthorized")
