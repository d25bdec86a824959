from __future__ import annotations

from typing import Callable

from fastapi import Header, HTTPException


def api_key_guard(api_key: str | None) -> Callable[..., None]:
    """Dependency requiring X-API-Key to equal `api_key`; a no-op when it is unset."""

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        if not api_key:
            return
        if (x_api_key or "") != api_key:
            raise HTTPException(status_code=401, detail="invalid API key")

    return require_api_key


def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Owner id as forwarded by the authenticating gateway."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="unauthorized")
    return user_id
