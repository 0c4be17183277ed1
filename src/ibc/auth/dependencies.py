"""FastAPI authentication dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from ibc.admin.game_config import GameConfig
from ibc.auth.nip98 import Nip98Error, decode_header, verify_event
from ibc.config import get_settings
from ibc.dependencies import get_game_config
from ibc.errors import Forbidden


def request_url(request: Request) -> str:
    """Absolute URL the client signed, as seen in front of the reverse proxy."""
    settings = get_settings()
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/") + path

    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}{path}"


async def get_current_pubkey(request: Request) -> str:
    """
    Verify the NIP-98 Authorization header and return the caller's pubkey.

    Raises 401 on any verification failure.
    """
    settings = get_settings()
    try:
        event = decode_header(request.headers.get("authorization"))
        body = await request.body() if request.method in ("POST", "PUT", "PATCH", "DELETE") else None
        return verify_event(
            event,
            request_url(request),
            request.method,
            max_skew=settings.nip98_max_skew_seconds,
            body=body,
        )
    except Nip98Error as e:
        raise HTTPException(status_code=401, detail=str(e)) from e


async def require_admin(
    pubkey: str = Depends(get_current_pubkey),
    config: GameConfig = Depends(get_game_config),
) -> str:
    """
    Same as get_current_pubkey but additionally requires an admin pubkey.

    With no admin pubkeys configured, admin access is only open in debug mode.
    """
    if config.admin_pubkeys:
        if pubkey not in config.admin_pubkeys:
            raise Forbidden
    elif not get_settings().debug:
        raise Forbidden
    return pubkey
