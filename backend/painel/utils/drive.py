"""Google OAuth2 refresh-token grant used by the Drive integration."""

import logging
from typing import Optional

import httpx

from ..config import settings

logger = logging.getLogger("painel.drive")

DEFAULT_EXPIRES_IN = 3599


class DriveAuthError(Exception):
    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details


def refresh_access_token(client_id: str, client_secret: str, refresh_token: str, http: httpx.Client) -> dict:
    """Exchange the stored refresh token for a fresh access token."""
    form = {
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }
    try:
        resp = http.post(settings.GOOGLE_TOKEN_URL, data=form)
    except httpx.HTTPError as exc:
        logger.warning("drive_token_request_failed error=%s", exc)
        raise DriveAuthError("Falha ao renovar token do Google Drive", str(exc)) from exc
    if not resp.is_success:
        logger.warning("drive_token_refresh_rejected status=%s", resp.status_code)
        raise DriveAuthError("Falha ao renovar token do Google Drive", resp.text[:500])
    data = resp.json()
    return {
        "access_token": data.get("access_token"),
        "expires_in": data.get("expires_in") or DEFAULT_EXPIRES_IN,
    }
