"""Google OAuth helper for the Calendar API.

Runs the installed-app OAuth flow, stores the authorized-user token, loads
and refreshes it, and builds the Calendar v3 service.  Tokens live in
``$GCAL_TOKEN_DIR`` (by default ``~/.config/gcal-cli/tokens``).  The OAuth
client comes from ``client_secret.json`` in ``$GCAL_CREDENTIALS_DIR`` or from
``GOOGLE_CLIENT_ID`` / ``GOOGLE_CLIENT_SECRET``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import google.oauth2.credentials
import httpx
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from gcal.config import GcalSettings
from gcal.errors import ApiError

logger = logging.getLogger(__name__)

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"

SCOPES = [CALENDAR_SCOPE]

# Requested at login so ``gcal auth --status`` can show the account email.
LOGIN_SCOPES = [CALENDAR_SCOPE, "https://www.googleapis.com/auth/userinfo.email", "openid"]

CLIENT_SECRET_FILENAME = "client_secret.json"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
HTTP_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

# ---------------------------------------------------------------------------
# Silence discovery-cache logging (pollutes MCP stdio otherwise)
# ---------------------------------------------------------------------------

GOOGLEAPI_LOGGER_NAMES = ("googleapiclient.discovery_cache", "googleapiclient.discovery")


def _silence_googleapi_logging() -> None:
    for logger_name in GOOGLEAPI_LOGGER_NAMES:
        noisy = logging.getLogger(logger_name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
        if not noisy.handlers:
            noisy.addHandler(logging.NullHandler())


_silence_googleapi_logging()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _extract_token_scopes(token_data: Dict[str, Any]) -> set[str]:
    """Extract OAuth scopes from a stored token payload."""
    scopes_field = token_data.get("scopes")
    if isinstance(scopes_field, list):
        return set(scopes_field)

    scope_field = token_data.get("scope")
    if isinstance(scope_field, str):
        return set(scope_field.split())

    return set()


def get_token_path(user_email: str, settings: Optional[GcalSettings] = None) -> Path:
    """Return the path for a user's stored token file."""
    settings = settings or GcalSettings()
    filename = user_email.replace("@", "_at_").replace(".", "_") + ".json"
    return settings.resolved_token_dir / filename


def get_credentials(
    user_email: str, settings: Optional[GcalSettings] = None
) -> Optional[Any]:
    """Load and refresh stored credentials for *user_email*.

    Returns a Credentials object, or None if no valid token exists.
    """
    token_path = get_token_path(user_email, settings)
    if not token_path.exists():
        logger.debug("No token file at %s", token_path)
        return None

    with open(token_path, "r", encoding="utf-8") as fh:
        token_data = json.load(fh)

    if not set(SCOPES).issubset(_extract_token_scopes(token_data)):
        logger.debug("Token at %s lacks the calendar scope", token_path)
        return None

    creds = google.oauth2.credentials.Credentials.from_authorized_user_info(
        token_data, SCOPES
    )

    if creds and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            logger.warning("Token refresh failed for %s: %s", user_email, exc)
            return None
        store_credentials(user_email, creds, settings)

    return creds if creds and not creds.expired else None


def store_credentials(
    user_email: str, credentials: Any, settings: Optional[GcalSettings] = None
) -> None:
    """Persist credentials to the token file."""
    token_path = get_token_path(user_email, settings)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    with open(token_path, "w", encoding="utf-8") as fh:
        fh.write(credentials.to_json())
    token_path.chmod(0o600)


def load_token_data(
    user_email: str, settings: Optional[GcalSettings] = None
) -> Optional[Dict[str, Any]]:
    """Return the raw stored token payload, or None when there is none."""
    token_path = get_token_path(user_email, settings)
    if not token_path.exists():
        return None
    with open(token_path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def delete_credentials(user_email: str, settings: Optional[GcalSettings] = None) -> bool:
    """Remove the stored token file; return False when there was none."""
    token_path = get_token_path(user_email, settings)
    if not token_path.exists():
        return False
    token_path.unlink()
    logger.info("Removed stored token %s", token_path)
    return True


# ---------------------------------------------------------------------------
# OAuth login
# ---------------------------------------------------------------------------


def load_client_config(settings: Optional[GcalSettings] = None) -> Dict[str, Any]:
    """Return the OAuth client config for the installed-app flow."""
    settings = settings or GcalSettings()
    secret_path = settings.credentials_dir / CLIENT_SECRET_FILENAME
    if secret_path.is_file():
        try:
            with open(secret_path, "r", encoding="utf-8") as fh:
                client_config = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise ApiError(
                f"Cannot read OAuth client file {secret_path}: {exc}", code="AUTH_REQUIRED"
            ) from exc
        if "installed" not in client_config and "web" not in client_config:
            raise ApiError(
                f"{secret_path} is not an OAuth client file", code="AUTH_REQUIRED"
            )
        return client_config

    if settings.google_client_id and settings.google_client_secret:
        return {
            "installed": {
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": ["http://localhost"],
            }
        }

    raise ApiError(
        f"No OAuth client credentials found. Place {CLIENT_SECRET_FILENAME} in "
        f"{settings.credentials_dir} or set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.",
        code="AUTH_REQUIRED",
    )


FlowFactory = Callable[[Dict[str, Any], list], Any]


def run_oauth_flow(
    user_email: str,
    settings: Optional[GcalSettings] = None,
    *,
    open_browser: bool = True,
    flow_factory: Optional[FlowFactory] = None,
) -> Any:
    """Authorize in the browser and store the resulting token for *user_email*."""
    client_config = load_client_config(settings)
    factory = flow_factory or InstalledAppFlow.from_client_config
    flow = factory(client_config, LOGIN_SCOPES)
    try:
        credentials = flow.run_local_server(
            port=0,
            open_browser=open_browser,
            authorization_prompt_message="Open this URL to authenticate:\n{url}",
            success_message="Authentication complete. You can close this window.",
        )
    except Exception as exc:
        raise ApiError(f"Authentication failed: {exc}", code="AUTH_REQUIRED") from exc

    store_credentials(user_email, credentials, settings)
    logger.info("Stored credentials for %s", user_email)
    return credentials


async def fetch_user_email(
    access_token: str, *, transport: Optional[httpx.AsyncBaseTransport] = None
) -> Optional[str]:
    """Look up the account email for *access_token*; None when unavailable."""
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=transport) as client:
            resp = await client.get(
                USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.debug("Userinfo lookup failed: %s", exc)
        return None

    email = resp.json().get("email")
    return email if isinstance(email, str) else None


async def revoke_token(
    token: str, *, transport: Optional[httpx.AsyncBaseTransport] = None
) -> bool:
    """Revoke *token* with Google; return whether Google accepted it."""
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=transport) as client:
            resp = await client.post(
                REVOKE_URL,
                params={"token": token},
                headers={"content-type": "application/x-www-form-urlencoded"},
            )
    except httpx.HTTPError as exc:
        logger.warning("Token revocation failed: %s", exc)
        return False
    return resp.status_code == 200


# ---------------------------------------------------------------------------
# Service factory
# ---------------------------------------------------------------------------


def get_calendar_service(user_email: str, settings: Optional[GcalSettings] = None) -> Any:
    """Return an authenticated Google Calendar v3 service."""
    credentials = get_credentials(user_email, settings)
    if not credentials:
        raise ValueError(
            f"No valid credentials found for {user_email} "
            f"(expected a token at {get_token_path(user_email, settings)}). "
            "Run `gcal auth` to authenticate."
        )
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


__all__ = [
    "CALENDAR_SCOPE",
    "LOGIN_SCOPES",
    "SCOPES",
    "delete_credentials",
    "fetch_user_email",
    "get_calendar_service",
    "get_credentials",
    "get_token_path",
    "load_client_config",
    "load_token_data",
    "revoke_token",
    "run_oauth_flow",
    "store_credentials",
]
