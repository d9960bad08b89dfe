"""
Telegram Mini App login endpoint.

Exchanges signed ``initData`` for an auth-provider session. This handler is
the single error boundary of the login: every failure is logged with its
cause and answered as ``{"error": message}`` (400, or 500 when the service
is not configured). Tokens are only ever returned on full success.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from gym_access.deps import AppSettings, AuthClientFactoryDep, DBSession
from gym_access.errors import AppError, ConfigurationError
from gym_access.services.identity import TelegramLogin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["auth"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _json(payload: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(payload, status_code=status_code, headers=CORS_HEADERS)


@router.api_route(
    "/telegram-auth",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
async def telegram_auth(
    request: Request,
    db: DBSession,
    app_settings: AppSettings,
    client_factory: AuthClientFactoryDep,
):
    """Verify initData and return a session for the bound account."""
    if request.method == "OPTIONS":
        return PlainTextResponse("ok", headers=CORS_HEADERS)

    if request.method != "POST":
        return _json({"error": "Method not allowed"}, 405)

    try:
        config = app_settings.telegram_auth_config()
    except ConfigurationError as e:
        logger.error(f"[telegram-auth] {e.message}")
        return _json({"error": e.message}, 500)

    try:
        payload = await request.json()
    except ValueError:
        return _json({"error": "Invalid JSON body."}, 400)

    init_data = payload.get("initData") if isinstance(payload, dict) else None
    init_data = init_data.strip() if isinstance(init_data, str) else ""
    if not init_data:
        return _json({"error": "initData is required."}, 400)

    try:
        result = await TelegramLogin(db, client_factory(config), config).login(init_data)
    except AppError as e:
        cause = f" (cause: {e.__cause__!r})" if e.__cause__ else ""
        logger.warning(f"[telegram-auth] failed: {e.message}{cause}")
        return _json({"error": e.message}, e.status_code if isinstance(e, ConfigurationError) else 400)
    except Exception as e:
        logger.exception(f"[telegram-auth] unexpected failure: {e}")
        return _json({"error": "Unexpected error"}, 400)

    return _json(result.to_response(), 200)
