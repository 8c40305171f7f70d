"""
QR token issuance.

Reached by an anonymous QR scan: mints a table token and sends the guest
to the customer menu. Browsers get a 302; fetch clients (Accept:
application/json or X-Requested-With: XMLHttpRequest) get
``{"redirectUrl", "token"}`` with an open CORS origin.
"""

from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from shared.config.constants import ErrorMessages
from shared.config.logging import rest_api_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.infrastructure.events import RealtimeNotifier, table_token_events
from shared.security.rate_limit import limiter
from shared.utils.exceptions import AppException, NotFoundError
from rest_api.core.dependencies import get_notifier
from rest_api.services.domain.table_token_service import TableTokenService

router = APIRouter(prefix="/api/qr", tags=["qr"])

QR_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Accept, X-Requested-With",
}


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "code": code},
        headers=QR_CORS_HEADERS,
    )


def _parse_id(raw: str) -> int | None:
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    value = int(raw)
    return value if value > 0 else None


def wants_json(request: Request) -> bool:
    """Fetch clients ask for JSON; plain browser navigation gets a redirect."""
    accept = request.headers.get("accept", "")
    return (
        "application/json" in accept
        or request.headers.get("x-requested-with") == "XMLHttpRequest"
    )


def menu_url(request: Request, restaurant_id: int, table_id: int, token: str) -> str:
    """Customer menu URL: /{restaurant_id}/{table_id}?token=..."""
    origin = settings.public_base_url.rstrip("/") or str(request.base_url).rstrip("/")
    return f"{origin}/{restaurant_id}/{table_id}?{urlencode({'token': token})}"


@router.options("/{restaurant_id}/{table_id}")
def qr_preflight(restaurant_id: str, table_id: str) -> Response:
    """CORS preflight for fetch-based scanners."""
    return Response(status_code=204, headers=QR_CORS_HEADERS)


@router.get("/{restaurant_id}/{table_id}")
@limiter.limit(settings.qr_rate_limit)
def issue_qr_token(
    request: Request,
    restaurant_id: str,
    table_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> Response:
    """
    Mint a fresh token for the table, revoking the previous ones.

    Errors are JSON ``{"error", "code"}``: 400 for malformed ids, 404 for an
    unknown table, 500 when the token could not be stored.
    """
    rid = _parse_id(restaurant_id)
    tid = _parse_id(table_id)
    if rid is None or tid is None:
        logger.warning("QR scan with bad ids", restaurant_id=restaurant_id, table_id=table_id)
        return _error(400, ErrorMessages.QR_MISSING_IDS, "MISSING_IDS")

    service = TableTokenService(db)
    try:
        issued = service.issue(rid, tid)
    except NotFoundError as e:
        return _error(e.status_code, e.detail, e.code)
    except AppException as e:
        return _error(e.status_code, ErrorMessages.QR_ISSUE_FAILED, e.code)

    events = table_token_events(service.get_tokens(issued.superseded_ids), "UPDATE")
    events += table_token_events([issued.token], "INSERT")
    background_tasks.add_task(notifier.publish_many, events)

    destination = menu_url(request, rid, tid, issued.token.token)
    if wants_json(request):
        return JSONResponse(
            content={"redirectUrl": destination, "token": issued.token.token},
            headers=QR_CORS_HEADERS,
        )
    return RedirectResponse(destination, status_code=302)
