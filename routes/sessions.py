"""
Session API routes.

Read-only views over the sessions held by this process's relay hub:
snapshot, stats, counted workbook and join link.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse
import structlog

from config import settings
from exceptions import AppError, SessionNotFoundError
from models.product import InventoryStats
from models.session import SessionData
from services.counting_service import build_share_url
from services.export_service import export_file_name, get_export_service
from services.reconcile_service import compute_stats
from services.relay_service import get_relay_hub

logger = structlog.get_logger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def _get_session(session_id: str) -> SessionData:
    session = get_relay_hub().get_session(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


# ===================
# ROUTES
# ===================

@router.get("/{session_id}")
async def get_session(session_id: str):
    """
    Current snapshot of a relay session.

    Raises:
        404: Session not found
    """
    try:
        return _get_session(session_id).to_wire()
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/stats", response_model=InventoryStats)
async def get_session_stats(session_id: str):
    """Count totals for a relay session."""
    try:
        return compute_stats(_get_session(session_id).products)
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/export")
async def export_session(session_id: str):
    """
    Download the counted workbook.

    Raises:
        404: Session not found
    """
    try:
        session = _get_session(session_id)
        output = get_export_service().generate_inventory_excel(
            session.products,
            session.original_headers,
            session.column_mapping,
        )
        filename = export_file_name(session.file_name)

        logger.info("session_exported", session_id=session_id, filename=filename)

        return StreamingResponse(
            output,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/share")
async def share_session(session_id: str):
    """Join link for the QR code shown to the scanning device."""
    try:
        session = _get_session(session_id)
        return {
            "session_id": session.session_id,
            "url": build_share_url(settings.share_base_url, session.session_id),
        }
    except Exception as e:
        return handle_error(e)
