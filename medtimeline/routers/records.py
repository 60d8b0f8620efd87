import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query

from medtimeline.errors import (
    AccessDenied,
    InvalidCompositeId,
    RecordNotFound,
    SourceUnavailable,
)
from medtimeline.models.access import RequesterContext, Role
from medtimeline.models.record import IndexEntry, SourceFilters
from medtimeline.services.record_index import list_index
from medtimeline.services.sensitivity import project_record
from medtimeline.services.timeline import get_timeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/records", tags=["records"])


@router.get("", response_model=list[IndexEntry])
async def list_records(
    role: Role = Query(...),
    requester_id: str | None = Query(None),
    dependent_id: list[str] = Query([]),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
):
    """List the medical histories visible to the requester.

    Patients see their own history and those of their dependents; admins see
    every history (page-capped); clinicians see the patients they attended.
    """
    requester = RequesterContext(requester_id=requester_id, dependent_ids=dependent_id)
    try:
        return await list_index(role, requester, limit=limit, offset=offset)
    except AccessDenied as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from None
    except SourceUnavailable:
        logger.exception("Record index unavailable")
        raise HTTPException(status_code=503, detail="Clinical store unavailable, retry later") from None


@router.get("/{composite_id}")
async def get_record(
    composite_id: str,
    role: Role = Query(...),
    requester_id: str | None = Query(None),
    dependent_id: list[str] = Query([]),
    reveal_sensitive: bool = Query(False),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
):
    """Get one patient's unified, chronologically ordered medical record.

    Sensitive contact fields (address, phones, email) are omitted unless
    ``reveal_sensitive`` is set.
    """
    requester = RequesterContext(requester_id=requester_id, dependent_ids=dependent_id)
    filters = SourceFilters(date_from=date_from, date_to=date_to)
    try:
        record = await get_timeline(composite_id, role=role, requester=requester, filters=filters)
    except InvalidCompositeId as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None
    except AccessDenied as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from None
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Medical record not found") from None
    except SourceUnavailable:
        logger.exception("Timeline unavailable for %s", composite_id)
        raise HTTPException(status_code=503, detail="Clinical store unavailable, retry later") from None
    return project_record(record, reveal_sensitive)
