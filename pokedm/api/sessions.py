"""
Session management API endpoints.

Sessions are created implicitly by the first turn; these endpoints read and
delete them and manage their canon reference cache. Cache writes hold the
session lock so they never race a turn's commit.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from pokedm.schemas.session import CANON_CACHE_KINDS
from pokedm.services import Services, get_services
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _check_kind(kind: Optional[str]) -> None:
    if kind is not None and kind not in CANON_CACHE_KINDS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown canon kind '{kind}'; expected one of {', '.join(CANON_CACHE_KINDS)}",
        )


async def _require_session(services: Services, session_id: str) -> None:
    if await services.storage.revision(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")


@router.get("", response_model=List[str])
async def list_sessions(
    campaign_id: Optional[str] = Query(None, description="Only sessions of this campaign"),
    services: Services = Depends(get_services),
):
    """List session ids"""
    return await services.storage.list(campaign_id)


@router.get("/{session_id}")
async def get_session(session_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    """
    Get the full session document

    Raises:
        HTTPException 404: Session not found
    """
    document = await services.storage.load(session_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return document


@router.delete("/{session_id}")
async def delete_session(session_id: str, services: Services = Depends(get_services)):
    """Delete a session"""
    async with services.locks.hold(session_id):
        deleted = await services.storage.delete(session_id)
        services.canon_cache.forget_session(session_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Session not found")
    logger.info(f"Session {session_id} deleted via API")
    return {"deleted": True, "session_id": session_id}


@router.get("/{session_id}/canon/{kind}/{key}")
async def get_canon_entry(
    session_id: str, kind: str, key: str, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """
    Cached reference entry, fetched and cached on a miss

    Raises:
        HTTPException 400: Unknown kind
        HTTPException 404: Session or entry not found
    """
    _check_kind(kind)
    async with services.locks.hold(session_id):
        await _require_session(services, session_id)
        data = await services.canon_cache.lookup(session_id, kind, key)
    if data is None:
        raise HTTPException(status_code=404, detail=f"No {kind} entry '{key}'")
    return {"kind": kind, "key": key, "data": data}


@router.put("/{session_id}/canon/{kind}/{key}")
async def put_canon_entry(
    session_id: str,
    kind: str,
    key: str,
    data: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Store a reference entry, evicting the oldest of its kind when full"""
    _check_kind(kind)
    async with services.locks.hold(session_id):
        await _require_session(services, session_id)
        cached = await services.canon_cache.set(session_id, kind, key, data)
    logger.info(f"Cached {kind}/{key} for {session_id} via API")
    return {
        "kind": kind,
        "key": key,
        "cached_at": cached.cached_at_ms,
        "expires_at": cached.expires_at_ms,
        "evicted": cached.evicted,
    }


@router.delete("/{session_id}/canon")
async def clear_canon_cache(
    session_id: str,
    kind: Optional[str] = Query(None, description="Only clear this kind"),
    services: Services = Depends(get_services),
):
    """Clear one kind, or every kind, of the session's reference cache"""
    _check_kind(kind)
    async with services.locks.hold(session_id):
        await _require_session(services, session_id)
        await services.canon_cache.invalidate(session_id, kind)
    return {"cleared": kind or "all", "session_id": session_id}
