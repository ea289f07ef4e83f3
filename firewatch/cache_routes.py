from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from firewatch.cache import LOCATION_CACHE_PREFIX, get_cache_service, get_location_cache
from firewatch.settings import S

router = APIRouter(prefix="/api/firms/cache", tags=["cache"])

LOCAL_HOSTS = ("127.0.0.1", "::1", "localhost")


class CacheClearRequest(BaseModel):
    include_locations: bool = Field(
        default=False, description="Also delete shared reverse-geocoding results from Redis."
    )
    dry_run: bool = Field(default=False, description="Report what would be cleared without clearing anything.")


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


def _is_local(request: Request) -> bool:
    host = request.client.host if request.client else ""
    return host in LOCAL_HOSTS


async def _require_cache_admin(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    x_admin_token: Optional[str] = Header(default=None),
) -> None:
    """Admin guard shared by every /api/firms/cache endpoint.

    Needs CACHE_CLEAR_TOKEN on the server. Unless CACHE_CLEAR_LOCAL_ONLY=false,
    callers must also be on localhost.
    """
    expected = (S.cache_clear_token or "").strip()
    if not expected:
        raise HTTPException(status_code=503, detail="Cache admin is disabled (CACHE_CLEAR_TOKEN not set).")
    if S.cache_clear_local_only and not _is_local(request):
        raise HTTPException(status_code=403, detail="Cache admin is restricted to localhost.")

    provided = _extract_bearer(authorization) or (x_admin_token or "").strip()
    if provided != expected:
        raise HTTPException(status_code=401, detail="Unauthorized.")


@router.get("/status")
async def cache_status(_: Any = Depends(_require_cache_admin)) -> Dict[str, Any]:
    return {"ok": True, **get_cache_service().status()}


@router.post("/clear")
async def cache_clear(req: CacheClearRequest, _: Any = Depends(_require_cache_admin)) -> Dict[str, Any]:
    cache = get_cache_service()
    cleared = cache.status()["stores"]
    if not req.dry_run:
        cache.clear_all()

    out: Dict[str, Any] = {"ok": True, "cleared": cleared, "dry_run": req.dry_run}
    if req.include_locations:
        location_cache = get_location_cache()
        if location_cache is None:
            raise HTTPException(status_code=400, detail="Location cache is not enabled (LOCATION_CACHE_ENABLE).")
        out["locations"] = await location_cache.clear_prefixes([LOCATION_CACHE_PREFIX], dry_run=req.dry_run)
    return out


@router.post("/enable")
async def cache_enable(_: Any = Depends(_require_cache_admin)) -> Dict[str, Any]:
    get_cache_service().enable()
    return {"ok": True, "enabled": True}


@router.post("/disable")
async def cache_disable(_: Any = Depends(_require_cache_admin)) -> Dict[str, Any]:
    get_cache_service().disable()
    return {"ok": True, "enabled": False}
