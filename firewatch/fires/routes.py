from typing import Any, Dict

from fastapi import APIRouter, Request

from firewatch.services import get_fire_service, get_stats_service

router = APIRouter(prefix="/api/firms/fires", tags=["fires"])


@router.get("")
async def get_fires(request: Request) -> Dict[str, Any]:
    """Hotspots for dt/dr, paginated unless all=true.

    Query params: dt (YYYY-MM-DD), dr (days), hi/hf (HH:MM window),
    sort, page, limit, all.
    """
    return await get_fire_service().list_formatted_paginated(dict(request.query_params))


@router.get("/locations")
async def get_fire_locations(request: Request) -> Dict[str, Any]:
    return await get_fire_service().list_all_with_location(dict(request.query_params))


@router.get("/stats")
async def get_fire_stats(request: Request) -> Dict[str, Any]:
    return await get_stats_service().stats(dict(request.query_params))


@router.get("/weekly-stats")
async def get_weekly_fire_stats() -> Dict[str, Any]:
    return await get_stats_service().weekly_stats()
