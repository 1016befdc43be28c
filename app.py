import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from countries import CountryData
from models import DEFAULT_TOP_LIMIT, VisitTracker
from schema import COUNTRY_CODE_PATTERN, ApiResponse, TrackVisitRequest, TrackVisitsRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/visits", tags=["visits"])


def get_tracker(request: Request) -> VisitTracker:
    return request.app.state.tracker


def get_countries(request: Request) -> CountryData:
    return request.app.state.tracker.countries


@router.post("/track", response_model=ApiResponse)
def track_visit(req: TrackVisitRequest, tracker: VisitTracker = Depends(get_tracker)):
    result = tracker.track_visit(req.country_code)
    return ApiResponse(message="Visit tracked successfully", data=result)


@router.post("/track/batch", response_model=ApiResponse)
def track_visits(req: TrackVisitsRequest, tracker: VisitTracker = Depends(get_tracker)):
    visits = tracker.track_visits(req.country_codes)
    return ApiResponse(
        message="Visits tracked successfully",
        data={"visits": visits, "total": len(visits)},
    )


@router.get("/stats", response_model=ApiResponse)
def get_stats(tracker: VisitTracker = Depends(get_tracker)):
    stats = tracker.get_statistics_cached()
    logger.info(f"Statistics retrieved for {len(stats)} countries")
    return ApiResponse(message="Statistics retrieved successfully", data=stats)


@router.get("/stats/{country_code}", response_model=ApiResponse)
def get_country_stats(
    country_code: str = Path(..., min_length=2, max_length=2, pattern=COUNTRY_CODE_PATTERN),
    tracker: VisitTracker = Depends(get_tracker),
):
    count = tracker.get_country_stats(country_code)
    return ApiResponse(
        message="Country statistics retrieved successfully",
        data={"country": country_code.lower(), "count": count},
    )


@router.get("/top", response_model=ApiResponse)
def get_top_countries(
    limit: int = Query(DEFAULT_TOP_LIMIT, ge=1, le=100),
    tracker: VisitTracker = Depends(get_tracker),
):
    countries = tracker.get_top_countries(limit)
    logger.info(f"Top countries retrieved (limit={limit}, returned={len(countries)})")
    return ApiResponse(
        message="Top countries retrieved successfully",
        data={"limit": limit, "countries": countries},
    )


@router.get("/total", response_model=ApiResponse)
def get_total_visits(tracker: VisitTracker = Depends(get_tracker)):
    total = tracker.get_total_visits()
    return ApiResponse(message="Total visits retrieved successfully", data={"total": total})


@router.delete("/reset", response_model=ApiResponse)
def reset_statistics(tracker: VisitTracker = Depends(get_tracker)):
    result = tracker.reset_statistics()
    logger.warning("Visit statistics were reset")
    return ApiResponse(message="Statistics reset successfully", data=result)


@router.get("/countries", response_model=ApiResponse)
def list_countries(
    search: Optional[str] = None,
    popular: bool = False,
    countries: CountryData = Depends(get_countries),
):
    if search:
        result = countries.search(search)
    elif popular:
        result = countries.get_popular_countries()
    else:
        result = countries.get_countries_for_dropdown()

    return ApiResponse(
        message="Countries retrieved successfully",
        data={"countries": result, "total": len(result)},
    )


@router.get("/countries/{country_code}", response_model=ApiResponse)
def get_country(
    country_code: str = Path(..., min_length=2, max_length=2, pattern=COUNTRY_CODE_PATTERN),
    tracker: VisitTracker = Depends(get_tracker),
):
    name = tracker.get_country_name(country_code)
    if name is None:
        raise HTTPException(status_code=404, detail="Country not found")

    return ApiResponse(
        message="Country information retrieved successfully",
        data={"code": country_code.lower(), "name": name},
    )
