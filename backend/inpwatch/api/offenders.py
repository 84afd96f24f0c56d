"""Top Offenders reporting endpoints."""
import csv
import io
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inpwatch.config import settings
from inpwatch.constants import SELECTOR_MAX_LENGTH
from inpwatch.database import get_db
from inpwatch.schemas.events import SelectorEvent
from inpwatch.schemas.reports import TopOffendersPage
from inpwatch.services.query_router import QueryRouter
from inpwatch.utils.clock import utc_now
from inpwatch.utils.exceptions import handle_database_error
from inpwatch.utils.logger import logger
from inpwatch.utils.serialization import csv_cell, serialize_datetime

router = APIRouter(prefix="/api", tags=["offenders"])

OFFENDERS_CSV_HEADER = [
    "selector",
    "p75_ms",
    "avg_ms",
    "worst_ms",
    "events",
    "sample_url",
    "lookback_days",
    "min_events",
    "url_filter",
]

EVENTS_CSV_HEADER = [
    "selector",
    "inp_ms",
    "long_task_ms",
    "device_type",
    "page_url",
    "timestamp",
]


def get_query_router(db: Session = Depends(get_db)) -> QueryRouter:
    """Dependency for a request-scoped query router."""
    return QueryRouter(db, settings)


@router.get("/offenders", response_model=TopOffendersPage)
def top_offenders(
    days: int = Query(settings.default_lookback_days, ge=1, description="Lookback window in days"),
    min_events: int = Query(settings.default_min_events, ge=1, description="Minimum samples per selector"),
    url: str = Query("", description="Only pages whose URL contains this text"),
    limit: int = Query(settings.default_limit, ge=1),
    offset: int = Query(0, ge=0),
    prefer_rollups: Optional[bool] = Query(None, description="Serve from daily rollups when available"),
    query_router: QueryRouter = Depends(get_query_router),
) -> TopOffendersPage:
    """
    Selectors ranked by p75 interaction latency.

    When served from rollups, ``avg`` is the count-weighted mean of daily
    medians rather than a true mean.
    """
    try:
        return query_router.top_offenders(
            lookback_days=days,
            min_events=min_events,
            url_contains=url,
            limit=limit,
            offset=offset,
            prefer_rollups=prefer_rollups,
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch top offenders: {e}", exc_info=True)
        raise handle_database_error(e, "top offenders query")


@router.get("/offenders/events", response_model=List[SelectorEvent])
def selector_events(
    selector: str = Query(..., min_length=1, max_length=SELECTOR_MAX_LENGTH),
    days: int = Query(settings.default_lookback_days, ge=1),
    url: str = Query(""),
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    query_router: QueryRouter = Depends(get_query_router),
) -> List[SelectorEvent]:
    """Recent raw samples for one selector, newest first."""
    try:
        return query_router.selector_events(
            selector,
            lookback_days=days,
            url_contains=url,
            limit=limit,
            offset=offset,
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch events for selector {selector}: {e}", exc_info=True)
        raise handle_database_error(e, "selector events query")


@router.get("/offenders/export")
def export_offenders_csv(
    days: int = Query(settings.default_lookback_days, ge=1),
    min_events: int = Query(settings.default_min_events, ge=1),
    url: str = Query(""),
    selector: str = Query("", max_length=SELECTOR_MAX_LENGTH),
    prefer_rollups: Optional[bool] = Query(None),
    query_router: QueryRouter = Depends(get_query_router),
) -> Response:
    """
    Export Top Offenders, or one selector's raw events, as CSV.

    Pages through the query router in ``export_chunk_size`` chunks and
    returns the document in one response.
    """
    buffer = io.StringIO()
    buffer.write("\ufeff")  # helps Excel recognize UTF-8
    writer = csv.writer(buffer)
    # Pages larger than query_max_limit come back short and would end the loop
    chunk = min(settings.export_chunk_size, settings.query_max_limit)
    now = utc_now()

    try:
        if selector:
            writer.writerow(EVENTS_CSV_HEADER)
            offset = 0
            while True:
                events = query_router.selector_events(
                    selector, lookback_days=days, url_contains=url, limit=chunk, offset=offset, now=now
                )
                for event in events:
                    writer.writerow([
                        csv_cell(event.target_selector),
                        event.interaction_latency_ms,
                        event.long_task_ms or 0,
                        csv_cell(event.device_class),
                        csv_cell(event.page_url),
                        csv_cell(serialize_datetime(event.timestamp)),
                    ])
                if len(events) < chunk:
                    break
                offset += chunk
        else:
            writer.writerow(OFFENDERS_CSV_HEADER)
            offset = 0
            while True:
                page = query_router.top_offenders(
                    lookback_days=days,
                    min_events=min_events,
                    url_contains=url,
                    limit=chunk,
                    offset=offset,
                    prefer_rollups=prefer_rollups,
                    now=now,
                )
                for row in page.rows:
                    writer.writerow([
                        csv_cell(row.selector),
                        row.p75,
                        row.avg,
                        row.worst,
                        row.events,
                        csv_cell(row.example_url),
                        days,
                        min_events,
                        csv_cell(url),
                    ])
                if len(page.rows) < chunk:
                    break
                offset += chunk
    except SQLAlchemyError as e:
        logger.error(f"Failed to export offenders CSV: {e}", exc_info=True)
        raise handle_database_error(e, "offenders export")

    filename = f"inp-top-offenders-{now.strftime('%Y%m%d-%H%M%S')}.csv"
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Cache-Control": "no-store",
        },
    )
