"""
Analytics routes.

Endpoints:
- GET /summary - Aggregated activity for the dashboard
- GET /export - Raw events as CSV
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ...exporters import analytics_filename
from ...lib import get_current_user
from ...lib.analytics import AnalyticsService


router = APIRouter()


@router.get("/summary")
async def get_summary(
    days: int = Query(30, ge=1, le=365),
    user: dict = Depends(get_current_user)
):
    """
    Summarise the last `days` days of activity.

    Returns:
    - totals: sermonsCreated, contentGenerated, contentExported, devotionalsViewed
    - contentByType, exportsByFormat
    - dailyActivity: [{date, count}]
    - mostPopularContentType
    """
    service = AnalyticsService()
    return service.summary(user["id"], days)


@router.get("/export")
async def export_events(
    days: int = Query(90, ge=1, le=365),
    user: dict = Depends(get_current_user)
):
    service = AnalyticsService()
    body = service.export_csv(user["id"], days)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{analytics_filename()}"'},
    )
