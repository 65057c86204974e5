# surveypulse/routers/aggregates.py
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from surveypulse.services.aggregator import aggregate_for

router = APIRouter(prefix="/api/aggregates", tags=["aggregates"])
logger = logging.getLogger(__name__)


@router.get("")
def get_aggregates(request: Request, companyId: Optional[str] = None, surveyId: Optional[str] = None):
    """Company-level metrics for the dashboard; no respondent data leaves here."""
    try:
        return aggregate_for(request.app.state.store, companyId, surveyId)
    except Exception as e:
        logger.exception("GET /api/aggregates error")
        return JSONResponse(status_code=500, content={"error": str(e) or "internal server error"})
