# surveypulse/routers/responses.py
import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from surveypulse.errors import SubmissionError
from surveypulse.services.submission import submit

router = APIRouter(prefix="/api/responses", tags=["responses"])
logger = logging.getLogger(__name__)


# ---------- Models ----------

class ResponseIn(BaseModel):
    companyId: Optional[Union[str, int]] = None
    surveyId: Optional[Union[str, int]] = None
    respondentId: Optional[Union[str, int]] = None
    answers: Optional[Any] = None  # {questionId: value}
    # legacy single-answer shape
    question: Optional[Union[str, int]] = None
    response: Optional[Any] = None


# ---------- Routes ----------

@router.post("")
async def create_response(payload: ResponseIn, request: Request):
    """
    Store one survey response and tell every live dashboard about it.
    Missing companyId/surveyId/answers -> 400, nothing stored.
    """
    state = request.app.state
    try:
        saved = await submit(state.store, state.notifier, payload.model_dump())
    except SubmissionError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.exception("POST /api/responses error")
        return JSONResponse(status_code=500, content={"error": str(e) or "internal server error"})
    return {"ok": True, "response": saved}
