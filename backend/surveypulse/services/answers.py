# surveypulse/services/answers.py
"""
Answer input comes in two shapes: an ``answers`` mapping of question id to
value, or a legacy single ``question``/``response`` pair. Both are resolved
here into one mapping so nothing downstream has to care which one arrived.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from surveypulse.errors import SubmissionError

REQUIRED_FIELDS_MESSAGE = "companyId, surveyId and answers required"


def normalize_answers(answers: Any = None,
                      question: Any = None,
                      response: Any = None) -> Optional[Dict[str, Any]]:
    """Return the answers as a plain dict, or None when neither shape is present."""
    if answers is not None:
        if not isinstance(answers, Mapping):
            return None
        return {str(k): v for k, v in answers.items()}
    if question and response is not None:
        return {str(question): response}
    return None


def build_record(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a submission body and turn it into a record ready for insertion.
    Raises SubmissionError when companyId, surveyId or answers are missing.
    """
    company_id = payload.get("companyId")
    survey_id = payload.get("surveyId")
    respondent_id = payload.get("respondentId")
    answers = normalize_answers(
        payload.get("answers"),
        payload.get("question"),
        payload.get("response"),
    )
    if not company_id or not survey_id or answers is None:
        raise SubmissionError(REQUIRED_FIELDS_MESSAGE)

    return {
        "companyId": str(company_id),
        "surveyId": str(survey_id),
        "respondentId": str(respondent_id) if respondent_id not in (None, "") else None,
        "answers": answers,
    }


def answer_pairs(record: Mapping[str, Any]) -> Iterator[Tuple[str, Any]]:
    """Yield (question_id, raw_value) for a stored record of either shape."""
    answers = normalize_answers(
        record.get("answers"),
        record.get("question"),
        record.get("response"),
    )
    if answers:
        yield from answers.items()
