# surveypulse/services/aggregator.py
"""
Per-question and per-module statistics computed from raw response records.

Nothing is cached: every call recomputes from the records it is given.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from surveypulse.services.answers import answer_pairs
from surveypulse.services.records import RecordStore

MAX_AGGREGATE_RECORDS = 10_000

AI_READINESS = "ai-readiness"
LEADERSHIP = "leadership"
EMPLOYEE_EXPERIENCE = "employee-experience"
MODULES = (AI_READINESS, LEADERSHIP, EMPLOYEE_EXPERIENCE)

EMPLOYEE_PREFIXES = ("ee", "employee")
EMPLOYEE_THRESHOLD = 7
DEFAULT_THRESHOLD = 4


# ---------- Helpers ----------

def to_number(raw: Any) -> Optional[float]:
    """Coerce an answer value to a finite float; None means skip it."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        val = float(raw)
    elif isinstance(raw, str):
        s = raw.strip()
        if not s:
            return None
        try:
            val = float(s)
        except ValueError:
            return None
    else:
        return None
    return val if math.isfinite(val) else None


def positive_threshold(question_id: str) -> int:
    prefix = question_id.split("-", 1)[0]
    return EMPLOYEE_THRESHOLD if prefix in EMPLOYEE_PREFIXES else DEFAULT_THRESHOLD


def module_for(question_id: str) -> Optional[str]:
    if question_id.startswith("ai-"):
        return AI_READINESS
    if question_id.startswith("leadership-"):
        return LEADERSHIP
    if question_id.startswith("ee-") or question_id.startswith("employee"):
        return EMPLOYEE_EXPERIENCE
    return None


def round1(x: float) -> float:
    # half-up to one decimal
    return math.floor(x * 10 + 0.5 + 1e-9) / 10


def empty_module(response_count: int = 0) -> Dict[str, Any]:
    return {
        "questionScores": [],
        "sectionData": [],
        "summaryMetrics": {
            "positiveAverage": 0,
            "totalQuestions": 0,
            "responseCount": response_count,
            "trend": 0,
        },
    }


# ---------- Aggregation ----------

def question_stats(records: Iterable[Mapping[str, Any]]) -> tuple[Dict[str, Dict[str, float]], int]:
    """Return ({question_id: {sum, count, positiveCount}}, records_scanned)."""
    stats: Dict[str, Dict[str, float]] = {}
    scanned = 0
    for record in records:
        scanned += 1
        for qid, raw in answer_pairs(record):
            val = to_number(raw)
            if val is None:
                continue
            st = stats.setdefault(qid, {"sum": 0.0, "count": 0, "positiveCount": 0})
            st["sum"] += val
            st["count"] += 1
            if val >= positive_threshold(qid):
                st["positiveCount"] += 1
    return stats, scanned


def aggregate(records: Iterable[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Build the three module summaries from an iterable of records."""
    stats, scanned = question_stats(records)
    modules = {name: empty_module(scanned) for name in MODULES}

    for qid, st in stats.items():
        module = module_for(qid)
        if module is None:
            continue
        modules[module]["questionScores"].append({
            "questionId": qid,
            "average": st["sum"] / st["count"],
            "positivePercentage": round1(st["positiveCount"] / st["count"] * 100),
        })

    for summary in modules.values():
        scores: List[Dict[str, Any]] = summary["questionScores"]
        metrics = summary["summaryMetrics"]
        metrics["totalQuestions"] = len(scores)
        if scores:
            mean = sum(q["positivePercentage"] for q in scores) / len(scores)
            metrics["positiveAverage"] = round1(mean)
        else:
            metrics["positiveAverage"] = 0

    return modules


def aggregate_for(store: RecordStore,
                  company_id: Optional[str] = None,
                  survey_id: Optional[str] = None) -> Dict[str, Any]:
    """Fetch the newest matching records from the store and aggregate them."""
    query = {}
    if company_id:
        query["companyId"] = str(company_id)
    if survey_id:
        query["surveyId"] = str(survey_id)
    docs = store.find(query, limit=MAX_AGGREGATE_RECORDS)
    return {"ok": True, "aggregates": aggregate(docs)}
