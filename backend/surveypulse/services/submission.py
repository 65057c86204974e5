# surveypulse/services/submission.py
from __future__ import annotations

from typing import Any, Dict, Mapping

from starlette.concurrency import run_in_threadpool

from surveypulse.services.answers import build_record
from surveypulse.services.notifier import ChangeEvent, ChangeNotifier
from surveypulse.services.records import RecordStore


async def submit(store: RecordStore, notifier: ChangeNotifier, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate, persist, then notify.
    Raises SubmissionError before anything is stored; the notifier is only
    called once the insert has returned.
    """
    record = build_record(payload)
    # store I/O may block (local disk, S3); keep it off the event loop
    saved = await run_in_threadpool(store.insert, record)
    notifier.notify(ChangeEvent.from_record(saved))
    return saved
