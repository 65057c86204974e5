from __future__ import annotations


class SurveyPulseError(Exception):
    # Base class for domain errors (intended, meaningful failures).
    pass


class SubmissionError(SurveyPulseError):
    # Raised when a submission is missing required fields. Maps to HTTP 400.
    pass


class StorageNotFound(SurveyPulseError):
    # Raised when a storage backend has no object at the requested path.
    pass
