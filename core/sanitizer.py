# core/sanitizer.py
"""
Length bounding for free-text submission fields
"""

from dataclasses import replace

from core.validator import Submission

MAX_SUBJECT_LENGTH = 100
MAX_NAME_LENGTH = 50
MAX_MESSAGE_LENGTH = 2000


def truncate(value: str, limit: int) -> str:
    return value[:limit]


def sanitize_submission(submission: Submission) -> Submission:
    """
    Truncate subject, name and message to their bounded lengths.

    Values are not escaped here; escaping happens at template render time.
    """
    return replace(
        submission,
        subject=truncate(submission.subject, MAX_SUBJECT_LENGTH),
        name=truncate(submission.name, MAX_NAME_LENGTH),
        message=truncate(submission.message, MAX_MESSAGE_LENGTH),
    )
