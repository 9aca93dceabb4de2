"""
Processing status state machine for conversation records.

    pending --claim--> processing --ok--> success            (terminal)
                                   --error--> failed
    failed --retry--> pending      only while retryCount < max_retries
    failed                         terminal once retryCount >= max_retries
    processing --release--> pending   (budget exceeded / processing stopped)

Every status change of a record goes through the helpers in this module;
anything not in VALID_STATUS_TRANSITIONS raises InvalidTransitionError. The
admin reset is the one deliberate bypass and is named as such.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from prospect_dashboard.core.exceptions import InvalidTransitionError
from prospect_dashboard.models import (
    CLASSIFICATION_FIELDS,
    ClassificationResult,
    ProcessedConversation,
    ProcessingStatus,
)
from prospect_dashboard.services.dates import to_iso, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# Valid Transitions
# =============================================================================

VALID_STATUS_TRANSITIONS: Dict[ProcessingStatus, List[ProcessingStatus]] = {
    ProcessingStatus.PENDING: [ProcessingStatus.PROCESSING],
    ProcessingStatus.PROCESSING: [
        ProcessingStatus.SUCCESS,
        ProcessingStatus.FAILED,
        ProcessingStatus.PENDING,
    ],
    ProcessingStatus.SUCCESS: [],
    ProcessingStatus.FAILED: [ProcessingStatus.PENDING],
}


def is_terminal(record: ProcessedConversation, max_retries: int) -> bool:
    """True for success and for failures that exhausted their retries."""
    if record.processingStatus == ProcessingStatus.SUCCESS:
        return True
    return record.processingStatus == ProcessingStatus.FAILED and record.retryCount >= max_retries


def is_retryable(record: ProcessedConversation, max_retries: int) -> bool:
    return record.processingStatus == ProcessingStatus.FAILED and record.retryCount < max_retries


def validate_transition(
    record: ProcessedConversation,
    to_status: ProcessingStatus,
    max_retries: Optional[int] = None,
) -> None:
    """
    Check that ``record`` may move to ``to_status``.

    Raises:
        InvalidTransitionError: If the transition is not allowed, including a
            retry of a terminally failed record.
    """
    from_status = record.processingStatus
    if to_status not in VALID_STATUS_TRANSITIONS.get(from_status, []):
        raise InvalidTransitionError(record.id, from_status.value, to_status.value)
    if (
        from_status == ProcessingStatus.FAILED
        and max_retries is not None
        and record.retryCount >= max_retries
    ):
        raise InvalidTransitionError(record.id, "failed (terminal)", to_status.value)


# =============================================================================
# Transitions
# =============================================================================

def claim(record: ProcessedConversation, token: Optional[str] = None) -> None:
    """pending -> processing, stamped with the claiming batch's lease token."""
    validate_transition(record, ProcessingStatus.PROCESSING)
    record.processingStatus = ProcessingStatus.PROCESSING
    record.claimToken = token


def is_claimed_by(record: ProcessedConversation, token: Optional[str]) -> bool:
    """True while ``record`` is in processing under the claim ``token``."""
    return record.processingStatus == ProcessingStatus.PROCESSING and record.claimToken == token


def release(record: ProcessedConversation) -> None:
    """processing -> pending, for claimed records that were never classified."""
    validate_transition(record, ProcessingStatus.PENDING)
    record.processingStatus = ProcessingStatus.PENDING
    record.claimToken = None


def retry(record: ProcessedConversation, max_retries: int) -> None:
    """failed -> pending, only while retries remain."""
    validate_transition(record, ProcessingStatus.PENDING, max_retries)
    record.processingStatus = ProcessingStatus.PENDING


def complete(
    record: ProcessedConversation,
    result: ClassificationResult,
    now: Optional[datetime] = None,
) -> None:
    """processing -> success (result copied) or processing -> failed (retryCount + 1)."""
    stamp = to_iso(now or utcnow())
    if result.success:
        validate_transition(record, ProcessingStatus.SUCCESS)
        for name, value in result.analysis_fields().items():
            setattr(record, name, value)
        record.processingStatus = ProcessingStatus.SUCCESS
        record.lastError = None
    else:
        validate_transition(record, ProcessingStatus.FAILED)
        record.processingStatus = ProcessingStatus.FAILED
        record.retryCount += 1
        record.lastError = result.error or "Unknown error"
        logger.warning(f"Classification failed for {record.id} (attempt {record.retryCount}): {record.lastError}")
    record.processedAt = stamp
    record.claimToken = None


def admin_reset(record: ProcessedConversation) -> None:
    """
    Any state -> pending with classification cleared.

    Bypasses the transition table: used only by the explicit reset of a date.
    """
    defaults = ClassificationResult()
    for name in CLASSIFICATION_FIELDS:
        setattr(record, name, getattr(defaults, name))
    record.processingStatus = ProcessingStatus.PENDING
    record.retryCount = 0
    record.lastError = None
    record.processedAt = None
    record.claimToken = None
