"""
Enumeration definitions for the Prospect Dashboard backend.

All enums inherit from both `str` and `Enum` so they serialize as plain strings
inside pydantic models and the stored JSON documents.
"""

from enum import Enum


class ProcessingStatus(str, Enum):
    """
    Classification lifecycle of one merged conversation record.

    - pending: Waiting to be classified (initial state on ingest)
    - processing: Claimed by a running processing task
    - success: Classified; terminal
    - failed: Classification failed. Retryable while the record's retryCount
      is below the configured limit, terminal once the limit is reached.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class ContractType(str, Enum):
    """Household contract types used for the secondary breakdown."""
    CC = "CC"
    MV = "MV"


class ProspectCategory(str, Enum):
    """Prospect categories detected in conversations."""
    OEC = "oec"
    OWWA = "owwa"
    TRAVEL_VISA = "travelVisa"


class ServiceKey(str, Enum):
    """
    P&L service keys.

    Complaint types are mapped onto these keys before sales are counted.
    """
    OEC = "oec"
    OWWA = "owwa"
    TTL = "ttl"
    TTE = "tte"
    TTJ = "ttj"
    SCHENGEN = "schengen"
    GCC = "gcc"
    ETHIOPIAN_PP = "ethiopianPP"
    FILIPINA_PP = "filipinaPP"


class ComplaintsUploadMode(str, Enum):
    """How an uploaded complaints batch combines with stored data."""
    REPLACE = "replace"
    APPEND = "append"


class PaymentStatus(str, Enum):
    """
    Normalized payment status.

    - received: Paid; the only status that counts as a conversion
    - pre_pdp: Scheduled, not yet collected
    - other: Any other CRM status
    """
    RECEIVED = "received"
    PRE_PDP = "pre_pdp"
    OTHER = "other"
