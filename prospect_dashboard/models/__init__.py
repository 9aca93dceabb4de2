"""
Package initialization file for Prospect Dashboard models.

Re-exports the enums and pydantic schemas so other modules can import them
from ``prospect_dashboard.models`` directly:

    from prospect_dashboard.models import DailySnapshot, ProcessingStatus
"""

# =============================================================================
# Enums
# =============================================================================

from prospect_dashboard.models.enums import (
    ComplaintsUploadMode,
    ContractType,
    PaymentStatus,
    ProcessingStatus,
    ProspectCategory,
    ServiceKey,
)

# =============================================================================
# Schemas
# =============================================================================

from prospect_dashboard.models.schemas import (
    CLASSIFICATION_FIELDS,
    DATE_PATTERN,
    BatchInfo,
    BatchStatus,
    ByContractType,
    CategoryCounts,
    CategoryFlags,
    ClassificationResult,
    CleanConversionStats,
    Complaint,
    ComplaintSale,
    ComplaintsAnalysis,
    ComplaintsData,
    ComplaintsSummary,
    ComplaintsUpload,
    ContractTypeCounts,
    Conversion,
    ConversionComplaintCheck,
    ConversionsResponse,
    DailySnapshot,
    DailySummary,
    DateListItem,
    DateResults,
    DeduplicationReport,
    HouseholdGroup,
    IngestConversation,
    IngestRequest,
    IngestResponse,
    MonthlyFixedCosts,
    OverseasSale,
    OverseasSalesData,
    OverseasSalesUpload,
    PaymentData,
    PaymentRow,
    PaymentsSummary,
    PaymentsUpload,
    PnLConfig,
    PnLStatement,
    ProcessDateRequest,
    ProcessDateResponse,
    ProcessedConversation,
    ProcessedPayment,
    RunStats,
    SalePeriod,
    SalesInRange,
    ServiceComplaintCheck,
    ServicePnL,
    ServiceSales,
    TodoRow,
    validate_date_string,
)

__all__ = [
    # Enums
    "ComplaintsUploadMode",
    "ContractType",
    "PaymentStatus",
    "ProcessingStatus",
    "ProspectCategory",
    "ServiceKey",
    # Classification
    "CLASSIFICATION_FIELDS",
    "ClassificationResult",
    # Daily snapshots
    "ProcessedConversation",
    "RunStats",
    "ContractTypeCounts",
    "ByContractType",
    "DailySummary",
    "DailySnapshot",
    # Ingestion
    "IngestConversation",
    "BatchInfo",
    "BatchStatus",
    "IngestRequest",
    "IngestResponse",
    # Processing
    "ProcessDateRequest",
    "ProcessDateResponse",
    # Views
    "CategoryCounts",
    "CategoryFlags",
    "DateResults",
    "DateListItem",
    "HouseholdGroup",
    "DeduplicationReport",
    # Overseas sales
    "TodoRow",
    "SalePeriod",
    "OverseasSale",
    "OverseasSalesData",
    "OverseasSalesUpload",
    "SalesInRange",
    # Complaints
    "Complaint",
    "ComplaintSale",
    "ServiceSales",
    "ComplaintsSummary",
    "ComplaintsData",
    "ComplaintsUpload",
    # Payments
    "PaymentRow",
    "ProcessedPayment",
    "PaymentData",
    "PaymentsUpload",
    "PaymentsSummary",
    "Conversion",
    "ServiceComplaintCheck",
    "ConversionComplaintCheck",
    "CleanConversionStats",
    "ComplaintsAnalysis",
    "ConversionsResponse",
    # P&L
    "MonthlyFixedCosts",
    "PnLConfig",
    "ServicePnL",
    "PnLStatement",
    # Validators
    "DATE_PATTERN",
    "validate_date_string",
]
