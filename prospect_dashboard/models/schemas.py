"""
Pydantic document and request/response models for the Prospect Dashboard backend.

Stored documents (daily snapshots, sales data, complaint sales, P&L config)
keep the camelCase field names of the JSON documents the dashboard front end
reads, so every model here round-trips the stored JSON unchanged.

Model groups:
- Classification: ClassificationResult and the analysis field list
- Daily snapshots: ProcessedConversation, RunStats, DailySummary, DailySnapshot
- Ingestion: IngestConversation, IngestRequest, IngestResponse
- Processing: ProcessDateRequest, ProcessDateResponse
- Views: DateResults, DateListItem, HouseholdGroup
- Overseas sales: TodoRow, SalePeriod, OverseasSale, OverseasSalesData
- P&L complaints: Complaint, ComplaintSale, ServiceSales, ComplaintsData
- Payments: PaymentRow, ProcessedPayment, PaymentData, and the per-date
  conversion views (Conversion, ComplaintsAnalysis, ConversionsResponse)
- P&L config: MonthlyFixedCosts, PnLConfig, ServicePnL, PnLStatement

All models use Pydantic v2 syntax.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from prospect_dashboard.models.enums import (
    ComplaintsUploadMode,
    PaymentStatus,
    ProcessingStatus,
    ServiceKey,
)


# =============================================================================
# Shared Validators
# =============================================================================

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_date_string(value: str) -> str:
    """
    Validate a ``YYYY-MM-DD`` date string.

    Raises:
        ValueError: If the value does not match the pattern or is not a real
            calendar date (e.g. 2026-02-30).
    """
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date format: {value!r}. Expected YYYY-MM-DD")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"Invalid calendar date: {value!r}")
    return value


def _as_text(value: Any) -> Any:
    """Coerce ids that arrive as numbers to trimmed strings."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


# =============================================================================
# Classification
# =============================================================================

# Fields produced by the classifier and copied onto a conversation record
CLASSIFICATION_FIELDS: List[str] = [
    "isOECProspect",
    "isOECProspectConfidence",
    "oecConverted",
    "oecConvertedConfidence",
    "isOWWAProspect",
    "isOWWAProspectConfidence",
    "owwaConverted",
    "owwaConvertedConfidence",
    "isTravelVisaProspect",
    "isTravelVisaProspectConfidence",
    "travelVisaCountries",
    "travelVisaConverted",
    "travelVisaConvertedConfidence",
]


class ClassificationResult(BaseModel):
    """
    Result of classifying one conversation transcript.

    A failed call is still a result: ``success`` is False, ``error`` holds the
    reason and every flag is False.
    """
    isOECProspect: bool = False
    isOECProspectConfidence: float = 0.0
    oecConverted: bool = False
    oecConvertedConfidence: float = 0.0
    isOWWAProspect: bool = False
    isOWWAProspectConfidence: float = 0.0
    owwaConverted: bool = False
    owwaConvertedConfidence: float = 0.0
    isTravelVisaProspect: bool = False
    isTravelVisaProspectConfidence: float = 0.0
    travelVisaCountries: List[str] = Field(default_factory=list)
    travelVisaConverted: bool = False
    travelVisaConvertedConfidence: float = 0.0
    success: bool = True
    cost: float = Field(default=0.0, ge=0)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ClassificationResult":
        return cls(success=False, cost=0.0, error=error)

    def analysis_fields(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in CLASSIFICATION_FIELDS}


# =============================================================================
# Daily Snapshot Documents
# =============================================================================

class ProcessedConversation(BaseModel):
    """
    One merged entity of a daily snapshot: every conversation of the same
    client (or maid) on that date, reconciled into a single record.
    """
    model_config = ConfigDict(extra="ignore", use_enum_values=False)

    id: str = Field(..., description="Identity key, e.g. client:123")
    conversationId: str = Field(default="", description="Comma-joined source conversation ids")
    chatStartDateTime: str = Field(default="", description="Earliest chat start, ISO-8601")
    maidId: str = ""
    clientId: str = ""
    contractId: str = ""
    maidName: str = ""
    clientName: str = ""
    contractType: str = Field(default="", description="'CC', 'MV' or empty")
    messages: str = ""

    isOECProspect: bool = False
    isOECProspectConfidence: float = 0.0
    oecConverted: bool = False
    oecConvertedConfidence: float = 0.0
    isOWWAProspect: bool = False
    isOWWAProspectConfidence: float = 0.0
    owwaConverted: bool = False
    owwaConvertedConfidence: float = 0.0
    isTravelVisaProspect: bool = False
    isTravelVisaProspectConfidence: float = 0.0
    travelVisaCountries: List[str] = Field(default_factory=list)
    travelVisaConverted: bool = False
    travelVisaConvertedConfidence: float = 0.0

    processingStatus: ProcessingStatus = ProcessingStatus.PENDING
    retryCount: int = Field(default=0, ge=0)
    lastError: Optional[str] = None
    processedAt: Optional[str] = None
    claimToken: Optional[str] = Field(
        default=None,
        description="Lease token of the batch that holds the record in processing",
    )

    def conversation_ids(self) -> List[str]:
        return [part for part in self.conversationId.split(",") if part]


class RunStats(BaseModel):
    """Statistics of one processing run against a daily snapshot."""
    runId: str
    startedAt: str
    completedAt: Optional[str] = None
    totalCost: float = 0.0
    successCount: int = 0
    failureCount: int = 0
    conversationsProcessed: int = 0


class ContractTypeCounts(BaseModel):
    oec: int = 0
    owwa: int = 0
    travelVisa: int = 0


class ByContractType(BaseModel):
    CC: ContractTypeCounts = Field(default_factory=ContractTypeCounts)
    MV: ContractTypeCounts = Field(default_factory=ContractTypeCounts)


class DailySummary(BaseModel):
    """Household-deduplicated prospect and conversion counts for one date."""
    oec: int = 0
    owwa: int = 0
    travelVisa: int = 0
    oecConverted: int = 0
    owwaConverted: int = 0
    travelVisaConverted: int = 0
    countryCounts: Dict[str, int] = Field(default_factory=dict)
    byContractType: ByContractType = Field(default_factory=ByContractType)


class DailySnapshot(BaseModel):
    """Date-keyed aggregate document stored at ``daily/<date>.json``."""
    model_config = ConfigDict(extra="ignore")

    date: str
    fileName: Optional[str] = None
    totalConversations: int = 0
    processedCount: int = 0
    isProcessing: bool = False
    currentRunId: Optional[str] = None
    runs: List[RunStats] = Field(default_factory=list)
    results: List[ProcessedConversation] = Field(default_factory=list)
    summary: DailySummary = Field(default_factory=DailySummary)

    def find(self, record_id: str) -> Optional[ProcessedConversation]:
        for record in self.results:
            if record.id == record_id:
                return record
        return None

    def run(self, run_id: Optional[str]) -> Optional[RunStats]:
        for run in self.runs:
            if run.runId == run_id:
                return run
        return None

    def latest_run(self) -> Optional[RunStats]:
        return self.runs[-1] if self.runs else None


# =============================================================================
# Ingestion
# =============================================================================

class IngestConversation(BaseModel):
    """
    One raw conversation as posted by the export job.

    Several historical column names are accepted for each field.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    conversationId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("conversationId", "conversation_id", "CONVERSATION_ID", "Conversation ID"),
    )
    chatStartDateTime: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "chatStartDateTime", "chat_start_date_time", "CHAT_START_DATE_TIME", "Chat Start Date Time", "startTime"
        ),
    )
    maidId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("maidId", "maid_id", "MAID_ID", "housemaidId", "Maid ID"),
    )
    clientId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("clientId", "client_id", "CLIENT_ID", "Client ID"),
    )
    contractId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("contractId", "contract_id", "CONTRACT_ID", "Contract ID"),
    )
    maidName: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("maidName", "maid_name", "MAID_NAME", "Maid Name"),
    )
    clientName: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("clientName", "client_name", "CLIENT_NAME", "Client Name"),
    )
    contractType: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("contractType", "contract_type", "CONTRACT_TYPE", "Contract Type"),
    )
    messages: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("messages", "Messages", "MESSAGES", "transcript"),
    )

    @field_validator(
        "conversationId", "chatStartDateTime", "maidId", "clientId", "contractId",
        "maidName", "clientName", "contractType",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _as_text(value)


class BatchInfo(BaseModel):
    batchIndex: int = Field(..., ge=0)
    totalBatches: int = Field(..., ge=1)
    isLast: bool = False


class IngestRequest(BaseModel):
    date: str
    conversations: List[IngestConversation] = Field(default_factory=list)
    fileName: Optional[str] = None
    batchInfo: Optional[BatchInfo] = None

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        return validate_date_string(value)


class BatchStatus(BaseModel):
    batchIndex: int
    totalBatches: int
    isComplete: bool


class IngestResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "date": "2026-01-10",
                "imported": 12,
                "merged": 3,
                "skipped": 0,
                "totalConversations": 15,
                "pendingAnalysis": 15,
            }
        }
    )

    success: bool = True
    date: str
    imported: int = 0
    merged: int = 0
    skipped: int = Field(default=0, description="Conversations without messages or already ingested")
    totalConversations: Optional[int] = None
    pendingAnalysis: Optional[int] = None
    batch: Optional[BatchStatus] = None
    message: Optional[str] = None


# =============================================================================
# Processing
# =============================================================================

class ProcessDateRequest(BaseModel):
    date: str
    batchSize: Optional[int] = Field(default=None, ge=1, le=1000)

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        return validate_date_string(value)


class ProcessDateResponse(BaseModel):
    message: str
    date: str
    processedInBatch: int = 0
    failedInBatch: int = 0
    batchCost: float = 0.0
    totalProcessed: int = 0
    totalConversations: int = 0
    remaining: int = 0
    isComplete: bool = False
    timedOut: bool = False
    runStats: Optional[RunStats] = None


# =============================================================================
# Views
# =============================================================================

class CategoryCounts(BaseModel):
    oec: int = 0
    owwa: int = 0
    travelVisa: int = 0


class CategoryFlags(BaseModel):
    oec: bool = False
    owwa: bool = False
    travelVisa: bool = False


class DateResults(BaseModel):
    """Aggregated dashboard card data for one date."""
    date: str
    fileName: Optional[str] = None
    totalProcessed: int = 0
    totalConversations: int = 0
    isProcessing: bool = False
    prospects: CategoryCounts = Field(default_factory=CategoryCounts)
    conversions: CategoryCounts = Field(default_factory=CategoryCounts)
    countryCounts: Dict[str, int] = Field(default_factory=dict)
    byContractType: ByContractType = Field(default_factory=ByContractType)
    latestRun: Optional[RunStats] = None


class DateListItem(BaseModel):
    date: str
    fileName: Optional[str] = None
    totalConversations: int = 0
    processedCount: int = 0
    isProcessing: bool = False
    summary: DailySummary = Field(default_factory=DailySummary)
    latestRun: Optional[RunStats] = None


class HouseholdGroup(BaseModel):
    """Prospect records of one household (contract), or a standalone record."""
    householdId: str
    contractId: str = ""
    members: List[ProcessedConversation] = Field(default_factory=list)
    hasClient: bool = False
    hasMaid: bool = False
    clientName: str = ""
    maidNames: List[str] = Field(default_factory=list)
    isProspect: bool = False
    prospectTypes: CategoryFlags = Field(default_factory=CategoryFlags)
    conversions: CategoryFlags = Field(default_factory=CategoryFlags)


class DeduplicationReport(BaseModel):
    date: str
    before: int
    after: int
    mergedGroups: int


# =============================================================================
# Overseas (OEC) Sales
# =============================================================================

class TodoRow(BaseModel):
    """One OEC to-do exported from the CRM."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., validation_alias=AliasChoices("id", "ID", "todoId", "todo_id", "TODO_ID"))
    todoName: str = Field(default="", validation_alias=AliasChoices("todoName", "todo_name", "TODO_NAME", "name"))
    contractId: str = Field(default="", validation_alias=AliasChoices("contractId", "contract_id", "CONTRACT_ID"))
    clientId: str = Field(default="", validation_alias=AliasChoices("clientId", "client_id", "CLIENT_ID"))
    housemaidId: str = Field(
        default="", validation_alias=AliasChoices("housemaidId", "housemaid_id", "HOUSEMAID_ID", "maidId")
    )
    createdAt: str = Field(
        default="", validation_alias=AliasChoices("createdAt", "created_at", "CREATION_DATE", "creationDate")
    )
    completedAt: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("completedAt", "completed_at", "COMPLETION_DATE")
    )
    status: Optional[str] = Field(default=None, validation_alias=AliasChoices("status", "STATUS"))

    @field_validator("id", "todoName", "contractId", "clientId", "housemaidId", "createdAt", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        value = _as_text(value)
        return "" if value is None else value


class SalePeriod(BaseModel):
    startDate: str
    endDate: str
    todoIds: List[str] = Field(default_factory=list)


class OverseasSale(BaseModel):
    id: str
    contractId: str = ""
    clientId: str = ""
    housemaidId: str = ""
    firstSaleDate: str = ""
    lastSaleDate: str = ""
    occurrenceCount: int = 0
    deduplicatedCount: int = 0
    relatedTodoIds: List[str] = Field(default_factory=list)
    periods: List[SalePeriod] = Field(default_factory=list)


class OverseasSalesData(BaseModel):
    lastUpdated: str
    totalRawTodos: int = 0
    totalDedupedSales: int = 0
    sales: List[OverseasSale] = Field(default_factory=list)
    salesByMonth: Dict[str, int] = Field(default_factory=dict)
    rawTodos: List[TodoRow] = Field(default_factory=list)


class OverseasSalesUpload(BaseModel):
    """Either JSON rows or raw CSV text."""
    todos: Optional[List[Dict[str, Any]]] = None
    csvText: Optional[str] = None
    replace: bool = False


class SalesInRange(BaseModel):
    startDate: str
    endDate: str
    sales: int


# =============================================================================
# P&L Complaints
# =============================================================================

class Complaint(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    contractId: str = Field(default="", validation_alias=AliasChoices("contractId", "contract_id", "CONTRACT_ID"))
    housemaidId: str = Field(
        default="", validation_alias=AliasChoices("housemaidId", "housemaid_id", "HOUSEMAID_ID", "maidId")
    )
    clientId: str = Field(default="", validation_alias=AliasChoices("clientId", "client_id", "CLIENT_ID"))
    complaintType: str = Field(
        default="", validation_alias=AliasChoices("complaintType", "complaint_type", "COMPLAINT_TYPE", "type")
    )
    creationDate: str = Field(
        default="", validation_alias=AliasChoices("creationDate", "creation_date", "CREATION_DATE", "createdAt")
    )
    serviceKey: Optional[ServiceKey] = None

    @field_validator("contractId", "housemaidId", "clientId", "complaintType", "creationDate", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        value = _as_text(value)
        return "" if value is None else value


class ComplaintSale(BaseModel):
    id: str
    serviceKey: ServiceKey
    contractId: str = ""
    clientId: str = ""
    housemaidId: str = ""
    firstSaleDate: str
    lastSaleDate: str
    occurrenceCount: int = 0
    complaintDates: List[str] = Field(default_factory=list)


class ServiceSales(BaseModel):
    serviceKey: ServiceKey
    serviceName: str
    uniqueSales: int = 0
    uniqueClients: int = 0
    uniqueContracts: int = 0
    totalComplaints: int = 0
    byMonth: Dict[str, int] = Field(default_factory=dict)
    sales: List[ComplaintSale] = Field(default_factory=list)


class ComplaintsSummary(BaseModel):
    totalUniqueSales: int = 0
    totalUniqueClients: int = 0
    totalUniqueContracts: int = 0


class ComplaintsData(BaseModel):
    lastUpdated: str
    rawComplaintsCount: int = 0
    unmappedCount: int = 0
    services: Dict[str, ServiceSales] = Field(default_factory=dict)
    summary: ComplaintsSummary = Field(default_factory=ComplaintsSummary)
    rawComplaints: List[Complaint] = Field(default_factory=list)


class ComplaintsUpload(BaseModel):
    complaints: Optional[List[Dict[str, Any]]] = None
    csvText: Optional[str] = None
    mode: ComplaintsUploadMode = ComplaintsUploadMode.REPLACE


# =============================================================================
# Payments and Conversions
# =============================================================================

AMOUNT_NOISE = re.compile(r"[^0-9.\-]")


class PaymentRow(BaseModel):
    """One row of the CRM payments export."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    paymentType: str = Field(
        default="", validation_alias=AliasChoices("paymentType", "payment_type", "PAYMENT_TYPE")
    )
    creationDate: str = Field(
        default="", validation_alias=AliasChoices("creationDate", "creation_date", "CREATION_DATE")
    )
    contractId: str = Field(default="", validation_alias=AliasChoices("contractId", "contract_id", "CONTRACT_ID"))
    clientId: str = Field(default="", validation_alias=AliasChoices("clientId", "client_id", "CLIENT_ID"))
    status: str = Field(default="", validation_alias=AliasChoices("status", "STATUS"))
    amountOfPayment: float = Field(
        default=0.0,
        validation_alias=AliasChoices("amountOfPayment", "amount_of_payment", "AMOUNT_OF_PAYMENT", "amount"),
    )
    dateOfPayment: str = Field(
        default="", validation_alias=AliasChoices("dateOfPayment", "date_of_payment", "DATE_OF_PAYMENT")
    )

    @field_validator("paymentType", "creationDate", "contractId", "clientId", "status", "dateOfPayment", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        value = _as_text(value)
        return "" if value is None else value

    @field_validator("amountOfPayment", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> float:
        """Currency symbols and thousands separators are dropped; unreadable amounts are 0."""
        if value is None or isinstance(value, bool):
            return 0.0
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(AMOUNT_NOISE.sub("", str(value)))
        except ValueError:
            return 0.0


class ProcessedPayment(BaseModel):
    paymentType: str = ""
    creationDate: str = ""
    contractId: str
    clientId: str = ""
    status: PaymentStatus = PaymentStatus.OTHER
    dateOfPayment: str
    service: Optional[ServiceKey] = Field(default=None, description="None when the type maps to no service")
    amountOfPayment: float = 0.0


class PaymentData(BaseModel):
    uploadDate: str
    totalPayments: int = 0
    receivedPayments: int = 0
    payments: List[ProcessedPayment] = Field(default_factory=list)


class PaymentsUpload(BaseModel):
    """Either JSON rows or raw CSV text. An upload replaces the stored payments."""
    payments: Optional[List[Dict[str, Any]]] = None
    csvText: Optional[str] = None


class PaymentsSummary(BaseModel):
    totalPayments: int = 0
    receivedPayments: int = 0
    uploadDate: Optional[str] = None
    skippedRows: Optional[int] = None
    breakdown: Dict[str, int] = Field(default_factory=dict)


class Conversion(BaseModel):
    """A prospect of the date with a received payment for a prospected category."""
    contractId: str
    services: CategoryFlags = Field(default_factory=CategoryFlags)
    paymentDates: Dict[str, List[str]] = Field(default_factory=dict)


class ServiceComplaintCheck(BaseModel):
    converted: bool = False
    hasComplaint: bool = False
    complaintTypes: List[str] = Field(default_factory=list)


class ConversionComplaintCheck(BaseModel):
    contractId: str
    services: Dict[str, ServiceComplaintCheck] = Field(default_factory=dict)
    paymentDates: Dict[str, List[str]] = Field(default_factory=dict)


class CleanConversionStats(BaseModel):
    prospects: int = 0
    conversions: int = 0
    withComplaints: int = 0
    cleanConversions: int = 0
    overallRate: float = Field(default=0.0, description="Conversions per prospect, in percent")
    cleanRate: float = Field(default=0.0, description="Conversions without a complaint per prospect, in percent")


class ComplaintsAnalysis(BaseModel):
    conversionsWithComplaints: List[ConversionComplaintCheck] = Field(default_factory=list)
    cleanConversionStats: Dict[str, CleanConversionStats] = Field(default_factory=dict)


class ConversionsResponse(BaseModel):
    date: str
    conversions: List[Conversion] = Field(default_factory=list)
    totalConversions: int = 0
    byService: CategoryCounts = Field(default_factory=CategoryCounts)
    message: Optional[str] = None
    complaintsAnalysis: Optional[ComplaintsAnalysis] = None


# =============================================================================
# P&L Configuration
# =============================================================================

class MonthlyFixedCosts(BaseModel):
    laborCost: float = 55000.0
    llm: float = 3650.0
    proTransportation: float = 2070.0

    def total(self) -> float:
        return self.laborCost + self.llm + self.proTransportation


class PnLConfig(BaseModel):
    serviceCosts: Dict[str, float] = Field(default_factory=dict)
    serviceFees: Dict[str, float] = Field(default_factory=dict)
    monthlyFixedCosts: MonthlyFixedCosts = Field(default_factory=MonthlyFixedCosts)


class ServicePnL(BaseModel):
    serviceKey: ServiceKey
    name: str
    volume: int = 0
    unitCost: float = 0.0
    serviceFee: float = 0.0
    price: float = 0.0
    totalRevenue: float = 0.0
    totalCost: float = 0.0
    grossProfit: float = 0.0


class PnLStatement(BaseModel):
    services: List[ServicePnL] = Field(default_factory=list)
    totalRevenue: float = 0.0
    totalCost: float = 0.0
    grossProfit: float = 0.0
    fixedCosts: float = 0.0
    netProfit: float = 0.0
    months: int = 1
