"""
Pydantic models for the alert worker
Defines jobs, rules, connection descriptors, evaluation outcomes and history entries
"""
import json
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, field_validator

from alerts_core.errors import ConfigIncompleteError


class JobKind(str, Enum):
    """Job names produced by the scheduler"""
    METRIC = "metric"
    CUSTOM_KPI = "custom_kpi"
    REPORT = "report"
    ALERT_TRACKER = "alert_tracker"


class RuleKind(str, Enum):
    """Rule variants that can be evaluated"""
    METRIC = "metric"
    CUSTOM_KPI = "custom_kpi"


class OutcomeStatus(str, Enum):
    """Terminal status of one job attempt"""
    SUCCESS = "success"      # Evaluated, condition not met
    TRIGGERED = "triggered"  # Evaluated and condition met, or delegated
    FAILED = "failed"
    SKIPPED = "skipped"      # Rule inactive


class HistorySource(str, Enum):
    """Which history table an entry belongs to"""
    RULE = "rule"
    REPORT = "report"


def _numeric_id(v):
    """Integer ids may arrive as JSON strings; store them as int"""
    if isinstance(v, str) and v.strip().lstrip('-').isdigit():
        return int(v)
    return v


RecordId = Annotated[Union[int, str], BeforeValidator(_numeric_id)]


# =============================================================================
# JOBS
# =============================================================================

class BaseJob(BaseModel):
    """Fields shared by every job delivered by the queue"""
    model_config = ConfigDict(populate_by_name=True, extra='ignore', frozen=True)

    correlation_id: str


class RuleJob(BaseJob):
    """Evaluate (or delegate) a metric rule or custom KPI"""
    kind: Literal["metric", "custom_kpi"]
    rule_id: RecordId = Field(..., alias='jobId')
    rule_type: Optional[RuleKind] = Field(None, alias='jobType')
    user_id: Optional[str] = Field(None, alias='userId')

    @property
    def rule_kind(self) -> RuleKind:
        """Rule variant, taken from the payload and falling back to the job name"""
        return self.rule_type or RuleKind(self.kind)


class ReportJob(BaseJob):
    """Trigger scheduled report generation"""
    kind: Literal["report"]
    report_id: RecordId = Field(..., alias='jobId')
    slug: Optional[str] = None
    slack_channel_id: Optional[str] = Field(None, alias='slackChannelId')
    view_type: Optional[str] = Field(None, alias='viewType')
    sub_view_type: Optional[str] = Field(None, alias='subViewType')
    report_owner_id: Optional[str] = Field(None, alias='reportOwnerId')
    user_id: Optional[str] = Field(None, alias='userId')

    @property
    def owner_id(self) -> Optional[str]:
        return self.report_owner_id or self.user_id


class AlertTrackerJob(BaseJob):
    """Fire a scheduled alert tracker"""
    kind: Literal["alert_tracker"]
    tracker_id: Optional[RecordId] = Field(None, alias='jobId')
    slug: Optional[str] = None
    slack_channel_id: Optional[str] = Field(None, alias='slackChannelId')


class UnknownJob(BaseJob):
    """A job name this worker does not handle"""
    kind: str
    data: Dict[str, Any] = Field(default_factory=dict)


Job = Annotated[Union[RuleJob, ReportJob, AlertTrackerJob], Field(discriminator='kind')]

_JOB_ADAPTER = TypeAdapter(Job)
JOB_KINDS = frozenset(kind.value for kind in JobKind)


def parse_job(
    name: str,
    data: Optional[Mapping[str, Any]],
    correlation_id: str
) -> Union[RuleJob, ReportJob, AlertTrackerJob, UnknownJob]:
    """
    Build a typed job from a queue delivery.

    Args:
        name: Job name (metric, custom_kpi, report, alert_tracker)
        data: Job payload as sent by the scheduler
        correlation_id: Queue-assigned id for this delivery

    Returns:
        Typed job; UnknownJob for names this worker does not route

    Raises:
        pydantic.ValidationError: Payload is missing required fields
    """
    payload = dict(data or {})

    if name not in JOB_KINDS:
        return UnknownJob(kind=name, correlation_id=correlation_id, data=payload)

    payload['kind'] = name
    payload['correlation_id'] = correlation_id
    return _JOB_ADAPTER.validate_python(payload)


# =============================================================================
# RULES AND CONNECTIONS
# =============================================================================

class Rule(BaseModel):
    """Stored threshold definition"""
    id: RecordId
    owner_id: Optional[str] = None
    is_active: bool = False
    name: Optional[str] = None
    sql: Optional[str] = None
    # Only required once the rule is active; see require_condition()
    operator: Optional[str] = None
    threshold: Optional[float] = None

    @field_validator('owner_id', mode='before')
    @classmethod
    def _owner_as_str(cls, v):
        return None if v is None else str(v)

    def require_condition(self) -> None:
        """
        Raises:
            ConfigIncompleteError: operator or threshold is not set
        """
        if self.operator is None or self.threshold is None:
            raise ConfigIncompleteError(f"Condition for rule {self.id} is incomplete.")


class MetricRule(Rule):
    """Rule over a saved metric; resolves its database through the notebook"""
    kind: Literal[RuleKind.METRIC] = RuleKind.METRIC
    metric_id: Optional[RecordId] = None

    @property
    def database_ref(self) -> Optional[RecordId]:
        return self.metric_id


class CustomKpiRule(Rule):
    """Custom KPI alert; references its database directly"""
    kind: Literal[RuleKind.CUSTOM_KPI] = RuleKind.CUSTOM_KPI
    database_id: Optional[RecordId] = None

    @property
    def database_ref(self) -> Optional[RecordId]:
        return self.database_id


class ConnectionDescriptor(BaseModel):
    """Connection settings for a user's target database"""
    model_config = ConfigDict(frozen=True)

    host: str
    database: str
    user: str
    port: int = 5432
    password: Optional[str] = None
    ssl_mode: Literal["require", "disable"] = "require"

    @classmethod
    def from_blob(cls, blob: Union[str, Mapping[str, Any], None]) -> 'ConnectionDescriptor':
        """
        Parse a stored connection blob.

        Accepts a JSON string or an already-decoded mapping. The user is read
        from 'username' first, then 'user'. SSL stays on (without certificate
        verification) unless the blob sets ssl=false or sslmode=disable.
        """
        if blob is None:
            raise ConfigIncompleteError("Connection string is empty")

        if isinstance(blob, str):
            try:
                blob = json.loads(blob)
            except json.JSONDecodeError as e:
                raise ConfigIncompleteError(f"Connection string is not valid JSON: {e}") from e

        if not isinstance(blob, Mapping):
            raise ConfigIncompleteError("Connection string must be a JSON object")

        ssl_flag = blob.get('ssl', True)
        ssl_disabled = (
            ssl_flag is False
            or str(ssl_flag).lower() == 'false'
            or str(blob.get('sslmode', blob.get('sslMode', ''))).lower() == 'disable'
        )

        try:
            return cls(
                host=blob.get('host'),
                database=blob.get('database'),
                user=blob.get('username') or blob.get('user'),
                port=int(blob.get('port') or 5432),
                password=blob.get('password'),
                ssl_mode='disable' if ssl_disabled else 'require',
            )
        except (TypeError, ValueError) as e:
            # pydantic.ValidationError is a ValueError
            raise ConfigIncompleteError(f"Connection string is incomplete: {e}") from e


class EvaluationTarget(BaseModel):
    """What to poll for an active rule"""
    name: str
    sql: str
    connection: ConnectionDescriptor


# =============================================================================
# OUTCOMES AND HISTORY
# =============================================================================

class PollResult(BaseModel):
    value: float


class EvaluationOutcome(BaseModel):
    """Result of one evaluation attempt; written once, never mutated"""
    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    value: Optional[float] = None
    operator: Optional[str] = None
    threshold: Optional[float] = None
    error_message: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def skipped(cls) -> 'EvaluationOutcome':
        return cls(status=OutcomeStatus.SKIPPED, message="Rule is inactive, skipped")

    @classmethod
    def failed(cls, error: BaseException) -> 'EvaluationOutcome':
        return cls(status=OutcomeStatus.FAILED, error_message=str(error) or error.__class__.__name__)

    def to_details(self) -> Dict[str, Any]:
        """Structured payload stored in the history 'details' column"""
        if self.status == OutcomeStatus.FAILED:
            return {'error': self.error_message}
        if self.status == OutcomeStatus.SKIPPED:
            return {'message': self.message}
        return {'value': self.value, 'threshold': self.threshold, 'operator': self.operator}


class HistoryLogEntry(BaseModel):
    """Append-only audit record for one job attempt"""
    model_config = ConfigDict(frozen=True)

    source: HistorySource = HistorySource.RULE
    rule_id: RecordId
    run_id: Optional[UUID] = None
    status: OutcomeStatus
    details: Dict[str, Any] = Field(default_factory=dict)
    owner_id: str


class AlertDetails(BaseModel):
    """Content of a triggered-alert notification"""
    name: str
    id: RecordId
    current_value: float
    operator: str
    threshold: float
