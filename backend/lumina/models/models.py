from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import List, Dict, Optional, Tuple, Union, Literal
from datetime import datetime
from enum import Enum
from bson import ObjectId

# A cell is one of number, text, boolean or null. bool comes first so that
# JSON true/false is not read as an int.
DataValue = Optional[Union[bool, int, float, str]]
Record = Dict[str, DataValue]


def new_id() -> str:
    return str(ObjectId())


class CamelModel(BaseModel):
    """Base model serialised with the camelCase field names the dashboard uses."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Dataset(CamelModel):
    """
    A loaded table. Identity and column typing are fixed at creation;
    only ``rows`` may change afterwards (live stream simulation).
    """
    id: str = Field(default_factory=new_id, frozen=True)
    name: str
    columns: Tuple[str, ...] = Field(frozen=True)
    numeric_columns: Tuple[str, ...] = Field(default=(), frozen=True)
    categorical_columns: Tuple[str, ...] = Field(default=(), frozen=True)
    rows: List[Record] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now, frozen=True)

    @model_validator(mode="after")
    def check_column_sets(self) -> "Dataset":
        known = set(self.columns)
        overlap = set(self.numeric_columns) & set(self.categorical_columns)
        if overlap:
            raise ValueError(f"Columns cannot be both numeric and categorical: {sorted(overlap)}")
        unknown = (set(self.numeric_columns) | set(self.categorical_columns)) - known
        if unknown:
            raise ValueError(f"Typed columns missing from header: {sorted(unknown)}")
        return self


class DatasetResponse(CamelModel):
    id: str
    name: str
    columns: List[str]
    numeric_columns: List[str]
    categorical_columns: List[str]
    row_count: int
    created_at: datetime

    @classmethod
    def from_dataset(cls, dataset: Dataset) -> "DatasetResponse":
        return cls(
            id=dataset.id,
            name=dataset.name,
            columns=list(dataset.columns),
            numeric_columns=list(dataset.numeric_columns),
            categorical_columns=list(dataset.categorical_columns),
            row_count=len(dataset.rows),
            created_at=dataset.created_at,
        )


class IngestRequest(CamelModel):
    name: str = Field(..., description="Dataset display name")
    header: List[str]
    rows: List[Record] = Field(default_factory=list)


class NumericSummary(CamelModel):
    column: str
    min: float
    max: float
    mean: float
    median: float
    std_dev: float
    q1: float
    q3: float
    null_count: int


class CorrelationResult(CamelModel):
    col1: str
    col2: str
    correlation: float


class HistogramBucket(CamelModel):
    range_label: str
    count: int
    range_min: float
    range_max: float


class ChartType(str, Enum):
    LINE = "Line"
    BAR = "Bar"
    AREA = "Area"
    SCATTER = "Scatter"
    PIE = "Pie"


class ChartSuggestion(CamelModel):
    """A chart proposed by the reasoning service: ChartConfig without an id."""
    type: ChartType
    x_axis_key: str
    y_axis_key: str
    title: Optional[str] = None
    color: Optional[str] = None


class ChartConfig(CamelModel):
    id: str = Field(default_factory=new_id)
    type: ChartType
    x_axis_key: str
    y_axis_key: str
    color: str
    title: str


class ChatMessage(CamelModel):
    id: str = Field(default_factory=new_id)
    role: Literal["user", "ai"]
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ChatRequest(CamelModel):
    message: str
    history: List[ChatMessage] = Field(default_factory=list)
    charts: List[ChartConfig] = Field(default_factory=list)


class ChatResponse(CamelModel):
    content: str
    suggested_chart: Optional[ChartSuggestion] = None


class AIInsight(CamelModel):
    summary: str
    trends: List[str] = Field(default_factory=list)
    anomalies: List[str] = Field(default_factory=list)
    recommendation: str


class StreamState(str, Enum):
    IDLE = "idle"
    LIVE = "live"


class StreamStatus(CamelModel):
    state: StreamState
    dataset_id: Optional[str] = None
    interval_seconds: float
    ticks: int = 0


class StreamRequest(CamelModel):
    dataset_id: Optional[str] = None


class DatasetCreated(CamelModel):
    dataset: DatasetResponse
    default_chart: Optional[ChartConfig] = None


class StatisticsResponse(CamelModel):
    row_count: int
    summaries: List[NumericSummary]


class CorrelationResponse(CamelModel):
    numeric_columns: List[str]
    correlations: List[CorrelationResult]
    matrix: Dict[str, Dict[str, Optional[float]]]


class HistogramResponse(CamelModel):
    column: str
    bins: int
    buckets: List[HistogramBucket]


class RowsResponse(CamelModel):
    total: int
    rows: List[Record]
