from fastapi import APIRouter, HTTPException, UploadFile, File, Query, Depends
from typing import List, Optional
import traceback
import logging

from .. import config
from ..dependencies import DatasetRepository, get_ai_helper, get_repository, get_simulator
from ..models.models import (
    AIInsight, ChartConfig, ChartSuggestion, ChatRequest, ChatResponse, CorrelationResponse, Dataset,
    DatasetCreated, DatasetResponse, HistogramResponse, IngestRequest, Record, RowsResponse, StatisticsResponse
)
from ..utils.ai_helper import AIHelper
from ..utils.data_filters import filter_rows
from ..utils.data_loader import build_dataset, dataset_name_from_filename, load_grid_from_csv
from ..utils.helpers import chart_from_suggestion, suggest_default_chart
from ..utils.statistics import (
    calculate_correlations, calculate_numeric_summary, correlation_matrix, get_histogram_data
)
from ..utils.streaming import StreamingSimulator

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


def _get_dataset_or_404(repository: DatasetRepository, dataset_id: str) -> Dataset:
    dataset = repository.get(dataset_id)
    if not dataset:
        raise HTTPException(status_code=404, detail="Dataset not found")
    return dataset


def _view_rows(dataset: Dataset, column: Optional[str], value: Optional[str]) -> List[Record]:
    """The dataset's current rows, narrowed by the optional filter."""
    if column and column not in dataset.columns:
        raise HTTPException(status_code=400, detail=f"Unknown column: {column}")
    # read rows once so a stream tick cannot land between two reads
    return filter_rows(dataset.rows, column, value)


def _created(repository: DatasetRepository, dataset: Dataset) -> DatasetCreated:
    repository.upsert(dataset)
    logger.info(f"Stored dataset {dataset.id} ({dataset.name})")
    return DatasetCreated(
        dataset=DatasetResponse.from_dataset(dataset),
        default_chart=suggest_default_chart(dataset)
    )


@router.post("/dataset/", response_model=DatasetCreated)
async def create_dataset(
    file: UploadFile = File(...),
    repository: DatasetRepository = Depends(get_repository)
):
    """Upload a CSV file and store it as a new dataset"""
    try:
        content = await file.read()
        header, rows = load_grid_from_csv(content)
        if not header:
            raise HTTPException(status_code=400, detail="Uploaded file has no header row")

        dataset = build_dataset(dataset_name_from_filename(file.filename), header, rows)
        return _created(repository, dataset)
    except HTTPException as he:
        raise he
    except Exception as e:
        logger.error(f"Error creating dataset: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/dataset/ingest", response_model=DatasetCreated)
async def ingest_dataset(payload: IngestRequest, repository: DatasetRepository = Depends(get_repository)):
    """Store an already parsed grid as a new dataset"""
    if not payload.header:
        raise HTTPException(status_code=400, detail="Header is required")
    dataset = build_dataset(payload.name, payload.header, payload.rows)
    return _created(repository, dataset)


@router.get("/datasets/", response_model=List[DatasetResponse])
async def list_datasets(repository: DatasetRepository = Depends(get_repository)):
    """List all datasets"""
    try:
        return [DatasetResponse.from_dataset(dataset) for dataset in repository.list()]
    except Exception as e:
        logger.error(f"Error listing datasets: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/dataset/{dataset_id}", response_model=Dataset)
async def get_dataset(dataset_id: str, repository: DatasetRepository = Depends(get_repository)):
    """Get a dataset by ID, rows included"""
    return _get_dataset_or_404(repository, dataset_id)


@router.put("/dataset/{dataset_id}", response_model=DatasetResponse)
async def upsert_dataset(
    dataset_id: str,
    dataset: Dataset,
    repository: DatasetRepository = Depends(get_repository)
):
    """Replace a stored dataset, or add it if it is not stored yet"""
    if dataset.id != dataset_id:
        raise HTTPException(status_code=400, detail="Dataset id does not match the URL")
    repository.upsert(dataset)
    return DatasetResponse.from_dataset(dataset)


@router.delete("/dataset/{dataset_id}")
async def delete_dataset(
    dataset_id: str,
    repository: DatasetRepository = Depends(get_repository),
    simulator: StreamingSimulator = Depends(get_simulator)
):
    """Delete a dataset, stopping the live stream first if it targets it"""
    try:
        simulator.forget_dataset(dataset_id)
        if not repository.delete(dataset_id):
            raise HTTPException(status_code=404, detail="Dataset not found")
        logger.info(f"Deleted dataset {dataset_id}")
        return {"id": dataset_id, "deleted": True}
    except HTTPException as he:
        raise he
    except Exception as e:
        logger.error(f"Error deleting dataset: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/dataset/{dataset_id}/statistics", response_model=StatisticsResponse)
async def get_statistics(
    dataset_id: str,
    column: Optional[str] = Query(None, description="Filter column"),
    value: Optional[str] = Query(None, description="Filter text"),
    repository: DatasetRepository = Depends(get_repository)
):
    """Numeric summary for every numeric column of the (filtered) dataset"""
    try:
        dataset = _get_dataset_or_404(repository, dataset_id)
        rows = _view_rows(dataset, column, value)
        return StatisticsResponse(row_count=len(rows), summaries=calculate_numeric_summary(dataset, rows))
    except HTTPException as he:
        raise he
    except Exception as e:
        logger.error(f"Error getting statistics: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/dataset/{dataset_id}/correlation", response_model=CorrelationResponse)
async def get_correlation_matrix(
    dataset_id: str,
    column: Optional[str] = Query(None),
    value: Optional[str] = Query(None),
    repository: DatasetRepository = Depends(get_repository)
):
    """Pairwise correlations between numeric columns"""
    try:
        dataset = _get_dataset_or_404(repository, dataset_id)
        rows = _view_rows(dataset, column, value)
        correlations = calculate_correlations(dataset, rows)
        return CorrelationResponse(
            numeric_columns=list(dataset.numeric_columns),
            correlations=correlations,
            matrix=correlation_matrix(correlations, dataset.numeric_columns)
        )
    except HTTPException as he:
        raise he
    except Exception as e:
        logger.error(f"Error calculating correlation matrix: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/dataset/{dataset_id}/histogram", response_model=HistogramResponse)
async def get_histogram(
    dataset_id: str,
    column: str = Query(..., description="Column to bin"),
    bins: int = Query(config.DEFAULT_HISTOGRAM_BINS, ge=1, le=500),
    filter_column: Optional[str] = Query(None, alias="filterColumn"),
    filter_value: Optional[str] = Query(None, alias="filterValue"),
    repository: DatasetRepository = Depends(get_repository)
):
    """Equal-width histogram of one column"""
    try:
        dataset = _get_dataset_or_404(repository, dataset_id)
        if column not in dataset.columns:
            raise HTTPException(status_code=400, detail=f"Unknown column: {column}")
        rows = _view_rows(dataset, filter_column, filter_value)
        return HistogramResponse(
            column=column,
            bins=bins,
            buckets=get_histogram_data(dataset, column, bins, rows)
        )
    except HTTPException as he:
        raise he
    except Exception as e:
        logger.error(f"Error building histogram: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/dataset/{dataset_id}/rows", response_model=RowsResponse)
async def get_rows(
    dataset_id: str,
    column: Optional[str] = Query(None, description="Column to search"),
    value: Optional[str] = Query(None, description="Case-insensitive text to look for"),
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    repository: DatasetRepository = Depends(get_repository)
):
    """Rows of the dataset, optionally filtered, with the total match count"""
    dataset = _get_dataset_or_404(repository, dataset_id)
    rows = _view_rows(dataset, column, value)
    page = rows[offset:offset + limit] if limit is not None else rows[offset:]
    return RowsResponse(total=len(rows), rows=page)


@router.post("/dataset/{dataset_id}/charts", response_model=ChartConfig)
async def create_chart(
    dataset_id: str,
    suggestion: ChartSuggestion,
    repository: DatasetRepository = Depends(get_repository)
):
    """Turn a chart suggestion into a chart config after checking its axes"""
    dataset = _get_dataset_or_404(repository, dataset_id)
    missing = [key for key in (suggestion.x_axis_key, suggestion.y_axis_key) if key not in dataset.columns]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown columns: {', '.join(missing)}")
    return chart_from_suggestion(suggestion)


@router.post("/dataset/{dataset_id}/chat", response_model=ChatResponse)
async def chat_with_dataset(
    dataset_id: str,
    request: ChatRequest,
    repository: DatasetRepository = Depends(get_repository),
    ai_helper: AIHelper = Depends(get_ai_helper)
):
    """Chat with the dataset using AI"""
    dataset = _get_dataset_or_404(repository, dataset_id)
    return await ai_helper.achat(dataset, request.message, request.history, request.charts)


@router.post("/dataset/{dataset_id}/insights", response_model=AIInsight)
async def get_insights(
    dataset_id: str,
    repository: DatasetRepository = Depends(get_repository),
    ai_helper: AIHelper = Depends(get_ai_helper)
):
    """Summary, trends, anomalies and a chart recommendation for the dataset"""
    dataset = _get_dataset_or_404(repository, dataset_id)
    return await ai_helper.aanalyze(dataset)
