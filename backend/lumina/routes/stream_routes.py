from fastapi import APIRouter, Depends
from typing import Optional

from ..dependencies import get_simulator
from ..models.models import StreamRequest, StreamStatus
from ..utils.streaming import StreamingSimulator

router = APIRouter()


def _dataset_id(request: Optional[StreamRequest]) -> Optional[str]:
    return request.dataset_id if request else None


@router.get("/stream", response_model=StreamStatus)
async def get_stream_status(simulator: StreamingSimulator = Depends(get_simulator)):
    """Current live stream state"""
    return simulator.status()


@router.post("/stream/toggle", response_model=StreamStatus)
async def toggle_stream(
    request: Optional[StreamRequest] = None,
    simulator: StreamingSimulator = Depends(get_simulator)
):
    """
    Switch between static and live data. Going live on a dataset without rows
    or numeric columns leaves the stream idle.
    """
    simulator.toggle(_dataset_id(request))
    return simulator.status()


@router.post("/stream/start", response_model=StreamStatus)
async def start_stream(
    request: Optional[StreamRequest] = None,
    simulator: StreamingSimulator = Depends(get_simulator)
):
    simulator.start(_dataset_id(request))
    return simulator.status()


@router.post("/stream/stop", response_model=StreamStatus)
async def stop_stream(simulator: StreamingSimulator = Depends(get_simulator)):
    simulator.stop()
    return simulator.status()


@router.put("/stream/active", response_model=StreamStatus)
async def set_active_dataset(
    request: StreamRequest,
    simulator: StreamingSimulator = Depends(get_simulator)
):
    """Select the dataset on display; a live stream follows it"""
    simulator.set_active_dataset(request.dataset_id)
    return simulator.status()
