"""HTTP endpoints for reading monitor frames and recording vitals."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from vitalview.modules.extraction.image import InvalidImage, decode_image
from vitalview.modules.extraction.models import ExtractionFailed
from vitalview.modules.extraction.schemas import (
    ExtractionRequest,
    ExtractionResponse,
    FrameRequest,
)
from vitalview.modules.monitoring.schemas import CycleResponse
from vitalview.modules.monitoring.service import MonitoringService
from vitalview.modules.vitals.schemas import VitalRecordCreate, VitalsSnapshot
from vitalview.shared import deps

router = APIRouter()


def _check_image(image_base64: str) -> None:
    try:
        decode_image(image_base64)
    except InvalidImage as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post(
    "/extract",
    response_model=ExtractionResponse,
    summary="Read vitals from a monitor frame without saving them",
)
async def extract_vitals(
    body: ExtractionRequest,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> ExtractionResponse:
    _check_image(body.image_base64)
    result = await service.extract(body.image_base64, body.rois)
    failures = {
        outcome.source.value: outcome.reason
        for outcome in (result.model, result.pattern)
        if isinstance(outcome, ExtractionFailed)
    }
    return ExtractionResponse(vitals=result.vitals, failures=failures)


@router.post(
    "/frames",
    response_model=CycleResponse,
    summary="Run a full monitoring cycle for a captured frame",
    status_code=201,
)
async def process_frame(
    body: FrameRequest,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> CycleResponse:
    _check_image(body.image_base64)
    result = await service.process_frame(
        patient_id=body.patient_id,
        image=body.image_base64,
        rois=body.rois,
        source=body.source,
        captured_at=body.captured_at,
    )
    return CycleResponse.from_result(result)


@router.post(
    "/",
    response_model=List[CycleResponse],
    summary="Record confirmed vitals (one reading or a batch of video frames)",
    status_code=201,
)
async def record_vitals(
    body: VitalRecordCreate | List[VitalRecordCreate],
    service: MonitoringService = Depends(deps.get_monitoring),
) -> List[CycleResponse]:
    if isinstance(body, list):
        results = await service.ingest_many(item.to_snapshot() for item in body)
    else:
        results = [await service.ingest(body.to_snapshot())]
    return [CycleResponse.from_result(result) for result in results]


@router.get(
    "/{patient_id}",
    response_model=List[VitalsSnapshot],
    summary="Recent vitals for a patient, newest first",
)
async def read_patient_vitals(
    patient_id: int,
    limit: int = Query(100, ge=1, le=1000),
    service: MonitoringService = Depends(deps.get_monitoring),
) -> List[VitalsSnapshot]:
    return await service.vital_store.query(patient_id, limit)
