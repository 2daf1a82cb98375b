from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.deps import get_schedule_store
from app.api.schemas.schedule import ScheduleListResponse, ScheduleResponse
from app.models.schedule import ScheduleBlock, ScheduleBlockCreate, ScheduleBlockPublic, ScheduleBlockUpdate
from app.services.schedule_service import (
    create_schedule_block,
    delete_schedule_block,
    list_schedule_blocks,
    update_schedule_block,
)
from app.stores.base import ScheduleStore

router = APIRouter(tags=["schedules"])


def _to_public(block: ScheduleBlock) -> ScheduleBlockPublic:
    return ScheduleBlockPublic(
        schedule_id=block.schedule_id,
        doctor_id=block.doctor_id,
        day_of_week=block.day_of_week,
        start_time=block.start_time,
        end_time=block.end_time,
        slot_duration_minutes=block.slot_duration_minutes,
    )


@router.get("/doctors/{doctor_id}/schedules", response_model=ScheduleListResponse)
async def get_doctor_schedules(
    doctor_id: str,
    store: ScheduleStore = Depends(get_schedule_store),
) -> ScheduleListResponse:
    blocks = await list_schedule_blocks(store, doctor_id)
    return ScheduleListResponse(schedules=[_to_public(b) for b in blocks], count=len(blocks))


@router.post(
    "/doctors/{doctor_id}/schedules",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_schedule(
    doctor_id: str,
    body: ScheduleBlockCreate,
    store: ScheduleStore = Depends(get_schedule_store),
) -> ScheduleResponse:
    change = await create_schedule_block(store, doctor_id, body)
    if not change.applied:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Schedule already exists or overlaps with existing schedule on this day",
                "schedule": _to_public(change.block).model_dump(mode="json"),
            },
        )
    return ScheduleResponse(message="Schedule created successfully", schedule=_to_public(change.block))


@router.put("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: str,
    body: ScheduleBlockUpdate,
    store: ScheduleStore = Depends(get_schedule_store),
) -> ScheduleResponse:
    change = await update_schedule_block(store, schedule_id, body)
    if not change.applied:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Updated schedule would overlap with an existing schedule on this day",
                "schedule": _to_public(change.block).model_dump(mode="json"),
            },
        )
    return ScheduleResponse(message="Schedule updated successfully", schedule=_to_public(change.block))


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: str,
    store: ScheduleStore = Depends(get_schedule_store),
) -> Response:
    await delete_schedule_block(store, schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
