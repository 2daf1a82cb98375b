import logging
from dataclasses import dataclass
from datetime import time

from app.core.config import settings
from app.core.exceptions import InvalidScheduleBlock, NotFound
from app.models.schedule import ScheduleBlock, ScheduleBlockCreate, ScheduleBlockUpdate
from app.stores.base import ScheduleStore, call_store

logger = logging.getLogger(__name__)


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def blocks_overlap(a: ScheduleBlock | ScheduleBlockCreate, b: ScheduleBlock | ScheduleBlockCreate) -> bool:
    """Same weekday and overlapping wall-clock hours (touching blocks are fine)."""
    if a.day_of_week != b.day_of_week:
        return False
    return _minutes(a.start_time) < _minutes(b.end_time) and _minutes(a.end_time) > _minutes(b.start_time)


@dataclass(frozen=True)
class ScheduleChange:
    block: ScheduleBlock
    # False when nothing was written; block is then the conflicting one
    applied: bool


async def list_schedule_blocks(store: ScheduleStore, doctor_id: str) -> list[ScheduleBlock]:
    return await call_store(store.list_blocks(doctor_id))


async def create_schedule_block(
    store: ScheduleStore, doctor_id: str, data: ScheduleBlockCreate
) -> ScheduleChange:
    """Add a weekly block for a doctor.

    When the new block overlaps (or equals) an existing block on the same
    weekday nothing is written and the existing block is returned with
    applied=False, unless settings.allow_schedule_overlap is set.
    """
    if not settings.allow_schedule_overlap:
        for existing in await call_store(store.list_blocks(doctor_id)):
            if blocks_overlap(existing, data):
                logger.info(
                    "Schedule block for doctor %s day %d overlaps %s",
                    doctor_id,
                    data.day_of_week,
                    existing.schedule_id,
                )
                return ScheduleChange(block=existing, applied=False)

    block = ScheduleBlock(
        doctor_id=doctor_id,
        day_of_week=data.day_of_week,
        start_time=data.start_time,
        end_time=data.end_time,
        slot_duration_minutes=data.slot_duration_minutes or settings.default_slot_duration_minutes,
    )
    saved = await call_store(store.add_block(block))
    logger.info(
        "Schedule block %s created for doctor %s day %d %s-%s",
        saved.schedule_id,
        doctor_id,
        saved.day_of_week,
        saved.start_time.strftime("%H:%M"),
        saved.end_time.strftime("%H:%M"),
    )
    return ScheduleChange(block=saved, applied=True)


async def update_schedule_block(
    store: ScheduleStore, schedule_id: str, data: ScheduleBlockUpdate
) -> ScheduleChange:
    """Change a block's hours or slot length.

    Fields left as None keep their value. The merged hours must still be
    ordered, and the same same-weekday overlap rule as creation applies, the
    block itself excluded.
    """
    block = await call_store(store.get_block(schedule_id))
    if block is None:
        raise NotFound(f"Schedule {schedule_id} not found")

    start = data.start_time if data.start_time is not None else block.start_time
    end = data.end_time if data.end_time is not None else block.end_time
    if start >= end:
        raise InvalidScheduleBlock("End time must be after start time")
    proposed = ScheduleBlockCreate(
        day_of_week=block.day_of_week,
        start_time=start,
        end_time=end,
        slot_duration_minutes=data.slot_duration_minutes or block.slot_duration_minutes,
    )

    if not settings.allow_schedule_overlap:
        for existing in await call_store(store.list_blocks(block.doctor_id)):
            if existing.schedule_id != schedule_id and blocks_overlap(existing, proposed):
                logger.info("Schedule block %s update overlaps %s", schedule_id, existing.schedule_id)
                return ScheduleChange(block=existing, applied=False)

    block.start_time = proposed.start_time
    block.end_time = proposed.end_time
    block.slot_duration_minutes = proposed.slot_duration_minutes
    saved = await call_store(store.update_block(block))
    logger.info(
        "Schedule block %s updated to %s-%s every %d min",
        schedule_id,
        saved.start_time.strftime("%H:%M"),
        saved.end_time.strftime("%H:%M"),
        saved.slot_duration_minutes,
    )
    return ScheduleChange(block=saved, applied=True)


async def delete_schedule_block(store: ScheduleStore, schedule_id: str) -> ScheduleBlock:
    block = await call_store(store.get_block(schedule_id))
    if block is None:
        raise NotFound(f"Schedule {schedule_id} not found")
    await call_store(store.delete_block(schedule_id))
    logger.info("Schedule block %s deleted for doctor %s", schedule_id, block.doctor_id)
    return block
