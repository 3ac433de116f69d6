from datetime import datetime
from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_scheduling_service
from app.core.auth import get_current_actor
from app.domain.actor import Actor
from app.schemas.availability import (
    AvailabilityWindowCreate,
    AvailabilityWindowResponse,
    EffectiveIntervalResponse,
    TimeOffCreate,
    TimeOffResponse,
)
from app.services.scheduling_service import SchedulingService

router = APIRouter()


@router.get("/tutors/{tutor_id}", response_model=List[EffectiveIntervalResponse])
async def get_tutor_availability(
    tutor_id: uuid.UUID,
    start: datetime = Query(..., description="Range start (timezone-aware)"),
    end: datetime = Query(..., description="Range end (timezone-aware, exclusive)"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Concrete availability intervals for a tutor in a date range, ignoring bookings"""
    intervals = await service.list_availability(tutor_id, start, end)
    return [EffectiveIntervalResponse.from_interval(interval) for interval in intervals]


@router.get("/tutors/{tutor_id}/slots", response_model=List[EffectiveIntervalResponse])
async def get_bookable_slots(
    tutor_id: uuid.UUID,
    start: datetime = Query(..., description="Range start (timezone-aware)"),
    end: datetime = Query(..., description="Range end (timezone-aware, exclusive)"),
    duration: Optional[int] = Query(None, ge=1, description="Slot length in minutes; omit for whole free intervals"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Availability with active bookings taken out"""
    slots = await service.list_bookable_slots(tutor_id, start, end, duration)
    return [EffectiveIntervalResponse.from_interval(slot) for slot in slots]


@router.get("/tutors/{tutor_id}/windows", response_model=List[AvailabilityWindowResponse])
async def get_tutor_windows(
    tutor_id: uuid.UUID,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Recurring and one-time windows as the tutor entered them"""
    windows = await service.list_windows(tutor_id)
    return [AvailabilityWindowResponse.from_domain(window) for window in windows]


@router.post("/windows", response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
async def propose_availability(
    request: AvailabilityWindowCreate,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Add an availability window (tutors only)"""
    window = await service.propose_availability(current_actor, request.to_domain(current_actor.actor_id))
    return AvailabilityWindowResponse.from_domain(window)


@router.delete("/windows/{window_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_availability(
    window_id: uuid.UUID,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Remove one of the caller's availability windows"""
    await service.remove_availability(current_actor, window_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/time-off", response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
async def create_time_off(
    request: TimeOffCreate,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Block out time inside the caller's availability"""
    block = await service.add_time_off(current_actor, request.start_at, request.end_at)
    return TimeOffResponse.from_domain(block)
