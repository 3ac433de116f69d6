from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_scheduling_service
from app.core.auth import get_current_actor
from app.domain.actor import Actor
from app.domain.booking import BookingStatus
from app.schemas.booking import (
    BookingCancelRequest,
    BookingRequest,
    BookingRespondRequest,
    BookingResponse,
    BookingVersionRequest,
)
from app.services.scheduling_service import SchedulingService

router = APIRouter()


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def request_booking(
    request: BookingRequest,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Request a session with a tutor (students only)"""
    booking = await service.request_booking(
        current_actor,
        tutor_id=request.tutor_id,
        subject_id=request.subject_id,
        start=request.start_time,
        end=request.end_time,
        notes=request.notes,
    )
    return BookingResponse.from_domain(booking)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    role: str = Query(..., description="student or tutor"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """List the caller's bookings as student or tutor"""
    bookings = await service.list_bookings(current_actor, role, booking_status)
    return [BookingResponse.from_domain(booking) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: uuid.UUID,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    booking = await service.get_booking(current_actor, booking_id)
    return BookingResponse.from_domain(booking)


@router.post("/{booking_id}/respond", response_model=BookingResponse)
async def respond_to_request(
    booking_id: uuid.UUID,
    request: BookingRespondRequest,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Tutor accepts or rejects a requested session"""
    booking = await service.respond_to_request(
        current_actor, booking_id, accept=request.accept, expected_version=request.expected_version
    )
    return BookingResponse.from_domain(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: uuid.UUID,
    request: BookingCancelRequest,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Cancel before the cancellation deadline"""
    booking = await service.cancel_booking(
        current_actor, booking_id, expected_version=request.expected_version, reason=request.reason
    )
    return BookingResponse.from_domain(booking)


@router.post("/{booking_id}/start", response_model=BookingResponse)
async def start_session(
    booking_id: uuid.UUID,
    request: BookingVersionRequest,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    booking = await service.start_session(current_actor, booking_id, request.expected_version)
    return BookingResponse.from_domain(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_session(
    booking_id: uuid.UUID,
    request: BookingVersionRequest,
    current_actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    booking = await service.complete_session(current_actor, booking_id, request.expected_version)
    return BookingResponse.from_domain(booking)
