from fastapi import Request

from app.services.scheduling_service import SchedulingService


def get_scheduling_service(request: Request) -> SchedulingService:
    return request.app.state.scheduling_service
