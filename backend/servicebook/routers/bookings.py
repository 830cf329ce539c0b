from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from servicebook.models import (
    Booking,
    BookingPayload,
    Client,
    ClientPayload,
    Message,
    RescheduleRequest,
    ReviewPayload,
    ServiceProvider,
    ServiceProviderPayload,
)
from servicebook.services.booking_service import (
    BookingRuleError,
    BookingService,
    BookingServiceError,
    NotFoundError,
)

router = APIRouter(tags=["listings"])


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def _raise_service_http_error(exc: BookingServiceError) -> None:
    detail = exc.to_message().model_dump()
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=detail)
    if isinstance(exc, BookingRuleError):
        raise HTTPException(status_code=409, detail=detail)
    raise HTTPException(status_code=400, detail=detail)


@router.post("/providers", response_model=ServiceProvider)
def create_service_provider(
    request: ServiceProviderPayload,
    service: BookingService = Depends(get_booking_service),
):
    try:
        return service.create_service_provider(request)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.get("/providers/search", response_model=list[ServiceProvider])
def search_service_providers(
    query: str = Query(default=""),
    filter: Optional[str] = Query(default=None),
    service: BookingService = Depends(get_booking_service),
):
    try:
        return service.search_service_providers(query=query, filter=filter)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.get("/providers/{provider_id}", response_model=ServiceProvider)
def get_service_provider(provider_id: int, service: BookingService = Depends(get_booking_service)):
    try:
        return service.get_service_provider(provider_id)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.get("/providers/{provider_id}/history", response_model=list[Booking])
def get_service_provider_history(provider_id: int, service: BookingService = Depends(get_booking_service)):
    try:
        return service.get_service_provider_history(provider_id)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.post("/bookings", response_model=Booking)
def create_booking(request: BookingPayload, service: BookingService = Depends(get_booking_service)):
    try:
        return service.create_booking(request)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.get("/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    try:
        return service.get_booking(booking_id)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.post("/bookings/{booking_id}/reschedule", response_model=Message)
def reschedule_booking(
    booking_id: int,
    request: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
):
    try:
        return service.reschedule_booking(booking_id=booking_id, new_date=request.new_date)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.post("/bookings/{booking_id}/confirm", response_model=Message)
def confirm_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    try:
        return service.confirm_booking(booking_id)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.post("/bookings/{booking_id}/cancel", response_model=Message)
def cancel_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    try:
        return service.cancel_booking(booking_id)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.post("/reviews", response_model=Message)
def add_review(request: ReviewPayload, service: BookingService = Depends(get_booking_service)):
    try:
        return service.add_review(request)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.post("/clients", response_model=Client)
def create_client(request: ClientPayload, service: BookingService = Depends(get_booking_service)):
    try:
        return service.create_client(request)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.get("/clients/{client_id}", response_model=Client)
def get_client(client_id: int, service: BookingService = Depends(get_booking_service)):
    try:
        return service.get_client(client_id)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)


@router.get("/clients/{client_id}/bookings", response_model=list[Booking])
def get_client_bookings(client_id: int, service: BookingService = Depends(get_booking_service)):
    try:
        return service.get_client_bookings(client_id)
    except BookingServiceError as exc:
        _raise_service_http_error(exc)
