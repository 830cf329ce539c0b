from typing import Literal, Optional

from pydantic import BaseModel, Field


BookingStatus = Literal["Pending", "Confirmed", "Canceled", "Completed"]
MessageKind = Literal["Success", "Error", "NotFound", "InvalidPayload"]


class Review(BaseModel):
    client_id: int
    rating: int = Field(ge=0, le=255)
    comment: str
    created_at: str


class ServiceProvider(BaseModel):
    id: int
    name: str
    service_type: str
    contact_info: str
    created_at: str
    average_rating: float = 0.0
    reviews: list[Review] = Field(default_factory=list)
    availability: list[int] = Field(default_factory=list)


class Client(BaseModel):
    id: int
    name: str
    contact_info: str


class Booking(BaseModel):
    id: int
    service_provider_id: int
    client_id: int
    service_date: int
    service_type: str
    status: BookingStatus = "Pending"
    created_at: str


class ServiceProviderPayload(BaseModel):
    name: str
    service_type: str
    contact_info: str
    availability: list[int] = Field(default_factory=list)


class BookingPayload(BaseModel):
    service_provider_id: int = Field(ge=0)
    client_id: int = Field(ge=0)
    service_date: int = Field(ge=0)
    service_type: str


class ClientPayload(BaseModel):
    name: str
    contact_info: str


class ReviewPayload(BaseModel):
    booking_id: int = Field(ge=0)
    rating: int = Field(ge=0, le=255)
    comment: str = ""


class RescheduleRequest(BaseModel):
    new_date: int = Field(ge=0)


class Message(BaseModel):
    kind: MessageKind
    message: str

    @classmethod
    def success(cls, message: str) -> "Message":
        return cls(kind="Success", message=message)


class ReadinessStatus(BaseModel):
    status: str
    db_path: Optional[str] = None
    providers: int = 0
    bookings: int = 0
    clients: int = 0
    next_id: Optional[int] = None
