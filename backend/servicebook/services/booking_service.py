import logging
import os
from datetime import datetime, timezone
from typing import Callable, List, Optional

from servicebook.models import (
    Booking,
    BookingPayload,
    Client,
    ClientPayload,
    Message,
    MessageKind,
    Review,
    ReviewPayload,
    ServiceProvider,
    ServiceProviderPayload,
)
from servicebook.services.entity_store import Storage


logger = logging.getLogger(__name__)

RATING_CEILING = 255


def _rating_max_from_env() -> int:
    raw = os.getenv("REVIEW_RATING_MAX", str(RATING_CEILING))
    try:
        value = int(raw)
    except ValueError:
        return RATING_CEILING
    if value <= 0 or value > RATING_CEILING:
        return RATING_CEILING
    return value


REVIEW_RATING_MAX = _rating_max_from_env()


class BookingServiceError(ValueError):
    """Base class for errors reported back to the caller."""

    kind: MessageKind = "Error"

    def to_message(self) -> Message:
        return Message(kind=self.kind, message=str(self))


class InvalidPayloadError(BookingServiceError):
    kind: MessageKind = "InvalidPayload"


class NotFoundError(BookingServiceError):
    kind: MessageKind = "NotFound"


class BookingRuleError(BookingServiceError):
    kind: MessageKind = "Error"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BookingService:
    def __init__(
        self,
        storage: Storage,
        rating_max: Optional[int] = None,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        self.storage = storage
        self.rating_max = REVIEW_RATING_MAX if rating_max is None else rating_max
        self._clock = clock

    # Providers

    def create_service_provider(self, payload: ServiceProviderPayload) -> ServiceProvider:
        if not payload.name or not payload.service_type or not payload.contact_info:
            raise InvalidPayloadError("Ensure 'name', 'service_type', and 'contact_info' are provided.")

        with self.storage.transaction():
            provider = ServiceProvider(
                id=self.storage.ids.next_id(),
                name=payload.name,
                service_type=payload.service_type,
                contact_info=payload.contact_info,
                created_at=self._clock(),
                average_rating=0.0,
                reviews=[],
                availability=list(payload.availability),
            )
            self.storage.providers.insert(provider.id, provider)

        logger.info("Created service provider %s (%s)", provider.id, provider.service_type)
        return provider

    def get_service_provider(self, provider_id: int) -> ServiceProvider:
        provider = self.storage.providers.get(provider_id)
        if provider is None:
            raise NotFoundError("Service provider not found")
        return provider

    def search_service_providers(self, query: str, filter: Optional[str] = None) -> List[ServiceProvider]:
        providers = [
            provider
            for _, provider in self.storage.providers.iterate()
            if query in provider.name or query in provider.service_type or query in provider.contact_info
        ]
        if filter is not None:
            providers = [provider for provider in providers if filter in provider.service_type]
        if not providers:
            raise NotFoundError("No service providers found")
        return providers

    def get_service_provider_history(self, service_provider_id: int) -> List[Booking]:
        bookings = [
            booking
            for _, booking in self.storage.bookings.iterate()
            if booking.service_provider_id == service_provider_id
        ]
        if not bookings:
            raise NotFoundError("No bookings found for this service provider.")
        return bookings

    # Clients

    def create_client(self, payload: ClientPayload) -> Client:
        if not payload.name or not payload.contact_info:
            raise InvalidPayloadError("Ensure 'name' and 'contact_info' are provided.")

        with self.storage.transaction():
            client = Client(
                id=self.storage.ids.next_id(),
                name=payload.name,
                contact_info=payload.contact_info,
            )
            self.storage.clients.insert(client.id, client)

        logger.info("Created client %s", client.id)
        return client

    def get_client(self, client_id: int) -> Client:
        client = self.storage.clients.get(client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    def get_client_bookings(self, client_id: int) -> List[Booking]:
        bookings = [booking for _, booking in self.storage.bookings.iterate() if booking.client_id == client_id]
        if not bookings:
            raise NotFoundError("No bookings found for this client.")
        return bookings

    # Bookings

    def _load_booking(self, booking_id: int, missing: str = "Booking not found") -> Booking:
        booking = self.storage.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(missing)
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        return self._load_booking(booking_id)

    def create_booking(self, payload: BookingPayload) -> Booking:
        if payload.service_date == 0:
            raise InvalidPayloadError("Invalid service date.")

        with self.storage.transaction():
            provider = self.storage.providers.get(payload.service_provider_id)
            if provider is None:
                raise InvalidPayloadError("Invalid service_provider_id provided.")
            if payload.service_date not in provider.availability:
                logger.warning(
                    "Rejected booking for provider %s: date %s not available",
                    provider.id,
                    payload.service_date,
                )
                raise BookingRuleError("Service provider is not available on the selected date.")

            # Same-date bookings are not checked against each other.
            booking = Booking(
                id=self.storage.ids.next_id(),
                service_provider_id=payload.service_provider_id,
                client_id=payload.client_id,
                service_date=payload.service_date,
                service_type=payload.service_type,
                status="Pending",
                created_at=self._clock(),
            )
            self.storage.bookings.insert(booking.id, booking)

        logger.info("Created booking %s for provider %s", booking.id, booking.service_provider_id)
        return booking

    def reschedule_booking(self, booking_id: int, new_date: int) -> Message:
        with self.storage.transaction():
            booking = self._load_booking(booking_id)
            if booking.status != "Pending":
                raise BookingRuleError("Only pending bookings can be rescheduled.")

            provider = self.storage.providers.get(booking.service_provider_id)
            if provider is None:
                raise NotFoundError("Service provider not found")
            if new_date not in provider.availability:
                raise BookingRuleError("Service provider is not available on the new date.")

            self.storage.bookings.insert(booking_id, booking.model_copy(update={"service_date": new_date}))

        logger.info("Rescheduled booking %s to %s", booking_id, new_date)
        return Message.success("Booking rescheduled.")

    def confirm_booking(self, booking_id: int) -> Message:
        # A canceled booking may still be confirmed.
        with self.storage.transaction():
            booking = self._load_booking(booking_id)
            if booking.status == "Confirmed":
                raise BookingRuleError("Booking is already confirmed.")
            self.storage.bookings.insert(booking_id, booking.model_copy(update={"status": "Confirmed"}))

        logger.info("Booking %s: %s -> Confirmed", booking_id, booking.status)
        return Message.success("Booking confirmed.")

    def cancel_booking(self, booking_id: int) -> Message:
        with self.storage.transaction():
            booking = self._load_booking(booking_id)
            if booking.status == "Canceled":
                raise BookingRuleError("Booking is already canceled.")
            self.storage.bookings.insert(booking_id, booking.model_copy(update={"status": "Canceled"}))

        logger.info("Booking %s: %s -> Canceled", booking_id, booking.status)
        return Message.success("Booking canceled.")

    # Reviews

    def add_review(self, payload: ReviewPayload) -> Message:
        """Attach a review from a completed booking to its provider.

        No operation moves a booking to ``Completed``, so through this
        service alone every call ends in ``BookingRuleError``. Bookings that
        reach ``Completed`` by other means (a direct store write) are
        accepted normally.
        """
        with self.storage.transaction():
            booking = self._load_booking(payload.booking_id, missing="Booking not found.")
            if payload.rating > self.rating_max:
                raise InvalidPayloadError(f"Rating must be between 0 and {self.rating_max}.")
            if booking.status != "Completed":
                raise BookingRuleError("Only completed bookings can be reviewed.")

            provider = self.storage.providers.get(booking.service_provider_id)
            if provider is None:
                raise NotFoundError("Service provider not found")

            review = Review(
                client_id=booking.client_id,
                rating=payload.rating,
                comment=payload.comment,
                created_at=self._clock(),
            )
            reviews = [*provider.reviews, review]
            average_rating = sum(r.rating for r in reviews) / len(reviews)
            self.storage.providers.insert(
                provider.id,
                provider.model_copy(update={"reviews": reviews, "average_rating": average_rating}),
            )

        logger.info("Added review for provider %s (average %.2f)", provider.id, average_rating)
        return Message.success("Review added.")
