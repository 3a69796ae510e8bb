"""
Domain errors raised by the slot engine and the booking commit path.

NotFound / InvalidInput / SlotUnavailable / PersistenceFailure propagate
to the caller. IntegrationUnavailable never leaves the calendar sync
layer: it is downgraded to a sync_status value and a log line.
"""


class BookingError(Exception):
    """Base class for domain errors."""


class NotFound(BookingError):
    pass


class ServiceNotFound(NotFound):
    def __init__(self, service_id: int):
        super().__init__(f"Service {service_id} not found")
        self.service_id = service_id


class ProviderNotFound(NotFound):
    def __init__(self, provider_id: int):
        super().__init__(f"Provider {provider_id} not found")
        self.provider_id = provider_id


class BookingNotFound(NotFound):
    def __init__(self, booking_id: int):
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class InvalidInput(BookingError):
    pass


class SlotUnavailable(BookingError):
    """The requested interval conflicts with committed bookings."""

    def __init__(self, message: str = "This time slot is no longer available"):
        super().__init__(message)


class IntegrationUnavailable(BookingError):
    """External calendar unreachable, timed out or unauthorized after refresh."""


class PersistenceFailure(BookingError):
    pass
