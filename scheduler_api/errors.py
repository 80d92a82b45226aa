class BookingError(Exception):
    """Base class for failures raised by the booking flow and its stores."""


class NotFound(BookingError):
    pass


class ValidationFailure(BookingError):
    pass


class StorageFailure(BookingError):
    pass


class Forbidden(BookingError):
    pass
