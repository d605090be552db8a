# Custom exceptions to be used throughout the project.

class BookingError(Exception):
    """
    Base class for every error the booking core surfaces to its caller.
    Carries a user facing message, the HTTP status the web layer should answer with and any structured details.
    """
    status_code = 500

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        body.update({k: v for k, v in self.details.items() if v is not None})
        return body


class ValidationError(BookingError):
    """
    To be raised when a booking request can't be accepted as given. User correctable.
    May be raised under the following circumstances:
        1. Required fields (name, email, dateTime) are missing or blank
        2. dateTime or a range bound isn't a parsable ISO-8601 instant
        3. The email address isn't valid
        4. A text field is too long or holds disallowed characters
        5. A range has its start after its end
    """
    status_code = 400

    def to_dict(self):
        # Only the missing field list goes back to the client. The raw input and validator messages stay on the exception
        body = {"error": self.message}
        if self.details.get("missing"):
            body["missing"] = self.details["missing"]
        return body


class ConflictError(BookingError):
    """
    To be raised when the requested time lies within the conflict tolerance of an existing appointment.
    """
    status_code = 400

    def __init__(self, requested_time: str, message="Time slot already booked"):
        super().__init__(message, requestedTime=requested_time)
        self.requested_time = requested_time


class NotFoundError(BookingError):
    status_code = 404

    def __init__(self, appointment_id, message="Appointment not found"):
        # id is kept off the response body to match the public contract
        super().__init__(message)
        self.appointment_id = appointment_id


class StorageError(BookingError):
    """
    To be raised when the underlying storage can't be read or written. Not user correctable; callers may retry.
    """
    status_code = 500

    def __init__(self, message="Storage failure", **details):
        super().__init__(message, **details)

    def to_dict(self):
        # Details (paths, driver messages) go to the logs, not to the client
        return {"error": self.message}
