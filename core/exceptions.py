class RegistrationError(Exception):
    """Base of the errors the registration flow reports back to the caller.

    `status` is the HTTP status the API answers with; `public_message` is
    what the user sees. Store and unexpected errors keep their details in
    the exception args (for the logs) and expose only a generic message.
    """

    status = 500
    default_message = "An unexpected error occurred. Please try again later."

    def __init__(self, message: str = "", *, public_message: str | None = None):
        super().__init__(message or self.default_message)
        self.public_message = public_message or self.default_message


class CapacityExceeded(RegistrationError):
    status = 409
    default_message = "Sorry, this event is now full."


class AlreadyRegistered(RegistrationError):
    status = 409
    default_message = "You are already registered for this event."


class OfferingNotFound(RegistrationError):
    status = 500


class StoreError(RegistrationError):
    status = 500
