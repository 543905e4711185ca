"""Domain errors shared by the services and mapped to HTTP responses in the API."""


class NotFoundError(Exception):
    """A referenced row (transaction, registration, event...) does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: str | None = None):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class RuleViolationError(Exception):
    """A request breaks a business rule; the caller must not retry blindly."""

    def __init__(self, reason: str, status_code: int = 400):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


class SignatureError(Exception):
    """Webhook signature missing or not matching the shared secret."""

    status_code = 400
