"""
Exception types shared by the aggregators and the HTTP layer.

Client-class errors carry a human readable message that is safe to return to
the caller. Server-class errors never leak their details; the API layer logs
them and answers with a generic message.
"""


class ServiceError(Exception):
    """Base class for errors raised by this service."""

    status_code = 500
    public_message = "Internal server error"


class InvalidRequestError(ServiceError):
    """Malformed or empty request input (bad JSON, missing id, no valid fields)."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.public_message = message


class StoreError(ServiceError):
    """A relational store query failed."""
