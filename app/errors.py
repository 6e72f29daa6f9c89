import logging
from flask import Blueprint
from pydantic import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException
from app.utils.responses import error, validation_error_response

errors_bp = Blueprint("errors_bp", __name__)


class CommerceError(Exception):
    """Base class for failures surfaced to the caller with a specific message."""

    status_code = 400
    retryable = False

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def payload(self):
        data = dict(self.details)
        if self.retryable:
            data["retryable"] = True
        return data


class ValidationError(CommerceError):
    pass


class IncompleteDeliveryInfo(ValidationError):
    pass


class NotFound(CommerceError):
    status_code = 404


class OwnershipConflict(CommerceError):
    status_code = 403


class InsufficientFunds(CommerceError):
    """Carries the computed ``limit`` so the caller can show it."""

    def __init__(self, message, limit=None, **details):
        super().__init__(message, limit=limit, **details)
        self.limit = limit

    def payload(self):
        data = super().payload()
        if self.limit is not None:
            data["limit"] = float(self.limit)
        return data


class InvalidTransition(CommerceError):
    status_code = 409


class ConcurrentTransition(InvalidTransition):
    pass


class AtomicityFailure(CommerceError):
    status_code = 500


class TransientError(CommerceError):
    status_code = 503
    retryable = True


class PayoutFailure(CommerceError):
    status_code = 502

    def __init__(self, message, retryable=False, **details):
        super().__init__(message, **details)
        self.retryable = retryable


@errors_bp.app_errorhandler(CommerceError)
def handle_commerce_error(e):
    if e.status_code >= 500:
        logging.error("%s: %s", type(e).__name__, e.message)
    else:
        logging.info("%s: %s", type(e).__name__, e.message)
    return error(e.message, status=e.status_code, code=type(e).__name__, **e.payload())


@errors_bp.app_errorhandler(SchemaValidationError)
def handle_schema_error(e):
    return validation_error_response(e.errors(include_url=False))


@errors_bp.app_errorhandler(HTTPException)
def handle_http_exception(e):
    msg = e.description or getattr(e, "name", "HTTP Error")
    return error(msg, status=e.code, code=e.code)


@errors_bp.app_errorhandler(Exception)
def handle_unexpected_exception(e):
    logging.exception("Unhandled exception")
    return error(
        "An unexpected error occurred. Please try again later.",
        status=500,
        code=500,
    )
