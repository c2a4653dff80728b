import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .clients.exceptions import TransactionServiceRequestError
from .signatures import SignatureDecodingError

logger = logging.getLogger(__name__)


class VerificationException(APIException):
    """
    Base for every verification failure. ``is_security_event`` flags failures that
    can only happen with a forged or tampered payload
    """

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Verification failed"
    default_code = "verification_failed"

    def __init__(self, detail=None, code=None, is_security_event: bool = False):
        super().__init__(detail=detail, code=code)
        self.is_security_event = is_security_event


class TransactionVerificationException(VerificationException):
    default_detail = "Transaction verification failed"
    default_code = "transaction_verification_failed"


class InvalidUpstreamTransaction(TransactionVerificationException):
    """
    Transaction returned by the Transaction Service is not valid
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "invalid_upstream_transaction"


class UnprocessableTransaction(TransactionVerificationException):
    """
    Transaction or signature provided by the client is not valid
    """

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "unprocessable_transaction"


class UnprocessableMessage(VerificationException):
    default_detail = "Message verification failed"
    default_code = "unprocessable_message"


def _get_exception_trace(exception: Exception) -> str:
    if str(exception):
        exception_trace = "{}: {}".format(exception.__class__.__name__, exception)
    else:
        exception_trace = exception.__class__.__name__
    return exception_trace


def _generate_response_data(exception_trace: str, message: str) -> dict:
    return {
        "exception": message,
        "trace": exception_trace,
    }


def _log_message(context: dict, exception_trace: str, exception: Exception):
    logger.warning(
        "%s - Exception: %s - Data received %s",
        context["request"].build_absolute_uri(),
        exception_trace,
        context["request"].data,
        exc_info=exception,
    )


def custom_exception_handler(exc, context):
    if isinstance(exc, SignatureDecodingError):
        response = Response(status=status.HTTP_422_UNPROCESSABLE_ENTITY)
        exception_trace = _get_exception_trace(exc)
        response.data = _generate_response_data(exception_trace, str(exc))

    elif isinstance(exc, TransactionServiceRequestError):
        response = Response(status=status.HTTP_503_SERVICE_UNAVAILABLE)
        exception_trace = _get_exception_trace(exc)
        response.data = _generate_response_data(
            exception_trace, "Problem connecting to the Transaction Service"
        )
        _log_message(context, exception_trace, exc)

    else:
        # Call REST framework's default exception handler,
        # to get the standard error response.
        response = exception_handler(exc, context)

    return response
