import json
import logging
import time
import traceback
from dataclasses import asdict, dataclass


@dataclass
class ErrorInfo:
    function: str
    line: int
    exceptionInfo: str | None = None


@dataclass
class ContextMessageLog:
    errorInfo: ErrorInfo | None = None
    extraData: dict | None = None


@dataclass
class JsonLog:
    level: str
    timestamp: int
    context: str
    message: str
    lineno: int
    contextMessage: ContextMessageLog | None = None

    def _remove_null_values_from_log(self, json_log: dict):
        """
        Delete keys with the value ``None`` in a dictionary, recursively.
        """
        for key, value in list(json_log.items()):
            if value is None:
                del json_log[key]
            elif isinstance(value, dict):
                self._remove_null_values_from_log(value)
        return json_log

    def to_json(self):
        # Values like addresses or hashes in ``extraData`` can be bytes
        return json.dumps(self._remove_null_values_from_log(asdict(self)), default=str)


def get_milliseconds_now():
    return int(time.time() * 1000)


class SafeJsonFormatter(logging.Formatter):
    """
    Json formatter with following schema
    {
        level: str,
        timestamp: Datetime,
        context: str,
        message: str,
        contextMessage: <contextMessage>
    }
    """

    def format(self, record) -> str:
        """
        Format logging record as json string.
        """

        error_detail: ErrorInfo | None = None
        if record.levelname == "ERROR":
            exception_info: str | None = None
            # Check if the error contains exception data
            if record.exc_info:
                exc_type, exc_value, exc_tb = record.exc_info
                exception_info = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

            error_detail = ErrorInfo(
                function=record.funcName,
                line=record.lineno,
                exceptionInfo=exception_info,
            )

        context_message = ContextMessageLog(
            errorInfo=error_detail,
            extraData=getattr(record, "extra_data", None),
        )

        json_log = JsonLog(
            level=record.levelname,
            timestamp=get_milliseconds_now(),
            context=f"{record.module}.{record.funcName}",
            message=record.getMessage(),
            contextMessage=context_message,
            lineno=record.lineno,
        )

        return json_log.to_json()
