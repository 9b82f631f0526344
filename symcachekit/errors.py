"""Errors returned by the HTTP endpoints and their JSON bodies."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

logger = logging.getLogger(__name__)


def _error_chain(exc: BaseException):
    """Yield the exception followed by the exceptions that caused it."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


@dataclass
class ApiErrorResponse:
    """The JSON body of an error response."""

    detail: str | None = None
    causes: list[str] | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ApiErrorResponse":
        """Describe an exception and the chain of exceptions behind it."""
        messages = [str(err) for err in _error_chain(exc)]
        detail = messages[0] if messages else None
        causes = messages[1:] or None
        return cls(detail=detail, causes=causes)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.detail}
        if self.causes is not None:
            body["causes"] = list(self.causes)
        return body


def _default_status(error: BaseException | str) -> HTTPStatus:
    if isinstance(error, json.JSONDecodeError):
        return HTTPStatus.BAD_REQUEST
    return HTTPStatus.INTERNAL_SERVER_ERROR


class ResponseError(Exception):
    """An error that an endpoint turns into an HTTP response.

    Without an explicit status, malformed JSON maps to 400 and everything else to 500.
    """

    def __init__(
        self,
        error: BaseException | str,
        status: HTTPStatus | int | None = None,
    ) -> None:
        self.status = HTTPStatus(status) if status is not None else _default_status(error)
        self.error = error if isinstance(error, BaseException) else Exception(error)
        super().__init__(str(self.error))

    def to_response(self) -> tuple[int, dict[str, Any]]:
        """Return the status code and JSON body; server errors are also logged."""
        if 500 <= self.status < 600:
            logger.error(
                "server error: %s",
                self.error,
                exc_info=(type(self.error), self.error, self.error.__traceback__),
            )
        body = ApiErrorResponse.from_exception(self.error).to_dict()
        return int(self.status), body