from fastapi import HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class EventNotFound(DomainException):
    def __init__(self, event_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Event not found",
            detail=f"event '{event_id}' not found",
            code="event_not_found",
        )


class RatingUpdateError(Exception):
    """Base class for failures of the match completion / rating pipeline."""

    code = "rating_update_failed"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class DependencyReadError(RatingUpdateError):
    """Settings or ratings could not be read; nothing was written."""

    code = "rating_read_failed"


class DependencyWriteError(RatingUpdateError):
    """A persisted write failed. Earlier steps stay committed."""

    code = "rating_write_failed"

    def __init__(self, detail: str, *, step: str | None = None, failures=None) -> None:
        super().__init__(detail)
        self.step = step
        self.failures = list(failures or [])


class DegenerateInputError(RatingUpdateError):
    """The score summary holds no games, so no percentage can be computed."""

    code = "rating_degenerate_input"


def http_problem(
    status_code: int,
    detail: str,
    code: str,
    *,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """Create an HTTPException with an attached problem code."""

    exc = HTTPException(status_code=status_code, detail=detail, headers=headers)
    setattr(exc, "code", code)
    return exc


def problem_response(
    status_code: int,
    title: str,
    code: str,
    *,
    detail: str | None = None,
    type_: str = "about:blank",
) -> JSONResponse:
    """Render an RFC 7807 body with the ``application/problem+json`` type."""

    problem = ProblemDetail(
        type=type_, title=title, detail=detail, status=status_code, code=code
    )
    return JSONResponse(
        status_code=status_code,
        content=problem.model_dump(),
        media_type="application/problem+json",
    )
