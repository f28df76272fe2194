"""
Result envelope boundary.

Every engine operation is invoked through `execute`, which turns raised
domain errors into `OperationResult(success=False, ...)`. Only unexpected
exceptions are logged with a traceback; their detail never leaves the server.
"""
from typing import Callable, Any, Optional

import structlog
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from ..errors import DomainError, ValidationError
from ..schemas.common import OperationResult


logger = structlog.get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


def _first_issue(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "Invalid input")
    return f"{loc}: {msg}" if loc else msg


def failure(error: DomainError) -> OperationResult:
    return OperationResult(success=False, error=error.message, code=error.code)


def execute(
    operation: str,
    fn: Callable[..., Any],
    *args,
    message: Optional[str] = None,
    **kwargs,
) -> OperationResult:
    """
    Run `fn` and wrap its outcome.

    Args:
        operation: Operation name for logs
        fn: Service callable
        message: Success message to attach

    Returns:
        OperationResult with `data` set to the callable's return value
    """
    try:
        data = fn(*args, **kwargs)
    except PydanticValidationError as e:
        err = ValidationError(_first_issue(e))
        logger.warning("operation_failed", operation=operation, code=err.code, error=err.message)
        return failure(err)
    except DomainError as e:
        logger.warning("operation_failed", operation=operation, code=e.code, error=e.message)
        return failure(e)
    except Exception:
        logger.exception("operation_crashed", operation=operation)
        return OperationResult(success=False, error=GENERIC_ERROR_MESSAGE, code="INTERNAL_ERROR")
    return OperationResult(success=True, data=data, message=message)


def http_status_for(result: OperationResult, success_status: int = 200) -> int:
    if result.success:
        return success_status
    for cls in _walk(DomainError):
        if cls.code == result.code:
            return cls.http_status
    return 500


def _walk(cls):
    yield cls
    for sub in cls.__subclasses__():
        yield from _walk(sub)


def to_response(result: OperationResult, success_status: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=http_status_for(result, success_status),
        content=jsonable_encoder(result),
    )
