"""
Error taxonomy and response mapping.

Services report business outcomes as tagged results (Ok / Failure). The
HTTP boundary unwraps them, and install_error_handlers() is the only place
that turns a failure into a status code and an error body.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Generic, TypeVar, Union
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel
from crm.base_microservice import BaseMicroservice

T = TypeVar("T")

class ErrorCode(Enum):
    # Auth / user
    USERNAME_ALREADY_EXISTS = ("USERNAME_ALREADY_EXISTS", "Username already exists")
    EMAIL_ALREADY_EXISTS = ("EMAIL_ALREADY_EXISTS", "Email already exists")
    INVALID_CREDENTIALS = ("INVALID_CREDENTIALS", "Invalid username or password")
    USER_NOT_FOUND = ("USER_NOT_FOUND", "User not found")
    UNAUTHORIZED = ("AUTH_001", "Unauthorized")
    FORBIDDEN = ("AUTH_002", "Forbidden")
    VALIDATION_ERROR = ("VALIDATION_ERROR", "Invalid input data")

    # Routing
    NOT_FOUND = ("NOT_FOUND", "Resource not found")
    METHOD_NOT_ALLOWED = ("METHOD_NOT_ALLOWED", "Method not allowed")

    # System
    INTERNAL_ERROR = ("INTERNAL_ERROR", "Internal server error")

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message

class ErrorResponse(BaseModel):
    """Body returned for every failed request."""
    code: str
    message: str
    timestamp: date

    @classmethod
    def of(cls, error: ErrorCode, message: str = None) -> "ErrorResponse":
        return cls(code=error.code, message=message or error.message, timestamp=date.today())

@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

@dataclass(frozen=True)
class Failure:
    error: ErrorCode

Result = Union[Ok[T], Failure]

class BusinessRuleViolation(Exception):
    """A request broke a business rule. Always recoverable by the caller."""

    def __init__(self, error: ErrorCode):
        super().__init__(error.message)
        self.error = error

class AuthenticationRequired(Exception):
    """The route needs an authenticated principal and none is attached."""

class AccessDenied(Exception):
    """The principal lacks the authority the route requires."""

def unwrap(result: Result[T]) -> T:
    """Return the value of a successful result or raise its business failure."""
    if isinstance(result, Failure):
        raise BusinessRuleViolation(result.error)
    return result.value

def _error_body(error: ErrorCode, status_code: int, message: str = None) -> JSONResponse:
    body = ErrorResponse.of(error, message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

HTTP_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.METHOD_NOT_ALLOWED,
}

def error_code_for_status(status_code: int) -> ErrorCode:
    """Pick the error code for a framework-raised HTTP error."""
    if status_code in HTTP_STATUS_CODES:
        return HTTP_STATUS_CODES[status_code]
    if status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
        return ErrorCode.VALIDATION_ERROR
    return ErrorCode.INTERNAL_ERROR

def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        loc = err.get("loc") or ()
        # Body-level errors such as malformed JSON end in a position, not a field name
        field = loc[-1] if loc and isinstance(loc[-1], str) else "body"
        ctx_error = (err.get("ctx") or {}).get("error")
        # Prefer the message our own validators raised over pydantic's wrapped text
        message = str(ctx_error) if isinstance(ctx_error, Exception) else err["msg"]
        messages.append(f"{field}: {message}")
    return ", ".join(messages)

def install_error_handlers(app: FastAPI, service: BaseMicroservice = None) -> None:
    """Register the exception handlers that map failures to responses."""
    service = service or BaseMicroservice()

    @app.exception_handler(BusinessRuleViolation)
    async def handle_business_rule(request: Request, exc: BusinessRuleViolation):
        service.log_warning("business.rule.violation", {
            "code": exc.error.code,
            "path": request.url.path
        })
        return _error_body(exc.error, status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(RequestValidationError)
    async def handle_validation(request: Request, exc: RequestValidationError):
        return _error_body(
            ErrorCode.VALIDATION_ERROR,
            status.HTTP_400_BAD_REQUEST,
            _validation_message(exc)
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        response = _error_body(error_code_for_status(exc.status_code), exc.status_code)
        # Keep headers such as Allow on 405
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(AuthenticationRequired)
    async def handle_authentication_required(request: Request, exc: AuthenticationRequired):
        response = _error_body(ErrorCode.UNAUTHORIZED, status.HTTP_401_UNAUTHORIZED)
        response.headers["WWW-Authenticate"] = "Bearer"
        return response

    @app.exception_handler(AccessDenied)
    async def handle_access_denied(request: Request, exc: AccessDenied):
        service.log_warning("access.denied", {"path": request.url.path})
        return _error_body(ErrorCode.FORBIDDEN, status.HTTP_403_FORBIDDEN)

    @app.exception_handler(Exception)
    async def handle_system_fault(request: Request, exc: Exception):
        service.log_error(exc, context=f"{request.method} {request.url.path}")
        return _error_body(ErrorCode.INTERNAL_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR)
