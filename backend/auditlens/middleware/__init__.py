"""HTTP middleware and exception handlers."""

from .error_handling import APIErrorResponse, ErrorDetail, ErrorType, register_exception_handlers

__all__ = ["APIErrorResponse", "ErrorDetail", "ErrorType", "register_exception_handlers"]
