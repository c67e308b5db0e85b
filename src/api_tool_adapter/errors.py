"""Error taxonomy for building and invoking tools."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class AdapterError(Exception):
    code: int = INTERNAL_ERROR

    def to_error(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class SpecLoadError(AdapterError):
    """The API description could not be fetched, parsed or normalized."""


class OperationRegistrationError(AdapterError):
    def __init__(self, operation_id: str, reason: str) -> None:
        self.operation_id = operation_id
        super().__init__(f"Failed to register operation {operation_id}: {reason}")


class MissingParametersError(AdapterError):
    code = INVALID_PARAMS

    def __init__(self, missing: List[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing parameters: {', '.join(self.missing)}")


class ParameterConversionError(AdapterError):
    code = INVALID_PARAMS

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        details = "; ".join(
            f"Parameter '{name}' conversion error: {reason}" for name, reason in self.errors.items()
        )
        super().__init__(details)


class AuthenticationError(AdapterError):
    """Token acquisition failed. Not converted into a tool result."""


class ExecutionError(AdapterError):
    pass


class RemoteHttpError(ExecutionError):
    def __init__(self, status_code: int, body: str, reason: Optional[str] = None) -> None:
        self.status_code = status_code
        self.body = body
        label = f"{status_code} {reason}" if reason else str(status_code)
        super().__init__(f"HTTP error {label}: {body}")

    def to_error(self) -> Dict[str, Any]:
        error = super().to_error()
        error["data"] = {"status_code": self.status_code, "body": self.body}
        return error
