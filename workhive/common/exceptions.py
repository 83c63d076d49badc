from fastapi import HTTPException, status


class WorkHiveException(HTTPException):
    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(WorkHiveException):
    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class PermissionDeniedError(WorkHiveException):
    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class BadRequestError(WorkHiveException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ValidationFailedError(WorkHiveException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_422_UNPROCESSABLE_CONTENT)


class TerminalStateError(BadRequestError):
    """The project's dispute history is closed; no further disputes are accepted."""

    def __init__(self, project_id: str):
        super().__init__(
            f"Project '{project_id}' has a closed dispute and cannot have new disputes"
        )


class ImmutableDisputeError(BadRequestError):
    def __init__(self, dispute_id: str, dispute_status: str):
        super().__init__(f"Cannot update dispute '{dispute_id}': it is {dispute_status}")


class ConflictError(WorkHiveException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class InvalidStateError(ConflictError):
    pass


class StorageFaultError(WorkHiveException):
    def __init__(self, detail: str | None = None):
        msg = "Storage unavailable"
        if detail:
            msg += f" - {detail}"
        super().__init__(detail=msg, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
