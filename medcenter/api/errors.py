from fastapi import HTTPException, status

from medcenter.services.results import ErrorType, ServiceResult

_STATUS_BY_ERROR = {
    ErrorType.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorType.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorType.SLOT_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorType.EXPIRED: status.HTTP_410_GONE,
    ErrorType.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorType.UNEXPECTED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_for_result(result: ServiceResult) -> None:
    """Turn a failed ServiceResult into an HTTPException; no-op on success.

    The detail keeps the error type and any context (e.g. doctor_id and date on a
    slot conflict) so the client can re-select a slot without losing its form.
    """
    if result.success:
        return
    raise HTTPException(
        status_code=_STATUS_BY_ERROR[result.error_type],
        detail={"error_type": result.error_type.value, "message": result.message, **result.context},
    )
