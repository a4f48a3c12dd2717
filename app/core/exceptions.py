from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=detail)


class UnknownDoctor(HTTPException):
    def __init__(self, doctor_id=None):
        self.doctor_id = doctor_id
        super().__init__(status_code=404, detail="Doctor not found")


class NotFound(HTTPException):
    def __init__(self, detail: str = "Token not found"):
        super().__init__(status_code=404, detail=detail)


class InvalidTransition(HTTPException):
    """Raised when a token is already in a terminal state."""

    def __init__(self, detail: str = "Token is already completed"):
        super().__init__(status_code=409, detail=detail)


class AllocationFailed(HTTPException):
    def __init__(self, message: str):
        self.message = message
        super().__init__(status_code=503, detail=message)


class TransientAllocationConflict(Exception):
    """
    A concurrent writer touched the same (doctor, date) counter.
    Retried inside the allocation procedure, never returned to callers.
    """
    pass
