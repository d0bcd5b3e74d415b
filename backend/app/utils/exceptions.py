"""
Custom exception classes
"""
from fastapi import HTTPException


class UnauthorizedError(HTTPException):
    """Raised when the request carries no valid session"""
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(
            status_code=401,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    """Raised when the principal lacks role, permission or ownership"""
    def __init__(self, detail: str = "You don't have permission to access this resource"):
        super().__init__(
            status_code=403,
            detail=detail
        )


class NotFoundError(HTTPException):
    """Raised when the referenced record does not exist"""
    def __init__(self, entity: str, entity_id=None):
        detail = f"{entity} {entity_id} not found" if entity_id is not None else f"{entity} not found"
        super().__init__(
            status_code=404,
            detail=detail
        )


class ValidationFailedError(HTTPException):
    """Raised for input that passes schema parsing but fails a business check"""
    def __init__(self, detail):
        super().__init__(
            status_code=400,
            detail=detail
        )


class ConflictError(HTTPException):
    """Raised when the change conflicts with existing state"""
    def __init__(self, detail: str):
        super().__init__(
            status_code=409,
            detail=detail
        )


class UploadFailedError(HTTPException):
    """Raised when S3 upload fails; the storage error is logged, never returned"""
    def __init__(self):
        super().__init__(
            status_code=500,
            detail="Upload failed, please try again later"
        )
