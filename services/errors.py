# services/errors.py
"""Domain errors ที่ service โยนออกไป; main.py แปลงเป็น HTTP response"""


class ServiceError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str = "", **extra):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.extra = extra

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, **self.extra}


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class ConflictError(ServiceError):
    """ชนกับข้อมูลเดิม (unique / เลขเอกสารซ้ำ) ให้ผู้เรียก retry ได้"""
    status_code = 409
    code = "conflict"


class StorageError(ServiceError):
    status_code = 500
    code = "storage_error"
