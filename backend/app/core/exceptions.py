class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when input is malformed or references unknown permissions or roles."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ConflictError(AppError):
    """Raised when a name is already taken or a record is still in use."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class ForbiddenError(AppError):
    """Raised when an operation targets a protected (core) role or permission."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=403, details=details)

class PersistenceError(AppError):
    """Raised when a store transaction fails. The cause is logged, never exposed."""
    def __init__(self, message: str = "The operation could not be completed."):
        super().__init__(message, status_code=500)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
