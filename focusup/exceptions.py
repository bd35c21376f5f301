"""
Custom exceptions for the focus-session engine.
Provides specific exception types for better error handling and recovery.
"""


class FocusUpException(Exception):
    """Base exception for the focus-session engine"""
    pass


class InvalidStateException(FocusUpException):
    """Raised when an operation is not valid for the current session state"""
    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while session is {state}")


class PersistenceException(FocusUpException):
    """Raised when a read or write against the store fails"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Persistence {operation} failed: {details}")


class ValidationException(FocusUpException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class SprintNotFoundException(FocusUpException):
    """Raised when a sprint record is not found"""
    def __init__(self, sprint_id: int):
        self.sprint_id = sprint_id
        super().__init__(f"Sprint with ID {sprint_id} not found")


class LevelUpNotAllowedException(FocusUpException):
    """Raised when a character level-up gate is not met"""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Level up not allowed: {reason}")
