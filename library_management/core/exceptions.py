from typing import Optional


class LibraryError(Exception):
    """Base de los errores que los servicios devuelven al llamador."""

    default_message = "Library operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class CopyUnavailable(LibraryError):
    default_message = "Book copy is not available for checkout"

    def __init__(self, copy_id: Optional[int] = None, message: Optional[str] = None):
        self.copy_id = copy_id
        super().__init__(message)


class MemberNotActive(LibraryError):
    default_message = "Member account is not active"

    def __init__(self, member_id: Optional[int] = None, message: Optional[str] = None):
        self.member_id = member_id
        super().__init__(message)


class ConstraintViolation(LibraryError):
    """
    Unicidad, FK o CHECK rechazados por la capa de datos, argumentos
    inválidos o escrituras que el ciclo de préstamos no permite.
    """

    default_message = "Data constraint violated"


class NotFound(LibraryError):
    default_message = "Resource not found"

    def __init__(self, resource: str, resource_id: int):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")
