from fastapi import HTTPException, status


class ApiError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Bad request"

    def __init__(self, message: str | None = None):
        super().__init__(self.status_code, message or self.message)


class InvalidJSON(ApiError):
    message = "Invalid JSON"


class MissingField(ApiError):
    message = "Missing field"


class WrongPassword(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Wrong password"


class OldPasswordIncorrect(ApiError):
    message = "Old password incorrect"


class Unauthorized(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Unauthorized"


class MethodNotAllowed(ApiError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    message = "Method not allowed"
