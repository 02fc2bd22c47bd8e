from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Bad input. Never retried."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class AuthError(ServiceError):
    """Missing or invalid credentials, including OAuth state."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class TokenRefreshError(AuthError):
    """The upstream refused to refresh an access token. Fatal to that user's sync."""


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class UpstreamError(ServiceError):
    """An external API call failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


class PersistenceError(ServiceError):
    """A store write failed. Batches log it and move on."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class DataSourceError(ServiceError):
    """Attendance could not be read. Never treated as zero attendance."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class CampaignAlreadyRunningError(ServiceError):
    def __init__(self, message: str = "A weekly campaign run is already in progress") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class EmailNotConfiguredError(ServiceError):
    """Selected email transport is missing credentials."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)
