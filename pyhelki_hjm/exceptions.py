class HelkiError(Exception):
    """Base exception"""


class HelkiAuthError(HelkiError):
    """Invalid credentials"""


class HelkiNoCredentials(HelkiError):
    """Token requested before any credentials were supplied"""


class HelkiRateLimited(HelkiError):
    """Too many requests (HTTP 429)"""


class HelkiNetworkError(HelkiError):
    """Could not reach the HJM cloud"""


class HelkiAPIError(HelkiError):
    """Generic API error"""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status
