from typing import Optional

import httpx

# Provider HTTP status -> error code.
STATUS_CODES = {
    400: "INVALID_REQUEST",
    401: "AUTHORIZATION_ERROR",
    403: "ACCESS_DENIED",
    404: "CITY_NOT_FOUND",
    429: "RATE_LIMIT_EXCEEDED",
}

# Error code -> status returned by our API.
API_STATUS = {
    "CITY_NOT_PROVIDED": 400,
    "PARAMS_MISSING": 400,
    "INVALID_REQUEST": 400,
    "INVALID_COORDINATES": 400,
    "CITY_NOT_FOUND": 404,
    "RATE_LIMIT_EXCEEDED": 429,
}


class ServiceError(Exception):
    """Failure of a provider-backed operation, tagged with a stable code."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def status_code(self) -> int:
        return API_STATUS.get(self.code, 503)


class WeatherServiceError(ServiceError):
    pass


class MoistureServiceError(ServiceError):
    pass


class VegetationServiceError(ServiceError):
    pass


class AnalyticsServiceError(ServiceError):
    pass


def from_http_error(
    exc: httpx.HTTPError,
    error_cls: type[ServiceError] = ServiceError,
    what: str = "data",
    city: Optional[str] = None,
) -> ServiceError:
    """Translate an httpx failure into a coded service error."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status >= 500:
            return error_cls(f"Provider failed while fetching {what} ({status})", "SERVER_ERROR")
        code = STATUS_CODES.get(status, "UNKNOWN_ERROR")
        if code == "CITY_NOT_FOUND" and city:
            return error_cls(f"City '{city}' not found", code)
        return error_cls(f"Provider rejected {what} request ({status})", code)
    return error_cls(f"No response from provider while fetching {what}", "NO_RESPONSE")
