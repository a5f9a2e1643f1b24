from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class IndexUnavailable(ApiError):
    """Search index unreachable, non-2xx, or returned an undecodable body."""

    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        super().__init__(
            code="SEARCH_INDEX_UNAVAILABLE",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=502,
        )
        self.upstream_status = upstream_status


class IndexDisabled(ApiError):
    def __init__(self, message: str = "search index integration disabled (set APP_ES_ENABLED=true)") -> None:
        super().__init__(
            code="SEARCH_INDEX_DISABLED",
            message=message,
            error_class="dependency",
            retryable=False,
            http_status=503,
        )


class MalformedCursor(ApiError):
    def __init__(self, message: str = "invalid cursor") -> None:
        super().__init__(
            code="SEARCH_CURSOR_INVALID",
            message=message,
            error_class="validation",
            retryable=False,
            http_status=400,
        )


class InvalidIdentifier(ApiError):
    def __init__(self, message: str = "aip uuid required") -> None:
        super().__init__(
            code="AIP_UUID_REQUIRED",
            message=message,
            error_class="validation",
            retryable=False,
            http_status=400,
        )


class ScanCancelled(ApiError):
    def __init__(self, message: str = "scan cancelled") -> None:
        super().__init__(
            code="SEARCH_SCAN_CANCELLED",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=504,
        )
