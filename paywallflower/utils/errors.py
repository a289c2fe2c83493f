class BypassServiceError(Exception):
    """Base exception for bypass orchestration errors."""

    def __init__(self, message: str, method: str = "", url: str = ""):
        self.method = method
        self.url = url
        super().__init__(message)


class MethodContractError(BypassServiceError):
    """Raised when an object registered as a method does not satisfy the method interface."""


class InvalidPriorityError(BypassServiceError):
    """Raised when a method priority falls outside 1-10."""

    def __init__(self, message: str, priority: int = 0, **kwargs: str):
        self.priority = priority
        super().__init__(message, **kwargs)


class MethodTimeoutError(BypassServiceError):
    """Raised when a method exceeds its timeout or the caller's deadline."""

    def __init__(self, message: str, timeout_ms: int = 0, **kwargs: str):
        self.timeout_ms = timeout_ms
        super().__init__(message, **kwargs)


class StrategyError(BypassServiceError):
    """Raised by a strategy when an upstream service answers unexpectedly."""

    def __init__(self, message: str, status_code: int = 0, **kwargs: str):
        self.status_code = status_code
        super().__init__(message, **kwargs)
