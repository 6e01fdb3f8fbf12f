"""Heychat channel errors."""


class HeychatError(Exception):
    """Base error for the Heychat channel."""


class MissingTokenError(HeychatError):
    """Account has no usable token; raised before any connect attempt."""

    def __init__(self, account_id: str):
        super().__init__(f"Heychat token not configured | account={account_id}")
        self.account_id = account_id


class HeychatApiError(HeychatError):
    """Outbound HTTP call failed or the service answered ``status != ok``."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
