"""Exception types shared across the search engine.

Running out of user credits is not an exception: ledger calls report it as
``ok=False`` and the executor turns it into a terminal task status.
"""


class LeadHunterError(Exception):
    """Base class for all application errors."""


class ProviderError(LeadHunterError):
    """A data provider call failed (network, auth, quota or bad payload)."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class StoreError(LeadHunterError):
    """The persistence layer is unavailable or rejected a write."""


class TaskNotFoundError(LeadHunterError):
    """No task exists with the given external id."""


class ResultNotFoundError(LeadHunterError):
    """No result with the given id belongs to the task."""
