"""
RefreshStatus model: the coarse lifecycle indicator read by operators.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class RefreshState(str, Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    LIVE = "live"
    ERROR = "error"


class RefreshStatus(BaseModel):
    """
    Persisted lifecycle state of one dataset.

    Attributes:
        dataset: Dataset key (one row per dataset)
        state: Current lifecycle state
        first_installed_at: Set once, on the first successful install
        last_installed_at: Updated on every successful install
        last_error: Message of the last failure, if any
        updated_at: When the row last changed
    """

    dataset: str = Field(..., min_length=1)
    state: RefreshState = RefreshState.NOT_INSTALLED
    first_installed_at: datetime | None = None
    last_installed_at: datetime | None = None
    last_error: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
