"""Normalized outcome of a webhook dispatch."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from wabridge.exceptions import ParseWarning, WABridgeError


class DispatchResult(BaseModel):
    """What a dispatch produced.

    A failed dispatch carries its error instead of raising it. A success
    whose body was not JSON has `raw=True`, `data` set to the body text
    and a ParseWarning attached.

    Attributes:
        event_type: Dispatched event type.
        success: True for any 2xx response (or a cache hit).
        data: Parsed JSON body, raw body text, or the cached value.
        from_cache: Served from cache without a network call.
        raw: data is the unparsed body string.
        error: Failure cause when success is False.
        warning: Non-fatal problem with a successful response.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    event_type: str
    success: bool
    data: Any = None
    from_cache: bool = False
    raw: bool = False
    error: WABridgeError | None = Field(default=None, exclude=True)
    warning: ParseWarning | None = Field(default=None, exclude=True)

    @classmethod
    def failure(cls, event_type: str, error: WABridgeError) -> DispatchResult:
        return cls(event_type=event_type, success=False, error=error)

    def unwrap(self) -> Any:
        """Return data, raising the carried error for failed dispatches."""
        if self.error is not None:
            raise self.error
        return self.data
