"""Per-call configuration.

StrapConfig is a Pydantic model so options coming from user code or settings
files are validated before a traversal starts.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class StrapConfig(BaseModel):
    """Options threaded through one construct call."""

    silence_warnings: bool = False
    options: dict[str, Any] = {}

    def with_options(self, **options: Any) -> StrapConfig:
        """Return a copy with extra hook options merged in."""
        if not options:
            return self
        return self.model_copy(update={"options": {**self.options, **options}})
