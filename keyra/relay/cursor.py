"""RelayCursor: id of the most recently dispatched transaction."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class RelayCursor:
    """Single scalar watermark. Empty at process start.

    Advanced only after a dispatch attempt completes, successful or not.
    """

    value: Optional[str] = None
    advanced_at: Optional[datetime] = None

    def matches(self, tx_id: str) -> bool:
        return self.value is not None and self.value == tx_id

    def advance(self, tx_id: str) -> None:
        self.value = tx_id
        self.advanced_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "advanced_at": self.advanced_at.isoformat() if self.advanced_at else None,
        }
