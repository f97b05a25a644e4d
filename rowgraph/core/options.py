from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Union

from .utils import utcnow

__all__ = ['PersistOptions', 'Touch']

# None stamps the current time, False leaves the column alone, a datetime is used as-is
Touch = Union[None, bool, datetime]


@dataclass(frozen=True)
class PersistOptions:
    """Options threaded through one save/destroy/load call and its cascade.

    Attributes:
        transaction: Opaque executor handle; every statement of the cascade
            runs on it when set.
        exists: ``True``/``False`` skips the insert-vs-update probe for the
            top-level record; ``None`` probes by id.
        touch: Update-timestamp policy, see :data:`Touch`.
    """

    transaction: Any = None
    exists: Optional[bool] = None
    touch: Touch = None

    def stamp(self) -> Optional[datetime]:
        """Timestamp to write under this policy, or None when touching is disabled."""
        if self.touch is False:
            return None
        if isinstance(self.touch, datetime):
            return self.touch
        return utcnow()

    def for_child(self, exists: Optional[bool] = None) -> 'PersistOptions':
        """Options for a nested save: same transaction and touch policy, own existence."""
        return replace(self, exists=exists)
