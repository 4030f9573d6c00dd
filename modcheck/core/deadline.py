"""
Per-module deadline shared by the pipeline stages.

The orchestrator creates one Deadline per validation and hands it to the
probe and the security scanner, which check it per directory and per file
so a timed-out pipeline stops at the next file instead of running on.
"""

import time
import logging
from typing import Optional

from ..errors import ValidationTimeoutError

logger = logging.getLogger(__name__)


class Deadline:
    """Cooperative time limit for one module pipeline."""

    def __init__(self, module_path: str, timeout: Optional[float]):
        self.module_path = module_path
        self.timeout = timeout
        self.expires_at = time.monotonic() + timeout if timeout is not None else None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() > self.expires_at

    def check(self, stage: str) -> None:
        """Raise ValidationTimeoutError once the deadline has passed."""
        if self.expired:
            logger.warning("Validation of %s timed out during %s", self.module_path, stage)
            raise ValidationTimeoutError(self.module_path, self.timeout)
