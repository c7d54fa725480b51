from dataclasses import dataclass

from .types import Outcome


@dataclass
class RetryState:
    attempt: int = 0
    last_outcome: Outcome | None = None
    next_delay: float = 0.0
    fallback_used: bool = False  # legacy secondary-key resend, outside the attempt budget
