"""Invocation time budget."""

import time
from dataclasses import dataclass, field

from .errors import DeploymentTimeoutError


@dataclass
class Deadline:
  """Wall-clock budget shared by every stage of one invocation."""

  seconds: float
  _started: float = field(default_factory=time.monotonic)

  @classmethod
  def from_context(cls, context: object, margin_seconds: float) -> "Deadline":
    """Budget from the Lambda context's remaining time minus a safety margin."""
    get_remaining = getattr(context, "get_remaining_time_in_millis", None)
    if get_remaining is None:
      return cls(seconds=float("inf"))
    return cls(seconds=max(get_remaining() / 1000 - margin_seconds, 0.0))

  def remaining(self) -> float:
    return self.seconds - (time.monotonic() - self._started)

  def timeout(self) -> float | None:
    """Remaining seconds for blocking waits, ``None`` when unbounded."""
    if self.seconds == float("inf"):
      return None
    return max(self.remaining(), 0.0)

  def expired(self) -> bool:
    return self.remaining() <= 0

  def check(self, stage: str) -> None:
    """Raise if the budget is spent before ``stage`` starts."""
    if self.expired():
      raise DeploymentTimeoutError(f"Time budget of {self.seconds:.0f}s exhausted before {stage}")
