"""Runtime settings read from the Lambda environment."""

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from .errors import RequestValidationError
from .request import parse_bool

DEFAULT_UPLOAD_CONCURRENCY = 8
DEFAULT_TIMEOUT_MARGIN_SECONDS = 10.0
DEFAULT_S3_MAX_ATTEMPTS = 3

T = TypeVar("T", int, float)


def _number(env: Mapping[str, str], name: str, parse: Callable[[str], T], default: T) -> T:
  raw = env.get(name)
  if raw is None or raw == "":
    return default
  try:
    value = parse(raw)
  except ValueError as e:
    raise RequestValidationError(f"Environment variable {name} must be a number, got {raw!r}") from e
  if value < 0 or (parse is int and value == 0):
    raise RequestValidationError(f"Environment variable {name} is out of range: {raw!r}")
  return value


@dataclass
class HandlerSettings:
  """Settings for one handler invocation."""

  debug: bool = False
  upload_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY
  timeout_margin_seconds: float = DEFAULT_TIMEOUT_MARGIN_SECONDS
  s3_max_attempts: int = DEFAULT_S3_MAX_ATTEMPTS

  @classmethod
  def from_env(cls, environ: Mapping[str, str] | None = None) -> "HandlerSettings":
    """Load settings from environment variables.

    Raises ``RequestValidationError`` naming the variable that cannot be decoded.
    """
    env = os.environ if environ is None else environ
    return cls(
      debug=parse_bool("DEBUG", env.get("DEBUG")),
      upload_concurrency=_number(env, "UPLOAD_CONCURRENCY", int, DEFAULT_UPLOAD_CONCURRENCY),
      timeout_margin_seconds=_number(
        env, "TIMEOUT_MARGIN_SECONDS", float, DEFAULT_TIMEOUT_MARGIN_SECONDS
      ),
      s3_max_attempts=_number(env, "S3_MAX_ATTEMPTS", int, DEFAULT_S3_MAX_ATTEMPTS),
    )
