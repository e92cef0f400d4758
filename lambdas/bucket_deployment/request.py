"""Decode CloudFormation resource properties into a typed deployment request."""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import RequestValidationError

ALLOWED_PUT_OPTIONS = frozenset(
  {
    "ACL",
    "CacheControl",
    "ContentDisposition",
    "ContentEncoding",
    "ContentLanguage",
    "ContentType",
    "Expires",
    "Metadata",
    "SSEKMSKeyId",
    "ServerSideEncryption",
    "StorageClass",
    "WebsiteRedirectLocation",
  }
)
FORBIDDEN_PUT_OPTIONS = frozenset({"Bucket", "Key", "Body"})


class RequestType(Enum):
  """CloudFormation lifecycle event kinds."""

  CREATE = "Create"
  UPDATE = "Update"
  DELETE = "Delete"


class DeployMode(Enum):
  """How extracted files land in the destination bucket."""

  DIRECT_OBJECTS = "direct"
  ZIPPED_ARCHIVE = "zip"


@dataclass(frozen=True)
class S3Location:
  """Bucket name plus key (or key prefix)."""

  bucket: str
  key: str = ""

  def __str__(self) -> str:
    return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class DeploymentRequest:
  """Immutable description of one deployment invocation."""

  source: S3Location
  destination: S3Location
  mode: DeployMode = DeployMode.DIRECT_OBJECTS
  prune: bool = False
  substitution_map: dict[str, str] = field(default_factory=dict)
  put_options_by_glob: tuple[tuple[str, dict[str, Any]], ...] = ()
  concurrency_limit: int | None = None
  glob_dot: bool = False
  debug: bool = False

  @property
  def deployment_id(self) -> str:
    """Digest of every input that influences what lands in the bucket."""
    payload = json.dumps(
      {
        "source": [self.source.bucket, self.source.key],
        "destination": [self.destination.bucket, self.destination.key],
        "mode": self.mode.value,
        "substitution": self.substitution_map,
        "put": [[glob, options] for glob, options in self.put_options_by_glob],
        "globDot": self.glob_dot,
      },
      sort_keys=True,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def parse_bool(name: str, value: Any, default: bool = False) -> bool:
  """Decode a boolean that CloudFormation may have stringified."""
  if value is None or value == "":
    return default
  if isinstance(value, bool):
    return value
  if isinstance(value, str) and value.lower() in ("true", "false"):
    return value.lower() == "true"
  raise RequestValidationError(f"{name} must be 'true' or 'false', got {value!r}")


def _parse_positive_int(name: str, value: Any) -> int | None:
  if value is None or value == "":
    return None
  if isinstance(value, bool):
    raise RequestValidationError(f"{name} must be a positive integer, got {value!r}")
  try:
    number = int(value)
  except (TypeError, ValueError) as e:
    raise RequestValidationError(f"{name} must be a positive integer, got {value!r}") from e
  if number < 1:
    raise RequestValidationError(f"{name} must be a positive integer, got {value!r}")
  return number


def _require_str(props: dict[str, Any], name: str) -> str:
  value = props.get(name)
  if not isinstance(value, str) or not value:
    raise RequestValidationError(f"Missing required property {name}")
  return value


def _parse_substitution_config(value: Any) -> dict[str, str]:
  if value is None or value == "":
    return {}
  if not isinstance(value, dict):
    raise RequestValidationError("substitutionConfig must be a mapping of token to value")
  config: dict[str, str] = {}
  for token, replacement in value.items():
    if not isinstance(token, str) or not token:
      raise RequestValidationError(f"substitutionConfig has an invalid token {token!r}")
    if not isinstance(replacement, str):
      raise RequestValidationError(f"substitutionConfig value for {token} must be a string")
    config[token] = replacement
  return config


def _validate_put_options(glob: str, options: Any) -> dict[str, Any]:
  if not isinstance(options, dict):
    raise RequestValidationError(f"putConfig options for {glob!r} must be a mapping")
  forbidden = FORBIDDEN_PUT_OPTIONS.intersection(options)
  if forbidden:
    raise RequestValidationError(
      f"putConfig for {glob!r} may not set {', '.join(sorted(forbidden))}"
    )
  unknown = set(options) - ALLOWED_PUT_OPTIONS
  if unknown:
    raise RequestValidationError(
      f"putConfig for {glob!r} has unsupported options {', '.join(sorted(unknown))}"
    )
  return dict(options)


def _parse_put_config(value: Any) -> tuple[tuple[str, dict[str, Any]], ...]:
  """Accept either ``{glob: options}`` or ``[{"glob": ..., "options": ...}]``."""
  if value is None or value == "":
    return ()
  if isinstance(value, dict):
    entries = list(value.items())
  elif isinstance(value, list):
    entries = []
    for item in value:
      if not isinstance(item, dict) or not isinstance(item.get("glob"), str):
        raise RequestValidationError("putConfig list entries need a 'glob' string")
      entries.append((item["glob"], item.get("options", {})))
  else:
    raise RequestValidationError("putConfig must be a mapping or a list")

  return tuple((glob, _validate_put_options(glob, options)) for glob, options in entries)


def from_properties(props: dict[str, Any]) -> DeploymentRequest:
  """Build a ``DeploymentRequest`` from ``ResourceProperties``."""
  if not isinstance(props, dict):
    raise RequestValidationError("ResourceProperties must be a mapping")

  destination_prefix = props.get("destinationKeyPrefix") or ""
  if not isinstance(destination_prefix, str):
    raise RequestValidationError("destinationKeyPrefix must be a string")

  zipped = parse_bool("zip", props.get("zip"))
  if zipped and not destination_prefix.strip("/"):
    raise RequestValidationError("destinationKeyPrefix is the archive key and is required when zip is true")
  return DeploymentRequest(
    source=S3Location(_require_str(props, "sourceBucketName"), _require_str(props, "sourceKeyPrefix")),
    destination=S3Location(_require_str(props, "destinationBucketName"), destination_prefix),
    mode=DeployMode.ZIPPED_ARCHIVE if zipped else DeployMode.DIRECT_OBJECTS,
    prune=parse_bool("prune", props.get("prune")),
    substitution_map=_parse_substitution_config(props.get("substitutionConfig")),
    put_options_by_glob=_parse_put_config(props.get("putConfig")),
    concurrency_limit=_parse_positive_int("concurrencyLimit", props.get("concurrencyLimit")),
    glob_dot=parse_bool("globDot", props.get("globDot")),
    debug=parse_bool("debug", props.get("debug")),
  )


def request_type(event: dict[str, Any]) -> RequestType:
  """Lifecycle kind of a CloudFormation event."""
  try:
    return RequestType(event.get("RequestType"))
  except ValueError as e:
    raise RequestValidationError(f"Unknown RequestType {event.get('RequestType')!r}") from e
