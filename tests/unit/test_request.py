"""Tests for decoding resource properties."""

from typing import Any

import pytest

from bucket_deployment.errors import RequestValidationError
from bucket_deployment.request import (
  DeployMode,
  RequestType,
  S3Location,
  from_properties,
  parse_bool,
  request_type,
)


def props(**overrides: Any) -> dict[str, Any]:
  base: dict[str, Any] = {
    "sourceBucketName": "assets-bucket",
    "sourceKeyPrefix": "abc123.zip",
    "destinationBucketName": "site-bucket",
  }
  base.update(overrides)
  return base


class TestParseBool:
  """Test boolean decoding."""

  @pytest.mark.parametrize("value", ["true", "TRUE", "True", True])
  def test_true_values(self, value: Any) -> None:
    """Stringified and native true both decode to True."""
    assert parse_bool("prune", value) is True

  @pytest.mark.parametrize("value", ["false", "False", False])
  def test_false_values(self, value: Any) -> None:
    """Stringified and native false both decode to False."""
    assert parse_bool("prune", value) is False

  def test_absent_uses_default(self) -> None:
    """Missing values take the default."""
    assert parse_bool("prune", None, default=True) is True

  def test_garbage_is_rejected(self) -> None:
    """Anything else is a validation error."""
    with pytest.raises(RequestValidationError):
      parse_bool("prune", "yes")


class TestFromProperties:
  """Test from_properties."""

  def test_minimal_properties(self) -> None:
    """Defaults apply when only the locations are given."""
    request = from_properties(props())

    assert request.source == S3Location("assets-bucket", "abc123.zip")
    assert request.destination == S3Location("site-bucket", "")
    assert request.mode is DeployMode.DIRECT_OBJECTS
    assert request.prune is False
    assert request.substitution_map == {}
    assert request.put_options_by_glob == ()
    assert request.concurrency_limit is None

  def test_full_properties(self) -> None:
    """Every documented property is decoded."""
    request = from_properties(
      props(
        destinationKeyPrefix="docs",
        prune="true",
        globDot="true",
        debug="false",
        concurrencyLimit="4",
        substitutionConfig={"{{ API_URL }}": "https://api.example.com"},
        putConfig=[
          {"glob": "**/*", "options": {"CacheControl": "no-cache"}},
          {"glob": "*.js", "options": {"CacheControl": "immutable"}},
        ],
      )
    )

    assert request.destination.key == "docs"
    assert request.prune is True
    assert request.glob_dot is True
    assert request.concurrency_limit == 4
    assert request.substitution_map == {"{{ API_URL }}": "https://api.example.com"}
    assert [glob for glob, _ in request.put_options_by_glob] == ["**/*", "*.js"]

  def test_put_config_as_mapping(self) -> None:
    """putConfig may also be a glob to options mapping."""
    request = from_properties(props(putConfig={"*.html": {"CacheControl": "no-cache"}}))

    assert request.put_options_by_glob == (("*.html", {"CacheControl": "no-cache"}),)

  @pytest.mark.parametrize("option", ["Bucket", "Key", "Body"])
  def test_forbidden_put_options(self, option: str) -> None:
    """Options that would redirect or replace the upload are refused."""
    with pytest.raises(RequestValidationError, match=option):
      from_properties(props(putConfig={"**/*": {option: "x"}}))

  def test_unknown_put_options(self) -> None:
    """Options outside the supported set are refused."""
    with pytest.raises(RequestValidationError, match="Tagging"):
      from_properties(props(putConfig={"**/*": {"Tagging": "a=b"}}))

  def test_zip_requires_destination_key(self) -> None:
    """The archive key comes from destinationKeyPrefix."""
    with pytest.raises(RequestValidationError):
      from_properties(props(zip="true"))

    request = from_properties(props(zip="true", destinationKeyPrefix="server.zip"))
    assert request.mode is DeployMode.ZIPPED_ARCHIVE

  def test_missing_source_bucket(self) -> None:
    """Source and destination buckets are required."""
    properties = props()
    del properties["sourceBucketName"]

    with pytest.raises(RequestValidationError, match="sourceBucketName"):
      from_properties(properties)

  @pytest.mark.parametrize("value", ["0", "-1", "many"])
  def test_invalid_concurrency_limit(self, value: str) -> None:
    """Concurrency must be a positive integer."""
    with pytest.raises(RequestValidationError):
      from_properties(props(concurrencyLimit=value))

  def test_deployment_id_tracks_inputs(self) -> None:
    """The id changes with the content inputs and only with them."""
    first = from_properties(props(substitutionConfig={"{{ A }}": "1"}))
    same = from_properties(props(substitutionConfig={"{{ A }}": "1"}, debug="true"))
    changed = from_properties(props(substitutionConfig={"{{ A }}": "2"}))

    assert first.deployment_id == same.deployment_id
    assert first.deployment_id != changed.deployment_id


class TestRequestType:
  """Test request_type."""

  def test_known_types(self) -> None:
    """Create, Update and Delete are recognized."""
    assert request_type({"RequestType": "Create"}) is RequestType.CREATE
    assert request_type({"RequestType": "Delete"}) is RequestType.DELETE

  def test_unknown_type(self) -> None:
    """Anything else is a validation error."""
    with pytest.raises(RequestValidationError):
      request_type({"RequestType": "Rollback"})
