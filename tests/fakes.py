"""In-memory stand-ins for AWS clients used by the bucket deployment tests."""

import io
import threading
from typing import Any
from unittest.mock import MagicMock

from botocore.exceptions import ClientError


def client_error(code: str, operation: str) -> ClientError:
  return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class MockS3Client:
  """Mock S3 client for testing.

  Objects live in ``objects`` keyed by ``(bucket, key)``; PUT arguments other
  than the body are kept in ``put_args``. Failures can be injected per key or
  per listing page.
  """

  def __init__(self, *, page_size: int = 1000, versioned: bool = False) -> None:
    self.objects: dict[tuple[str, str], bytes] = {}
    self.put_args: dict[tuple[str, str], dict[str, Any]] = {}
    self.delete_calls: list[list[str]] = []
    self.list_calls = 0
    self.page_size = page_size
    self.versioned = versioned
    self.fail_put_keys: set[str] = set()
    self.fail_list_on_page: int | None = None
    self.events: list[tuple[str, str]] = []
    self.exceptions = MagicMock()
    self._lock = threading.Lock()
    self._version = 0

  def add(self, bucket: str, key: str, body: bytes = b"") -> None:
    self.objects[(bucket, key)] = body

  def keys(self, bucket: str) -> set[str]:
    return {key for (b, key) in self.objects if b == bucket}

  def body(self, bucket: str, key: str) -> bytes:
    return self.objects[(bucket, key)]

  def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
    if (Bucket, Key) not in self.objects:
      raise client_error("NoSuchKey", "GetObject")
    return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

  def put_object(self, Bucket: str, Key: str, Body: Any, **kwargs: Any) -> dict[str, Any]:
    with self._lock:
      self.events.append(("put", Key))
    if Key in self.fail_put_keys:
      raise client_error("InternalError", "PutObject")
    data = Body if isinstance(Body, bytes) else Body.read()
    with self._lock:
      self.objects[(Bucket, Key)] = data
      self.put_args[(Bucket, Key)] = kwargs
      self._version += 1
      version = self._version
    return {"VersionId": f"v{version}"} if self.versioned else {}

  def list_objects_v2(
    self, Bucket: str, Prefix: str = "", ContinuationToken: str | None = None
  ) -> dict[str, Any]:
    self.list_calls += 1
    self.events.append(("list", Prefix))
    if self.fail_list_on_page is not None and self.list_calls >= self.fail_list_on_page:
      raise client_error("SlowDown", "ListObjectsV2")
    keys = sorted(k for k in self.keys(Bucket) if k.startswith(Prefix))
    start = int(ContinuationToken or 0)
    page = keys[start : start + self.page_size]
    response: dict[str, Any] = {
      "Contents": [{"Key": k} for k in page],
      "IsTruncated": start + self.page_size < len(keys),
    }
    if response["IsTruncated"]:
      response["NextContinuationToken"] = str(start + self.page_size)
    return response

  def delete_objects(self, Bucket: str, Delete: dict[str, Any]) -> dict[str, Any]:
    keys = [obj["Key"] for obj in Delete["Objects"]]
    self.events.append(("delete", ",".join(keys)))
    self.delete_calls.append(keys)
    for key in keys:
      self.objects.pop((Bucket, key), None)
    return {"Deleted": [{"Key": k} for k in keys]}
