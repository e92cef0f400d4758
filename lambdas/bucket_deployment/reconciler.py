"""Make a destination bucket prefix match the files of one deployment.

The store client is injected so one client lives for exactly one invocation.
Listing always completes before uploads start and pruning only runs after every
upload finished, so a run never deletes an object it is still creating.
"""

import logging
import mimetypes
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from wcmatch import glob

from .deadline import Deadline
from .errors import DeploymentError, DeploymentTimeoutError, ListingIncompleteError, UploadError
from .settings import DEFAULT_UPLOAD_CONCURRENCY

logger = logging.getLogger(__name__)

MAX_DELETE_BATCH = 1000
ZIP_CONTENT_TYPE = "application/zip"


@dataclass(frozen=True)
class PlannedUpload:
  """One file and the object it becomes."""

  path: Path
  key: str
  extra_args: dict[str, Any] = field(default_factory=dict)


def listing_prefix(prefix: str) -> str:
  """Prefix for listing, ending in ``/`` so ``a/b`` never matches ``a/bc``."""
  prefix = prefix.strip("/")
  return f"{prefix}/" if prefix else ""


def destination_key(prefix: str, relative_path: str) -> str:
  """``prefix`` joined with a POSIX relative path, without a leading slash."""
  parts = [p for p in (prefix.strip("/"), relative_path.lstrip("/")) if p]
  return "/".join(parts)


def resolve_put_options(
  relative_path: str,
  put_options_by_glob: Sequence[tuple[str, dict[str, Any]]],
  dot: bool = False,
) -> dict[str, Any]:
  """Merge the options of every matching glob; later globs win on conflicts."""
  flags = glob.GLOBSTAR | (glob.DOTGLOB if dot else 0)
  options: dict[str, Any] = {}
  for pattern, pattern_options in put_options_by_glob:
    if glob.globmatch(relative_path, pattern, flags=flags):
      options = {**options, **pattern_options}
  return options


def content_type_for(relative_path: str) -> str | None:
  content_type, _ = mimetypes.guess_type(relative_path)
  return content_type


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
  for start in range(0, len(items), size):
    yield items[start : start + size]


def uploadable_paths(file_paths: Sequence[Path]) -> list[Path]:
  """Paths whose content can be read as a regular file.

  Symlinks to files upload their target's bytes. Dangling symlinks and
  symlinks to directories have no object to become.
  """
  paths = []
  for path in file_paths:
    if path.is_file():
      paths.append(path)
    else:
      logger.warning("Not uploading %s: not a regular file after resolving links", path)
  return paths


class ObjectStoreReconciler:
  """Lists, uploads and prunes objects under one destination prefix."""

  def __init__(
    self,
    s3_client: Any,
    *,
    concurrency_limit: int | None = None,
    deadline: Deadline | None = None,
  ) -> None:
    self.s3 = s3_client
    self.concurrency_limit = concurrency_limit or DEFAULT_UPLOAD_CONCURRENCY
    self.deadline = deadline or Deadline(seconds=float("inf"))

  def list_existing(self, bucket: str, prefix: str) -> set[str]:
    """Every key under ``prefix``; raises rather than return a partial set."""
    keys: set[str] = set()
    params: dict[str, Any] = {"Bucket": bucket, "Prefix": listing_prefix(prefix)}
    pages = 0
    while True:
      if self.deadline.expired():
        raise ListingIncompleteError(f"Time budget exhausted listing s3://{bucket}/{prefix}")
      try:
        response = self.s3.list_objects_v2(**params)
      except (ClientError, BotoCoreError) as e:
        raise ListingIncompleteError(
          f"Listing s3://{bucket}/{prefix} failed after {pages} page(s): {e}"
        ) from e
      pages += 1
      keys.update(obj["Key"] for obj in response.get("Contents", []))
      if not response.get("IsTruncated"):
        break
      token = response.get("NextContinuationToken")
      if not token:
        raise ListingIncompleteError(
          f"Listing s3://{bucket}/{prefix} was truncated after {pages} page(s) without a continuation token"
        )
      params["ContinuationToken"] = token

    logger.debug("Listed %d existing object(s) in %d page(s)", len(keys), pages)
    return keys

  def plan_uploads(
    self,
    file_paths: Sequence[Path],
    base_dir: Path,
    prefix: str,
    put_options_by_glob: Sequence[tuple[str, dict[str, Any]]] = (),
    glob_dot: bool = False,
  ) -> list[PlannedUpload]:
    """Destination key and PUT arguments for every uploadable file."""
    planned = []
    for path in uploadable_paths(file_paths):
      relative = path.relative_to(base_dir).as_posix()
      extra_args: dict[str, Any] = {}
      content_type = content_type_for(relative)
      if content_type:
        extra_args["ContentType"] = content_type
      extra_args.update(resolve_put_options(relative, put_options_by_glob, dot=glob_dot))
      planned.append(PlannedUpload(path=path, key=destination_key(prefix, relative), extra_args=extra_args))
    return planned

  def _put(self, bucket: str, upload: PlannedUpload) -> str:
    with open(upload.path, "rb") as body:
      self.s3.put_object(Bucket=bucket, Key=upload.key, Body=body, **upload.extra_args)
    return upload.key

  def upload_direct(self, bucket: str, uploads: Sequence[PlannedUpload]) -> list[str]:
    """Upload each planned file, at most ``concurrency_limit`` at a time.

    Failures are collected per key; the remaining uploads still run and the
    call raises ``UploadError`` at the end. Nothing is rolled back.
    """
    uploaded: list[str] = []
    failed: dict[str, BaseException] = {}
    executor = ThreadPoolExecutor(max_workers=self.concurrency_limit)
    try:
      for batch in chunked(uploads, self.concurrency_limit):
        self.deadline.check("upload batch")
        futures = {executor.submit(self._put, bucket, upload): upload.key for upload in batch}
        done, pending = wait(futures, timeout=self.deadline.timeout())
        if pending:
          raise DeploymentTimeoutError(
            f"Time budget exhausted with {len(pending)} upload(s) in flight"
          )
        for future in done:
          key = futures[future]
          try:
            uploaded.append(future.result())
          except Exception as e:
            logger.error("Upload of %s failed: %s", key, e)
            failed[key] = e
    finally:
      executor.shutdown(wait=False, cancel_futures=True)

    logger.info("Uploaded %d of %d object(s) to s3://%s", len(uploaded), len(uploads), bucket)
    if failed:
      raise UploadError(list(failed), cause=next(iter(failed.values())))
    return sorted(uploaded)

  def upload_archive(self, bucket: str, archive_bytes: bytes, key: str) -> str | None:
    """Single put of a re-zipped tree; returns the object version if versioned."""
    self.deadline.check("archive upload")
    try:
      response = self.s3.put_object(
        Bucket=bucket, Key=key, Body=archive_bytes, ContentType=ZIP_CONTENT_TYPE
      )
    except (ClientError, BotoCoreError) as e:
      raise UploadError([key], cause=e) from e
    logger.info("Uploaded archive of %d bytes to s3://%s/%s", len(archive_bytes), bucket, key)
    return (response or {}).get("VersionId")

  def prune(self, bucket: str, existing_keys: set[str], desired_keys: set[str]) -> list[str]:
    """Delete ``existing_keys - desired_keys`` in batches of at most 1000."""
    stale = sorted(existing_keys - desired_keys)
    if not stale:
      logger.info("Nothing to prune in s3://%s", bucket)
      return []

    for batch in chunked(stale, MAX_DELETE_BATCH):
      self.deadline.check("prune batch")
      try:
        response = self.s3.delete_objects(
          Bucket=bucket,
          Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
        )
      except (ClientError, BotoCoreError) as e:
        raise DeploymentError(f"Pruning s3://{bucket} failed: {e}") from e
      errors = response.get("Errors", [])
      if errors:
        keys = ", ".join(err.get("Key", "?") for err in errors)
        raise DeploymentError(f"Pruning s3://{bucket} failed for: {keys}")

    logger.info("Pruned %d stale object(s) from s3://%s", len(stale), bucket)
    return stale
