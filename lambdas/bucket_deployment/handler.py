"""Custom resource handler that deploys an asset archive into a bucket.

Lambda entry point: ``bucket_deployment.handler.handler``.

Create and Update download the source archive, extract it, substitute
deploy-time tokens, then either upload every file (optionally pruning stale
objects) or re-zip the tree into a single object. Delete leaves deployed
objects alone. Every path ends with a status PUT to CloudFormation and the
scoped temporary directory removed.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from . import archive, cfn_response
from .deadline import Deadline
from .errors import DeploymentError, ListingIncompleteError
from .reconciler import ObjectStoreReconciler
from .request import DeployMode, DeploymentRequest, RequestType, from_properties, request_type
from .settings import HandlerSettings
from .substitution import substitute

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "bucket_deployment"
MAX_CALL_TIMEOUT_SECONDS = 60.0


class DeploymentState(Enum):
  RECEIVED = "Received"
  DOWNLOADING = "Downloading"
  EXTRACTING = "Extracting"
  SUBSTITUTING = "Substituting"
  RECONCILING = "Reconciling"
  CLEANING_UP = "CleaningUp"
  DONE = "Done"
  FAILED = "Failed"


@dataclass
class DeploymentOutcome:
  """What one successful run changed."""

  uploaded_keys: list[str] = field(default_factory=list)
  deleted_keys: list[str] = field(default_factory=list)
  prune_skipped: bool = False
  archive_version: str | None = None


class DeploymentOrchestrator:
  """Runs one deployment request through every pipeline stage."""

  def __init__(
    self,
    request: DeploymentRequest,
    s3_client: Any,
    *,
    deadline: Deadline | None = None,
    default_concurrency: int | None = None,
  ) -> None:
    self.request = request
    self.s3 = s3_client
    self.deadline = deadline or Deadline(seconds=float("inf"))
    self.state = DeploymentState.RECEIVED
    self.reconciler = ObjectStoreReconciler(
      s3_client,
      concurrency_limit=request.concurrency_limit or default_concurrency,
      deadline=self.deadline,
    )

  def _transition(self, state: DeploymentState, **details: Any) -> None:
    logger.debug("%s -> %s %s", self.state.value, state.value, details or "")
    self.state = state

  def run(self) -> DeploymentOutcome:
    """Execute the pipeline; the working directory is removed on every path."""
    self._transition(DeploymentState.RECEIVED, request=self.request)
    try:
      with tempfile.TemporaryDirectory(prefix="assets-") as tmp:
        source_dir = Path(tmp) / "source"
        source_dir.mkdir()

        self._transition(DeploymentState.DOWNLOADING, source=str(self.request.source))
        archive_bytes = self._download()

        self._transition(DeploymentState.EXTRACTING, size=len(archive_bytes))
        self.deadline.check("extraction")
        archive.extract(archive_bytes, source_dir)
        file_set = archive.ExtractedFileSet(source_dir, archive.list_file_paths(source_dir))

        self._transition(
          DeploymentState.SUBSTITUTING,
          files=len(file_set.file_paths),
          tokens=len(self.request.substitution_map),
        )
        if self.request.substitution_map:
          self.deadline.check("substitution")
          substitute(file_set.file_paths, self.request.substitution_map)

        self._transition(DeploymentState.RECONCILING, destination=str(self.request.destination))
        outcome = self._reconcile(file_set)

        self._transition(
          DeploymentState.CLEANING_UP,
          uploaded=len(outcome.uploaded_keys),
          deleted=len(outcome.deleted_keys),
        )
    except Exception:
      self._transition(DeploymentState.FAILED)
      raise

    self._transition(DeploymentState.DONE)
    return outcome

  def _download(self) -> bytes:
    self.deadline.check("download")
    source = self.request.source
    try:
      response = self.s3.get_object(Bucket=source.bucket, Key=source.key)
      return response["Body"].read()
    except (ClientError, BotoCoreError) as e:
      raise DeploymentError(f"Cannot download source archive {source}: {e}") from e

  def _reconcile(self, file_set: archive.ExtractedFileSet) -> DeploymentOutcome:
    destination = self.request.destination
    if self.request.mode is DeployMode.ZIPPED_ARCHIVE:
      if self.request.prune:
        logger.debug("Prune does not apply to zipped archive deployments")
      self.deadline.check("archive creation")
      key = destination.key.strip("/")
      version = self.reconciler.upload_archive(
        destination.bucket, archive.create(file_set.root_path), key
      )
      return DeploymentOutcome(uploaded_keys=[key], archive_version=version)

    existing: set[str] | None = None
    prune_skipped = False
    if self.request.prune:
      try:
        existing = self.reconciler.list_existing(destination.bucket, destination.key)
      except ListingIncompleteError as e:
        logger.warning("Skipping prune, existing objects could not be listed: %s", e)
        prune_skipped = True

    uploads = self.reconciler.plan_uploads(
      file_set.file_paths,
      file_set.root_path,
      destination.key,
      self.request.put_options_by_glob,
      glob_dot=self.request.glob_dot,
    )
    desired = {upload.key for upload in uploads}
    logger.debug(
      "Reconciling %d desired against %s existing key(s)",
      len(desired),
      "unknown" if existing is None else len(existing),
    )
    uploaded = self.reconciler.upload_direct(destination.bucket, uploads)

    deleted: list[str] = []
    if existing is not None:
      deleted = self.reconciler.prune(destination.bucket, existing, desired)
    return DeploymentOutcome(uploaded_keys=uploaded, deleted_keys=deleted, prune_skipped=prune_skipped)


def configure_logging(debug: bool) -> None:
  """INFO by default, DEBUG when asked; the Lambda runtime owns the handlers."""
  logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
  logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if debug else logging.INFO)


def create_s3_client(settings: HandlerSettings, deadline: Deadline) -> Any:
  """S3 client scoped to one invocation, with call timeouts inside the budget."""
  remaining = deadline.timeout()
  call_timeout = MAX_CALL_TIMEOUT_SECONDS if remaining is None else min(remaining, MAX_CALL_TIMEOUT_SECONDS)
  return boto3.client(
    "s3",
    config=Config(
      connect_timeout=max(call_timeout, 1.0),
      read_timeout=max(call_timeout, 1.0),
      retries={"max_attempts": settings.s3_max_attempts, "mode": "standard"},
      max_pool_connections=max(settings.upload_concurrency, 10),
    ),
  )


def handle_event(
  event: dict[str, Any],
  context: Any,
  *,
  s3_client: Any = None,
  settings: HandlerSettings | None = None,
  send: Callable[..., Any] = cfn_response.send,
) -> dict[str, Any]:
  """Process one lifecycle event and report its status; returns what was sent."""
  status = cfn_response.SUCCESS
  reason: str | None = None
  data: dict[str, str] = {}
  physical_resource_id: str | None = event.get("PhysicalResourceId")

  try:
    settings = settings or HandlerSettings.from_env()
    configure_logging(settings.debug)
    kind = request_type(event)
    if kind is RequestType.DELETE:
      logger.info("Delete requested; deployed objects are left to the bucket's removal policy")
    else:
      request = from_properties(event.get("ResourceProperties") or {})
      configure_logging(settings.debug or request.debug)
      if kind is RequestType.CREATE or not physical_resource_id:
        physical_resource_id = str(request.destination)

      deadline = Deadline.from_context(context, settings.timeout_margin_seconds)
      client = s3_client or create_s3_client(settings, deadline)
      outcome = DeploymentOrchestrator(
        request,
        client,
        deadline=deadline,
        default_concurrency=settings.upload_concurrency,
      ).run()
      data = {
        "DeploymentId": request.deployment_id,
        "ObjectCount": str(len(outcome.uploaded_keys)),
        "DeletedCount": str(len(outcome.deleted_keys)),
      }
      if outcome.prune_skipped:
        data["PruneSkipped"] = "true"
      if outcome.archive_version:
        data["ObjectVersion"] = outcome.archive_version
  except Exception as e:
    logger.exception("Deployment failed")
    status = cfn_response.FAILED
    reason = f"{e}. {cfn_response.log_stream_reason(context)}"

  logger.info("Reporting %s for %s", status, event.get("LogicalResourceId"))
  try:
    send(
      event,
      context,
      status,
      reason=reason,
      physical_resource_id=physical_resource_id,
      data=data,
    )
  except Exception:
    logger.exception("Could not report %s to CloudFormation", status)
    raise
  return {"Status": status, "Reason": reason, "PhysicalResourceId": physical_resource_id, "Data": data}


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
  """Lambda entry point."""
  return handle_event(event, context)
