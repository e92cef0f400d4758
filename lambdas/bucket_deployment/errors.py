"""Error taxonomy for the bucket deployment pipeline."""


class DeploymentError(Exception):
  """Base class for every failure the pipeline reports."""


class RequestValidationError(DeploymentError):
  """Resource properties could not be decoded into a deployment request."""


class ArchiveCorruptError(DeploymentError):
  """The source archive cannot be parsed or contains unsafe entries."""


class FilesystemError(DeploymentError):
  """A local write or read failed (disk full, permission denied, ...)."""


class UploadError(DeploymentError):
  """One or more object uploads failed.

  Objects uploaded before the failure are left in place.
  """

  def __init__(self, failed_keys: list[str], cause: BaseException | None = None) -> None:
    self.failed_keys = sorted(failed_keys)
    self.cause = cause
    super().__init__(f"Failed to upload {len(self.failed_keys)} object(s): {', '.join(self.failed_keys)}")


class ListingIncompleteError(DeploymentError):
  """A paginated listing could not be drained, so the key set is untrusted."""


class DeploymentTimeoutError(DeploymentError, TimeoutError):
  """The invocation ran out of its time budget."""
