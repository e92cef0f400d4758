"""Custom resource Lambda that deploys an asset archive into an S3 bucket."""

from .archive import create, extract, list_file_paths
from .errors import (
  ArchiveCorruptError,
  DeploymentError,
  DeploymentTimeoutError,
  FilesystemError,
  ListingIncompleteError,
  RequestValidationError,
  UploadError,
)
from .request import DeploymentRequest, DeployMode, S3Location
from .substitution import substitute, token

__all__ = [
  "ArchiveCorruptError",
  "DeployMode",
  "DeploymentError",
  "DeploymentRequest",
  "DeploymentTimeoutError",
  "FilesystemError",
  "ListingIncompleteError",
  "RequestValidationError",
  "S3Location",
  "UploadError",
  "create",
  "extract",
  "list_file_paths",
  "substitute",
  "token",
]
