"""Next.js server Lambda whose code has deploy-time values substituted."""

import tempfile
from pathlib import Path

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_assets as s3_assets
from constructs import Construct

from bucket_deployment.archive import create as create_archive

from .bucket_deployment import BucketDeployment
from .static_assets import CACHE_KEY_PREFIX

SERVER_DIR = "server-functions/default"
CODE_KEY = "server-function.zip"


def archive_directory(directory: str | Path, scratch_dir: str | Path) -> Path:
  """Zip ``directory`` keeping symlinks (pnpm node_modules rely on them)."""
  zip_path = Path(scratch_dir) / "server.zip"
  zip_path.write_bytes(create_archive(directory))
  return zip_path


class ServerFunction(Construct):
  """Server-rendering Lambda built from the build's server directory.

  The server code is zipped locally, then a zip-mode ``BucketDeployment``
  substitutes environment placeholders into it and writes the result to a
  versioned code bucket. The function is pinned to the uploaded object
  version, so it updates whenever the substituted values change.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    build_dir: str | Path,
    static_bucket: s3.IBucket,
    cache_key_prefix: str = CACHE_KEY_PREFIX,
    environment: dict[str, str] | None = None,
    debug: bool = False,
    memory_size: int = 1024,
    timeout: Duration = Duration.seconds(30),
  ) -> None:
    super().__init__(scope, id)

    environment = environment or {}

    with tempfile.TemporaryDirectory(prefix="server-archive-") as scratch:
      # The asset is staged (copied) during construction
      self.source_asset = s3_assets.Asset(
        self,
        "SourceCodeAsset",
        path=str(archive_directory(Path(build_dir) / SERVER_DIR, scratch)),
      )

    self.code_bucket = s3.Bucket(
      self,
      "CodeBucket",
      versioned=True,
      block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
      encryption=s3.BucketEncryption.S3_MANAGED,
      enforce_ssl=True,
      removal_policy=RemovalPolicy.DESTROY,
      auto_delete_objects=True,
      lifecycle_rules=[s3.LifecycleRule(noncurrent_version_expiration=Duration.days(30))],
    )

    self.deployment = BucketDeployment(
      self,
      "BucketDeployment",
      asset=self.source_asset,
      destination_bucket=self.code_bucket,
      destination_key_prefix=CODE_KEY,
      zip=True,
      prune=False,
      debug=debug,
      substitution_config=BucketDeployment.get_substitution_config(environment),
    )

    self.function = lambda_.Function(
      self,
      "Fn",
      runtime=lambda_.Runtime.NODEJS_20_X,
      architecture=lambda_.Architecture.ARM_64,
      handler="index.handler",
      code=lambda_.Code.from_bucket(
        self.code_bucket,
        CODE_KEY,
        object_version=self.deployment.object_version,
      ),
      memory_size=memory_size,
      timeout=timeout,
      description="Next.js Server Handler",
      environment={
        **environment,
        "CACHE_BUCKET_NAME": static_bucket.bucket_name,
        "CACHE_BUCKET_KEY_PREFIX": cache_key_prefix,
      },
    )
    self.function.node.add_dependency(self.deployment)
    static_bucket.grant_read_write(self.function)

    self.function_url = self.function.add_function_url(
      auth_type=lambda_.FunctionUrlAuthType.NONE,
    )
