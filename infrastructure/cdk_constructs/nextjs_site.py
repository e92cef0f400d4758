"""Main composite construct for a server-rendered Next.js site."""

from pathlib import Path

from aws_cdk import CfnOutput, RemovalPolicy
from constructs import Construct

from .distribution import CdnDistribution
from .invalidation import Invalidation
from .server_function import ServerFunction
from .static_assets import StaticAssets
from .storage import AssetsBucket


class NextjsSite(Construct):
  """Complete hosting for a prebuilt Next.js application.

  Creates:
  - Private S3 bucket for static files and the server cache
  - Static file deployment with deploy-time environment substitution
  - Server Lambda whose code has deploy-time values substituted
  - CloudFront distribution in front of both
  - Cache invalidation whenever a deployment changes
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    build_dir: str | Path,
    environment: dict[str, str] | None = None,
    base_path: str = "",
    prune: bool = True,
    debug: bool = False,
    concurrency_limit: int | None = None,
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
  ) -> None:
    super().__init__(scope, id)

    environment = environment or {}

    self.bucket = AssetsBucket(self, "Storage", removal_policy=removal_policy)

    self.static_assets = StaticAssets(
      self,
      "StaticAssets",
      bucket=self.bucket.bucket,
      build_dir=build_dir,
      environment=environment,
      base_path=base_path,
      prune=prune,
      debug=debug,
      concurrency_limit=concurrency_limit,
    )

    self.server = ServerFunction(
      self,
      "Server",
      build_dir=build_dir,
      static_bucket=self.bucket.bucket,
      cache_key_prefix=self.static_assets.cache_key_prefix,
      environment=environment,
      debug=debug,
    )

    self.distribution = CdnDistribution(
      self,
      "Distribution",
      bucket=self.bucket.bucket,
      function_url=self.server.function_url,
      base_path=base_path,
    )

    self.invalidation = Invalidation(
      self,
      "Invalidation",
      distribution=self.distribution.distribution,
      deployments=[self.static_assets.deployment, self.server.deployment],
    )

    # Outputs
    CfnOutput(
      self,
      "BucketName",
      value=self.bucket.bucket.bucket_name,
      description="S3 bucket name",
    )
    CfnOutput(
      self,
      "DistributionId",
      value=self.distribution.distribution.distribution_id,
      description="CloudFront distribution ID",
    )
    CfnOutput(
      self,
      "Url",
      value=f"https://{self.distribution.distribution.distribution_domain_name}",
      description="Site URL",
    )
