"""CDK constructs for hosting a prebuilt Next.js application."""

from .bucket_deployment import BucketDeployment
from .distribution import CdnDistribution
from .invalidation import Invalidation
from .nextjs_site import NextjsSite
from .server_function import ServerFunction
from .static_assets import StaticAssets
from .storage import AssetsBucket

__all__ = [
  "AssetsBucket",
  "BucketDeployment",
  "CdnDistribution",
  "Invalidation",
  "NextjsSite",
  "ServerFunction",
  "StaticAssets",
]
