"""CDK stack for a single Next.js site."""

from typing import Any

import aws_cdk as cdk
from constructs import Construct

from infrastructure.cdk_constructs import NextjsSite
from infrastructure.config import SiteConfig


class NextjsSiteStack(cdk.Stack):
  """Stack for a single Next.js site."""

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    site_config: SiteConfig,
    **kwargs: Any,
  ) -> None:
    super().__init__(scope, id, **kwargs)

    self.site = NextjsSite(
      self,
      "Site",
      build_dir=site_config.build_dir,
      environment=site_config.environment,
      base_path=site_config.base_path,
      prune=site_config.prune,
      debug=site_config.debug,
      concurrency_limit=site_config.concurrency_limit,
      removal_policy=site_config.removal_policy,
    )

    cdk.Tags.of(self).add("Project", "nextjs-sites")
    cdk.Tags.of(self).add("Site", site_config.name)
