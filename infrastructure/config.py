"""Configuration loader for Next.js site deployments."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml
from aws_cdk import RemovalPolicy


@dataclass
class SiteConfig:
  """Configuration for a single Next.js site."""

  name: str
  build_dir: str  # Output directory of the external build (e.g. .open-next)
  environment: dict[str, str] = field(default_factory=dict)
  base_path: str = ""
  prune: bool = True
  debug: bool = False
  removal_policy: RemovalPolicy = RemovalPolicy.DESTROY
  region: str = "us-east-1"
  concurrency_limit: int | None = None

  @property
  def stack_name(self) -> str:
    return f"NextjsSite-{self.name}"


@dataclass
class Config:
  """Multi-site configuration."""

  sites: list[SiteConfig] = field(default_factory=list)

  @classmethod
  def from_yaml(cls, path: Path | str = "sites.yaml") -> "Config":
    """Load configuration from YAML file."""
    with open(path) as f:
      data = yaml.safe_load(f) or {}

    defaults = data.get("defaults", {})
    sites: list[SiteConfig] = []

    for site_data in data.get("sites", []):
      # Merge defaults with site-specific config
      merged = {**defaults, **site_data}

      # Environment maps merge key by key
      environment = {**defaults.get("environment", {}), **site_data.get("environment", {})}

      removal_policy_str = merged.get("removal_policy", "destroy")
      removal_policy = {
        "retain": RemovalPolicy.RETAIN,
        "destroy": RemovalPolicy.DESTROY,
        "snapshot": RemovalPolicy.SNAPSHOT,
      }.get(removal_policy_str.lower(), RemovalPolicy.DESTROY)

      concurrency_limit = merged.get("concurrency_limit")
      sites.append(
        SiteConfig(
          name=merged["name"],
          build_dir=merged["build_dir"],
          environment={k: str(v) for k, v in environment.items()},
          base_path=merged.get("base_path", "").strip("/"),
          prune=merged.get("prune", True),
          debug=merged.get("debug", False),
          removal_policy=removal_policy,
          region=merged.get("region", "us-east-1"),
          concurrency_limit=int(concurrency_limit) if concurrency_limit else None,
        )
      )

    return cls(sites=sites)
