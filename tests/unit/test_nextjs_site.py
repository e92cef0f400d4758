"""Tests for the NextjsSite construct and stack."""

import json
import shutil
from pathlib import Path

import aws_cdk as cdk
import pytest
from aws_cdk import RemovalPolicy
from aws_cdk.assertions import Match, Template

from infrastructure.cdk_constructs import NextjsSite
from infrastructure.cdk_constructs.bucket_deployment import RESOURCE_TYPE
from infrastructure.cdk_constructs.invalidation import Invalidation
from infrastructure.cdk_constructs.static_assets import (
  CACHE_KEY_PREFIX,
  IMMUTABLE_CACHE_CONTROL,
  stage_static_files,
)
from infrastructure.config import SiteConfig
from infrastructure.stacks import NextjsSiteStack

ENVIRONMENT = {
  "NEXT_PUBLIC_API_URL": "https://api.example.com",
  "API_URL": "https://internal.example.com",
}


class TestNextjsSite:
  """Test the main NextjsSite construct."""

  @pytest.fixture
  def template(self, stack: cdk.Stack, build_dir: Path) -> Template:
    """Create a template with a base path and environment."""
    NextjsSite(
      stack,
      "Site",
      build_dir=build_dir,
      environment=ENVIRONMENT,
      base_path="/docs/",
      removal_policy=RemovalPolicy.DESTROY,
    )
    return Template.from_stack(stack)

  def test_creates_two_deployments(self, template: Template) -> None:
    """Static files and server code are each deployed once."""
    template.resource_count_is(RESOURCE_TYPE, 2)

  def test_static_deployment_substitutes_public_variables_only(self, template: Template) -> None:
    """Only NEXT_PUBLIC_* values reach the static files."""
    template.has_resource_properties(
      RESOURCE_TYPE,
      {
        "destinationKeyPrefix": "docs",
        "prune": "true",
        "zip": "false",
        "substitutionConfig": Match.exact({"{{ NEXT_PUBLIC_API_URL }}": "https://api.example.com"}),
        "putConfig": Match.array_with(
          [{"glob": "_next/static/**/*", "options": {"CacheControl": IMMUTABLE_CACHE_CONTROL}}]
        ),
      },
    )

  def test_server_deployment_is_zipped(self, template: Template) -> None:
    """Server code is re-zipped with every variable substituted."""
    template.has_resource_properties(
      RESOURCE_TYPE,
      {
        "destinationKeyPrefix": "server-function.zip",
        "zip": "true",
        "substitutionConfig": {
          "{{ NEXT_PUBLIC_API_URL }}": "https://api.example.com",
          "{{ API_URL }}": "https://internal.example.com",
        },
      },
    )

  def test_server_function_uses_deployed_version(self, template: Template) -> None:
    """The server Lambda is pinned to the uploaded archive's version."""
    template.has_resource_properties(
      "AWS::Lambda::Function",
      {
        "Runtime": "nodejs20.x",
        "Architectures": ["arm64"],
        "Code": {
          "S3Key": "server-function.zip",
          "S3ObjectVersion": {"Fn::GetAtt": Match.array_with(["ObjectVersion"])},
        },
        "Environment": {
          "Variables": Match.object_like(
            {"API_URL": "https://internal.example.com", "CACHE_BUCKET_KEY_PREFIX": "docs/_cache"}
          ),
        },
      },
    )

  def test_code_bucket_is_versioned(self, template: Template) -> None:
    """Old server code versions expire."""
    template.has_resource_properties(
      "AWS::S3::Bucket",
      {
        "VersioningConfiguration": {"Status": "Enabled"},
        "LifecycleConfiguration": {
          "Rules": [Match.object_like({"NoncurrentVersionExpiration": {"NoncurrentDays": 30}})]
        },
      },
    )

  def test_creates_function_url(self, template: Template) -> None:
    """The server function is reachable through a function URL."""
    template.has_resource_properties("AWS::Lambda::Url", {"AuthType": "NONE"})

  def test_creates_cloudfront_distribution(self, template: Template) -> None:
    """Hashed build files are served from S3 under the base path."""
    template.has_resource_properties(
      "AWS::CloudFront::Distribution",
      {
        "DistributionConfig": {
          "CacheBehaviors": Match.array_with(
            [Match.object_like({"PathPattern": "docs/_next/static/*"})]
          ),
        },
      },
    )

  def test_creates_invalidation(self, template: Template) -> None:
    """A cache invalidation follows the deployments."""
    template.resource_count_is("Custom::AWS", 1)

  def test_server_cache_prefix_follows_base_path(self, template: Template) -> None:
    """The server reads its cache where the static deployment seeds it."""
    template.has_resource_properties(
      "AWS::Lambda::Function",
      {"Environment": {"Variables": Match.object_like({"CACHE_BUCKET_KEY_PREFIX": "docs/_cache"})}},
    )

  def test_outputs(self, template: Template) -> None:
    """Bucket, distribution and URL are exported."""
    descriptions = {o.get("Description") for o in template.find_outputs("*").values()}

    assert {"S3 bucket name", "CloudFront distribution ID", "Site URL"} <= descriptions


class TestNextjsSiteStack:
  """Test NextjsSiteStack."""

  def test_stack_from_site_config(self, app: cdk.App, build_dir: Path) -> None:
    """A site config becomes a stack with tagged resources."""
    site = SiteConfig(name="docs", build_dir=str(build_dir), environment=ENVIRONMENT)
    stack = NextjsSiteStack(
      app, site.stack_name, site_config=site, env=cdk.Environment(region="us-east-1")
    )

    template = Template.from_stack(stack)

    template.resource_count_is(RESOURCE_TYPE, 2)
    template.has_resource_properties(
      "AWS::S3::Bucket",
      {"Tags": Match.array_with([{"Key": "Site", "Value": "docs"}])},
    )


class TestStaticCacheSeeding:
  """Test that prerendered cache entries ship with the static files."""

  def test_cache_is_staged_under_cache_prefix(self, build_dir: Path, tmp_path: Path) -> None:
    """The build cache lands under _cache next to the static files."""
    staged = stage_static_files(build_dir, tmp_path / "scratch")

    assert (staged / "_next" / "static" / "chunks" / "main.js").is_file()
    assert (staged / "favicon.ico").is_file()
    assert (staged / CACHE_KEY_PREFIX / "BUILD_ID" / "index.cache").read_text() == '{"type": "page"}'

  def test_missing_cache_dir_is_skipped(self, build_dir: Path, tmp_path: Path) -> None:
    """Builds without a cache directory only stage the static files."""
    shutil.rmtree(build_dir / "cache")

    staged = stage_static_files(build_dir, tmp_path / "scratch")

    assert not (staged / CACHE_KEY_PREFIX).exists()
    assert (staged / "favicon.ico").is_file()

  def test_site_asset_contains_cache(self, app: cdk.App, stack: cdk.Stack, build_dir: Path) -> None:
    """The asset deployed with prune enabled carries the cache entries."""
    site = NextjsSite(stack, "Site", build_dir=build_dir, environment=ENVIRONMENT)

    staged = Path(app.outdir) / site.static_assets.asset.asset_path

    assert (staged / CACHE_KEY_PREFIX / "BUILD_ID" / "index.cache").is_file()
    assert (staged / "_next" / "static" / "chunks" / "main.js").is_file()


class TestInvalidation:
  """Test the invalidation caller reference."""

  def test_caller_reference_includes_nonce(self, stack: cdk.Stack, build_dir: Path) -> None:
    """Every synth produces a caller reference CloudFront has not seen."""
    site = NextjsSite(stack, "Site", build_dir=build_dir, environment=ENVIRONMENT)

    rendered = json.dumps(Template.from_stack(stack).to_json())

    assert site.invalidation.nonce
    assert site.invalidation.nonce in rendered

  def test_explicit_nonce(self, stack: cdk.Stack, build_dir: Path) -> None:
    """Redeploying the same content with a new nonce changes the reference."""
    site = NextjsSite(stack, "Site", build_dir=build_dir, environment=ENVIRONMENT)
    Invalidation(
      stack,
      "Rollback",
      distribution=site.distribution.distribution,
      deployments=[site.static_assets.deployment],
      nonce="rollback-20261018",
    )

    rendered = json.dumps(Template.from_stack(stack).to_json())

    assert "rollback-20261018" in rendered
    assert site.invalidation.nonce != "rollback-20261018"
