"""Upload the build's static files with deploy-time environment values."""

import shutil
import tempfile
from pathlib import Path

from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_assets as s3_assets
from constructs import Construct

from .bucket_deployment import BucketDeployment

STATIC_DIR = "assets"
CACHE_DIR = "cache"
CACHE_KEY_PREFIX = "_cache"
PUBLIC_ENV_PREFIX = "NEXT_PUBLIC"
REVALIDATE_CACHE_CONTROL = "public, max-age=0, must-revalidate"
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def stage_static_files(build_dir: str | Path, scratch_dir: str | Path) -> Path:
  """Join the static output with the prerendered cache under ``_cache``.

  Both end up in one pruned deployment, so the server cache is re-seeded on
  every deploy instead of being deleted as stale.
  """
  staged = Path(scratch_dir) / "static"
  shutil.copytree(Path(build_dir) / STATIC_DIR, staged, symlinks=True)
  cache_dir = Path(build_dir) / CACHE_DIR
  if cache_dir.is_dir():
    shutil.copytree(cache_dir, staged / CACHE_KEY_PREFIX, symlinks=True)
  return staged


class StaticAssets(Construct):
  """Static and public files of a Next.js build, deployed to ``bucket``.

  Only ``NEXT_PUBLIC_*`` variables are substituted: those are the ones inlined
  into client bundles as placeholders at build time.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    bucket: s3.IBucket,
    build_dir: str | Path,
    environment: dict[str, str] | None = None,
    base_path: str = "",
    prune: bool = True,
    debug: bool = False,
    concurrency_limit: int | None = None,
  ) -> None:
    super().__init__(scope, id)

    self.bucket = bucket

    with tempfile.TemporaryDirectory(prefix="static-assets-") as scratch:
      # The asset is staged (copied) during construction
      self.asset = s3_assets.Asset(self, "Asset", path=str(stage_static_files(build_dir, scratch)))

    base_path = base_path.strip("/")
    self.cache_key_prefix = f"{base_path}/{CACHE_KEY_PREFIX}" if base_path else CACHE_KEY_PREFIX
    public_env = {
      k: v for k, v in (environment or {}).items() if k.startswith(PUBLIC_ENV_PREFIX)
    }

    self.deployment = BucketDeployment(
      self,
      "BucketDeployment",
      asset=self.asset,
      destination_bucket=bucket,
      destination_key_prefix=base_path or None,
      substitution_config=BucketDeployment.get_substitution_config(public_env),
      prune=prune,
      debug=debug,
      concurrency_limit=concurrency_limit,
      # Globs match paths inside the asset, before the base path is prepended
      put_config=[
        ("**/*", {"CacheControl": REVALIDATE_CACHE_CONTROL}),
        ("_next/static/**/*", {"CacheControl": IMMUTABLE_CACHE_CONTROL}),
      ],
    )
