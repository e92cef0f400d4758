"""Custom Resource that deploys an asset into a bucket with token substitution."""

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import aws_cdk as cdk
from aws_cdk import CustomResource, Duration
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_assets as s3_assets
from constructs import Construct

LAMBDAS_DIR = Path(__file__).resolve().parent.parent.parent / "lambdas"
HANDLER = "bucket_deployment.handler.handler"
RESOURCE_TYPE = "Custom::BucketDeployment"

PutConfig = Mapping[str, Mapping[str, Any]] | Sequence[tuple[str, Mapping[str, Any]]]


def _bool(value: bool) -> str:
  return "true" if value else "false"


def _put_config_entries(put_config: PutConfig | None) -> list[dict[str, Any]]:
  """Ordered ``[{glob, options}]`` list; JSON maps do not keep key order."""
  if not put_config:
    return []
  items = put_config.items() if isinstance(put_config, Mapping) else put_config
  return [{"glob": glob, "options": dict(options)} for glob, options in items]


def handler_code() -> lambda_.Code:
  """Handler package with its requirements installed alongside."""
  return lambda_.Code.from_asset(
    str(LAMBDAS_DIR),
    asset_hash_type=cdk.AssetHashType.SOURCE,
    exclude=["**/__pycache__", "**/*.pyc"],
    bundling=cdk.BundlingOptions(
      image=lambda_.Runtime.PYTHON_3_12.bundling_image,
      command=[
        "bash",
        "-c",
        "pip install --no-cache-dir -r requirements.txt -t /asset-output"
        " && cp -r bucket_deployment /asset-output/",
      ],
    ),
  )


class BucketDeployment(Construct):
  """Deploy an asset's files into a bucket, replacing deploy-time placeholders.

  Like ``aws_s3_deployment.BucketDeployment``, but placeholders such as
  ``{{ API_URL }}`` in the asset are replaced with values only known once the
  stack deploys, PUT options (cache control, ...) are set per glob, and the
  tree can be re-zipped into one object for Lambda code packages.

  ``deployment_id`` changes whenever the deployed content inputs change.
  """

  @staticmethod
  def get_substitution_value(name: str) -> str:
    """Placeholder written into build output for ``name``."""
    return f"{{{{ {name} }}}}"

  @staticmethod
  def get_substitution_config(environment: Mapping[str, str]) -> dict[str, str]:
    """Map each variable's placeholder to its (possibly unresolved) value."""
    return {BucketDeployment.get_substitution_value(k): v for k, v in environment.items()}

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    asset: s3_assets.Asset,
    destination_bucket: s3.IBucket,
    destination_key_prefix: str | None = None,
    prune: bool = True,
    zip: bool = False,
    substitution_config: Mapping[str, str] | None = None,
    put_config: PutConfig | None = None,
    glob_dot: bool = False,
    concurrency_limit: int | None = None,
    debug: bool = False,
    memory_size: int = 1024,
  ) -> None:
    super().__init__(scope, id)

    # One handler per stack, shared by every deployment
    self.handler = lambda_.SingletonFunction(
      self,
      "Handler",
      uuid="6c3d8f3e-1b8a-4a52-9d3e-7f0b5a2c9e41",
      lambda_purpose=RESOURCE_TYPE,
      runtime=lambda_.Runtime.PYTHON_3_12,
      handler=HANDLER,
      code=handler_code(),
      timeout=Duration.minutes(5),
      memory_size=memory_size,
      ephemeral_storage_size=cdk.Size.mebibytes(2048),
    )

    asset.grant_read(self.handler)
    destination_bucket.grant_read_write(self.handler)

    properties: dict[str, Any] = {
      "sourceBucketName": asset.s3_bucket_name,
      "sourceKeyPrefix": asset.s3_object_key,
      "destinationBucketName": destination_bucket.bucket_name,
      "destinationKeyPrefix": destination_key_prefix or "",
      "prune": _bool(prune),
      "zip": _bool(zip),
      "debug": _bool(debug),
      "globDot": _bool(glob_dot),
      "substitutionConfig": dict(substitution_config or {}),
      "putConfig": _put_config_entries(put_config),
    }
    if concurrency_limit:
      properties["concurrencyLimit"] = str(concurrency_limit)

    self.custom_resource = CustomResource(
      self,
      "Resource",
      service_token=self.handler.function_arn,
      resource_type=RESOURCE_TYPE,
      properties=properties,
    )

  @property
  def deployment_id(self) -> str:
    return self.custom_resource.get_att_string("DeploymentId")

  @property
  def object_version(self) -> str:
    """Version of the uploaded archive; only for ``zip=True`` into a versioned bucket."""
    return self.custom_resource.get_att_string("ObjectVersion")
