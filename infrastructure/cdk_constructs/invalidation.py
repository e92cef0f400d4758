"""CloudFront cache invalidation after bucket deployments change."""

from datetime import datetime, timezone

from aws_cdk import Fn, Stack
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import custom_resources as cr
from constructs import Construct

from .bucket_deployment import BucketDeployment


def synth_nonce() -> str:
  return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


class Invalidation(Construct):
  """Invalidate ``/*`` after ``deployments`` run.

  The caller reference joins each deployment's ``DeploymentId`` with a nonce
  taken at synth time, so redeploying earlier content (a rollback) still gets
  a reference CloudFront has not seen before.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    distribution: cloudfront.IDistribution,
    deployments: list[BucketDeployment],
    nonce: str | None = None,
  ) -> None:
    super().__init__(scope, id)

    self.nonce = nonce or synth_nonce()
    caller_reference = Fn.join("-", [*(d.deployment_id for d in deployments), self.nonce])
    sdk_call = cr.AwsSdkCall(
      service="CloudFront",
      action="createInvalidation",
      parameters={
        "DistributionId": distribution.distribution_id,
        "InvalidationBatch": {
          "CallerReference": caller_reference,
          "Paths": {"Quantity": 1, "Items": ["/*"]},
        },
      },
      physical_resource_id=cr.PhysicalResourceId.of(caller_reference),
    )

    self.resource = cr.AwsCustomResource(
      self,
      "Resource",
      on_create=sdk_call,
      on_update=sdk_call,
      policy=cr.AwsCustomResourcePolicy.from_sdk_calls(
        resources=[
          Stack.of(self).format_arn(
            service="cloudfront",
            region="",
            resource="distribution",
            resource_name=distribution.distribution_id,
          )
        ],
      ),
    )
    for deployment in deployments:
      self.resource.node.add_dependency(deployment)
