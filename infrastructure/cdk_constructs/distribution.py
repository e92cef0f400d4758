"""CloudFront distribution in front of the server function and static bucket."""

from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from constructs import Construct


class CdnDistribution(Construct):
  """Server function URL as default origin, hashed build files from S3."""

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    bucket: s3.IBucket,
    function_url: lambda_.IFunctionUrl,
    base_path: str = "",
  ) -> None:
    super().__init__(scope, id)

    base_path = base_path.strip("/")
    static_path = f"{base_path}/_next/static/*" if base_path else "_next/static/*"

    self.distribution = cloudfront.Distribution(
      self,
      "Distribution",
      default_behavior=cloudfront.BehaviorOptions(
        origin=origins.FunctionUrlOrigin(function_url),
        viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
        allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
        cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
        origin_request_policy=cloudfront.OriginRequestPolicy.ALL_VIEWER_EXCEPT_HOST_HEADER,
      ),
      additional_behaviors={
        static_path: cloudfront.BehaviorOptions(
          origin=origins.S3BucketOrigin.with_origin_access_control(bucket),
          viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
          allowed_methods=cloudfront.AllowedMethods.ALLOW_GET_HEAD,
          cached_methods=cloudfront.CachedMethods.CACHE_GET_HEAD,
          cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
        ),
      },
    )
