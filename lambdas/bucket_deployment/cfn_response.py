"""Report custom resource status back to CloudFormation.

Mirrors the ``cfnresponse`` helper available to inline Lambda code: a JSON
body PUT to the pre-signed ``ResponseURL`` with an empty content type.
"""

import json
import logging
from typing import Any

import urllib3

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
FAILED = "FAILED"

# CloudFormation rejects response bodies over 4096 bytes
MAX_REASON_LENGTH = 2048
RESPONSE_TIMEOUT_SECONDS = 30.0


def log_stream_reason(context: Any) -> str:
  return f"See the details in CloudWatch Log Stream: {getattr(context, 'log_stream_name', 'unknown')}"


def build_body(
  event: dict[str, Any],
  context: Any,
  status: str,
  *,
  reason: str | None = None,
  physical_resource_id: str | None = None,
  data: dict[str, str] | None = None,
  no_echo: bool = False,
) -> dict[str, Any]:
  """Response document for one lifecycle event."""
  reason = reason or log_stream_reason(context)
  if len(reason) > MAX_REASON_LENGTH:
    reason = reason[: MAX_REASON_LENGTH - 3] + "..."
  return {
    "Status": status,
    "Reason": reason,
    "PhysicalResourceId": physical_resource_id or getattr(context, "log_stream_name", "unknown"),
    "StackId": event.get("StackId"),
    "RequestId": event.get("RequestId"),
    "LogicalResourceId": event.get("LogicalResourceId"),
    "NoEcho": no_echo,
    "Data": data or {},
  }


def send(
  event: dict[str, Any],
  context: Any,
  status: str,
  *,
  reason: str | None = None,
  physical_resource_id: str | None = None,
  data: dict[str, str] | None = None,
  http: urllib3.PoolManager | None = None,
) -> int:
  """PUT the response document to ``event["ResponseURL"]``; returns the HTTP status."""
  body = json.dumps(
    build_body(
      event,
      context,
      status,
      reason=reason,
      physical_resource_id=physical_resource_id,
      data=data,
    )
  )
  http = http or urllib3.PoolManager()
  response = http.request(
    "PUT",
    event["ResponseURL"],
    body=body.encode("utf-8"),
    headers={"content-type": "", "content-length": str(len(body.encode("utf-8")))},
    timeout=urllib3.Timeout(total=RESPONSE_TIMEOUT_SECONDS),
    retries=urllib3.Retry(total=3, backoff_factor=0.5, allowed_methods=None),
  )
  logger.info("Sent %s response to CloudFormation: HTTP %s", status, response.status)
  return response.status
