"""Pytest fixtures for CDK construct and bucket deployment tests."""

import io
import os
import zipfile
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import aws_cdk as cdk
import pytest

from tests.fakes import MockS3Client

# Skip Docker bundling of Lambda code during synth
NO_BUNDLING = {"aws:cdk:bundling-stacks": []}


@pytest.fixture
def app() -> cdk.App:
  """Create a CDK App for testing."""
  return cdk.App(context=NO_BUNDLING)


@pytest.fixture
def stack(app: cdk.App) -> cdk.Stack:
  """Create a CDK Stack for testing."""
  return cdk.Stack(app, "TestStack", env=cdk.Environment(region="us-east-1"))


@pytest.fixture
def mock_s3() -> MockS3Client:
  """Create a mock S3 client."""
  return MockS3Client()


@pytest.fixture
def lambda_context() -> SimpleNamespace:
  """Minimal Lambda context object."""
  return SimpleNamespace(
    log_stream_name="2026/10/18/[$LATEST]0123456789abcdef",
    get_remaining_time_in_millis=lambda: 300_000,
  )


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
  """A minimal build output tree with static files and a server bundle."""
  root = tmp_path / ".open-next"
  static = root / "assets" / "_next" / "static" / "chunks"
  static.mkdir(parents=True)
  (static / "main.js").write_text('console.log("{{ NEXT_PUBLIC_API_URL }}")')
  (root / "assets" / "favicon.ico").write_bytes(b"\x00\x01")
  (root / "cache" / "BUILD_ID").mkdir(parents=True)
  (root / "cache" / "BUILD_ID" / "index.cache").write_text('{"type": "page"}')

  server = root / "server-functions" / "default"
  (server / "node_modules" / ".pnpm" / "pkg").mkdir(parents=True)
  (server / "node_modules" / ".pnpm" / "pkg" / "index.js").write_text("module.exports = 1")
  os.symlink(".pnpm/pkg", server / "node_modules" / "pkg")
  (server / "index.mjs").write_text('export const url = "{{ API_URL }}"')
  return root


def make_zip(entries: dict[str, Any]) -> bytes:
  """Zip ``{name: bytes | ("symlink", target)}`` the way ``zip -ry`` would."""
  buffer = io.BytesIO()
  with zipfile.ZipFile(buffer, "w") as archive:
    for name, content in entries.items():
      info = zipfile.ZipInfo(name)
      info.create_system = 3
      if isinstance(content, tuple):
        info.external_attr = 0o120777 << 16
        archive.writestr(info, content[1])
      else:
        info.external_attr = 0o100644 << 16
        archive.writestr(info, content)
  return buffer.getvalue()


@pytest.fixture
def zip_factory() -> Any:
  return make_zip
