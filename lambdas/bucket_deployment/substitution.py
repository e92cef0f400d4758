"""Deploy-time token substitution across an extracted file set.

Tokens look like ``{{ API_URL }}``. All tokens are matched by a single
alternation pattern in one pass per file, so a replacement value is never
re-scanned for other tokens. Applying the same map twice is a no-op provided
no value contains another key's token text.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import FilesystemError

logger = logging.getLogger(__name__)

DEPENDENCY_DIR_MARKER = "node_modules"


def token(name: str) -> str:
  """Wrap a variable name in the placeholder delimiters."""
  return f"{{{{ {name} }}}}"


@dataclass(frozen=True)
class SubstitutionResult:
  """Outcome of substituting one file."""

  path: Path
  changed: bool
  skipped: bool = False


def build_pattern(tokens: Iterable[str]) -> re.Pattern[str] | None:
  """Alternation of the literal tokens, longest first so prefixes never shadow."""
  keys = sorted(set(tokens), key=lambda k: (-len(k), k))
  if not keys:
    return None
  return re.compile("|".join(re.escape(k) for k in keys))


def is_dependency_path(path: Path) -> bool:
  return DEPENDENCY_DIR_MARKER in path.parts


def substitute_text(text: str, pattern: re.Pattern[str], config: Mapping[str, str]) -> str:
  """Replace every token in ``text`` in a single pass."""

  def replace(match: re.Match[str]) -> str:
    value = config.get(match.group(0))
    if value is None:
      logger.warning("No value for matched token %s, substituting ''", match.group(0))
      return ""
    return value

  return pattern.sub(replace, text)


def substitute_file(path: Path, pattern: re.Pattern[str], config: Mapping[str, str]) -> SubstitutionResult:
  """Rewrite ``path`` in place if, and only if, its content changes."""
  try:
    original = path.read_bytes()
  except OSError as e:
    raise FilesystemError(f"Cannot read {path}: {e}") from e

  try:
    text = original.decode("utf-8")
  except UnicodeDecodeError:
    logger.warning("Skipping substitution in non-UTF-8 file %s", path)
    return SubstitutionResult(path=path, changed=False, skipped=True)

  updated = substitute_text(text, pattern, config).encode("utf-8")
  if updated == original:
    return SubstitutionResult(path=path, changed=False)

  try:
    path.write_bytes(updated)
  except OSError as e:
    raise FilesystemError(f"Cannot write {path}: {e}") from e
  return SubstitutionResult(path=path, changed=True)


def substitute(file_paths: Iterable[Path], config: Mapping[str, str]) -> list[SubstitutionResult]:
  """Apply ``config`` to every regular file outside dependency directories.

  Symlinks are left alone; their targets are visited on their own.
  """
  pattern = build_pattern(config)
  if pattern is None:
    return []

  results: list[SubstitutionResult] = []
  for path in file_paths:
    if is_dependency_path(path) or path.is_symlink() or not path.is_file():
      continue
    results.append(substitute_file(path, pattern, config))

  changed = sum(1 for r in results if r.changed)
  logger.info("Substituted %d token(s): %d of %d file(s) changed", len(config), changed, len(results))
  return results
