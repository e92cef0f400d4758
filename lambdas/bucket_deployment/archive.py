"""Zip archive codec that preserves symlinks and POSIX permissions.

Symlinks are stored the way ``zip -y`` stores them: the entry content is the
link target and the Unix mode in the high 16 bits of ``external_attr`` has the
``S_IFLNK`` type bits set. Archives are written store-only with a fixed
timestamp so identical trees produce identical bytes.
"""

import io
import logging
import os
import stat
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ArchiveCorruptError, FilesystemError

logger = logging.getLogger(__name__)

SYMLINK_TYPE_MASK = 0xF000
SYMLINK_TYPE = 0xA000
SYMLINK_MODE = 0o120755
DIRECTORY_MODE = 0o40755
MSDOS_DIRECTORY_FLAG = 0x10
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
UNIX_SYSTEM = 3


@dataclass
class ExtractedFileSet:
  """Materialized working tree of one deployment."""

  root_path: Path
  file_paths: list[Path] = field(default_factory=list)

  def relative_path(self, path: Path) -> str:
    return path.relative_to(self.root_path).as_posix()


def is_symlink_entry(info: zipfile.ZipInfo) -> bool:
  """True if the entry's stored Unix mode marks it as a symbolic link."""
  mode = info.external_attr >> 16
  return (mode & SYMLINK_TYPE_MASK) == SYMLINK_TYPE


def _inside(root: Path, candidate: Path) -> bool:
  return candidate == root or root in candidate.parents


def _target_path(root: Path, name: str) -> Path:
  """Resolve an entry name under ``root``, refusing anything that escapes it."""
  relative = Path(name)
  if relative.is_absolute() or ".." in relative.parts:
    raise ArchiveCorruptError(f"Archive entry escapes destination: {name}")
  path = root / relative
  # Parent may traverse a symlink extracted earlier
  if not _inside(root, Path(os.path.realpath(path.parent))):
    raise ArchiveCorruptError(f"Archive entry escapes destination through a symlink: {name}")
  return path


def _extract_entry(archive: zipfile.ZipFile, info: zipfile.ZipInfo, root: Path) -> None:
  path = _target_path(root, info.filename)
  if info.is_dir():
    path.mkdir(parents=True, exist_ok=True)
    return

  path.parent.mkdir(parents=True, exist_ok=True)
  content = archive.read(info)
  if is_symlink_entry(info):
    if path.is_symlink() or path.exists():
      path.unlink()
    os.symlink(content.decode("utf-8"), path)
    return

  path.write_bytes(content)
  permissions = stat.S_IMODE(info.external_attr >> 16)
  if permissions:
    path.chmod(permissions)


def extract(archive_bytes: bytes, destination_dir: Path | str) -> None:
  """Extract ``archive_bytes`` into ``destination_dir``."""
  root = Path(os.path.realpath(destination_dir))
  try:
    with zipfile.ZipFile(io.BytesIO(archive_bytes)) as archive:
      for info in archive.infolist():
        _extract_entry(archive, info, root)
  except (zipfile.BadZipFile, zipfile.LargeZipFile, UnicodeDecodeError, EOFError) as e:
    raise ArchiveCorruptError(f"Cannot read source archive: {e}") from e
  except OSError as e:
    raise FilesystemError(f"Cannot extract source archive: {e}") from e


def list_file_paths(root: Path | str) -> list[Path]:
  """Every non-directory entry under ``root``, symlinks included, sorted.

  Symlinked directories are reported as entries and never descended.
  """
  root = Path(root)
  paths: list[Path] = []
  for dirpath, dirnames, filenames in os.walk(root):
    dirnames.sort()
    current = Path(dirpath)
    for name in dirnames:
      if (current / name).is_symlink():
        paths.append(current / name)
    for name in filenames:
      paths.append(current / name)
  return sorted(paths)


def _directory_info(arcname: str) -> zipfile.ZipInfo:
  info = zipfile.ZipInfo(arcname.rstrip("/") + "/", date_time=FIXED_DATE_TIME)
  info.create_system = UNIX_SYSTEM
  info.external_attr = (DIRECTORY_MODE << 16) | MSDOS_DIRECTORY_FLAG
  return info


def _file_info(arcname: str, mode: int) -> zipfile.ZipInfo:
  info = zipfile.ZipInfo(arcname, date_time=FIXED_DATE_TIME)
  info.create_system = UNIX_SYSTEM
  info.compress_type = zipfile.ZIP_STORED
  info.external_attr = mode << 16
  return info


def create(directory_path: Path | str) -> bytes:
  """Zip ``directory_path`` into store-only archive bytes."""
  root = Path(directory_path)
  buffer = io.BytesIO()
  try:
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
      for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        current = Path(dirpath)
        for name in sorted(dirnames + filenames):
          path = current / name
          arcname = path.relative_to(root).as_posix()
          if path.is_symlink():
            archive.writestr(_file_info(arcname, SYMLINK_MODE), os.readlink(path))
          elif path.is_dir():
            archive.writestr(_directory_info(arcname), b"")
          else:
            archive.writestr(_file_info(arcname, path.stat().st_mode), path.read_bytes())
  except OSError as e:
    raise FilesystemError(f"Cannot archive {root}: {e}") from e

  logger.debug("Archived %s into %d bytes", root, buffer.tell())
  return buffer.getvalue()
