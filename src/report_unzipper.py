"""Report Unzipper - Extracts the single CSV member of a billing report archive."""

import logging
import re
import shutil
import zipfile
from pathlib import Path
from typing import Union

from billing_errors import UnexpectedArchiveShape

logger = logging.getLogger(__name__)

_DRIVE_RE = re.compile(r"^[A-Za-z]:(/|$)")


def _is_unsafe(name: str) -> bool:
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or _DRIVE_RE.match(normalized):
        return True
    return ".." in normalized.split("/")


def unzip_report(archive_path: Union[str, Path], dest_dir: Union[str, Path]) -> Path:
    """
    Extract the only member of ``archive_path`` into ``dest_dir``.

    The member keeps its stored name. Nothing is written unless the archive
    holds exactly one file whose path stays inside ``dest_dir``.

    Returns:
        Path of the extracted file
    """
    dest_dir = Path(dest_dir)

    try:
        archive = zipfile.ZipFile(archive_path)
    except zipfile.BadZipFile as e:
        raise UnexpectedArchiveShape(f"{archive_path} is not a valid zip archive") from e

    with archive:
        members = archive.infolist()
        if len(members) != 1:
            raise UnexpectedArchiveShape(
                f"Expected exactly one member in {archive_path}, found {len(members)}"
            )
        member = members[0]
        if member.is_dir():
            raise UnexpectedArchiveShape(f"Only member of {archive_path} is a directory")
        if _is_unsafe(member.filename):
            raise UnexpectedArchiveShape(f"Refusing to extract unsafe path {member.filename!r}")

        target = (dest_dir / member.filename).resolve()
        root = dest_dir.resolve()
        if root not in target.parents:
            raise UnexpectedArchiveShape(f"Refusing to extract unsafe path {member.filename!r}")

        target.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(member) as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst, 1024 * 1024)

    logger.info(f"Extracted {member.filename} ({member.file_size} bytes) to {target}")
    return target
