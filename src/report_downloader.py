"""Report Downloader - Streams a billing report object to local scratch space."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from billing_errors import ImportCancelled
from stores import BlobReader

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ReportDownloader:
    """Download one S3 object without holding it in memory."""

    def __init__(self, blob_reader: BlobReader, bucket: str, report_name: str) -> None:
        self.blob_reader = blob_reader
        self.bucket = bucket
        self.report_name = report_name

    def download(
        self,
        dest_dir: Union[str, Path],
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[Callable[[int], None]] = None,
    ) -> Path:
        """
        Stream the report to ``dest_dir/<report_name>``, replacing any existing file.

        Args:
            dest_dir: Scratch directory (created if missing)
            cancel_event: Checked between chunks; when set the download stops
            progress: Called with the byte count of every chunk written

        Returns:
            Path of the downloaded file
        """
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest_path = dest_dir / self.report_name

        logger.info(f"Downloading s3://{self.bucket}/{self.report_name} to {dest_path}")
        body = self.blob_reader.get_object(self.bucket, self.report_name)
        total = 0
        try:
            with open(dest_path, "wb") as out:
                while True:
                    if cancel_event is not None and cancel_event.is_set():
                        raise ImportCancelled(f"Download of {self.report_name} cancelled")
                    chunk = body.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
                    total += len(chunk)
                    if progress:
                        progress(len(chunk))
        finally:
            body.close()

        logger.info(f"Downloaded {total} bytes to {dest_path}")
        return dest_path
