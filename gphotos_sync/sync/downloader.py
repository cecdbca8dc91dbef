"""
Media downloader for Google Photos Sync.

Fans a batch of items out over a fixed pool of asyncio workers sharing one
aiohttp session, and fans outcomes back in over a single queue. The call
returns only after every worker has finished, with the ids that succeeded.
"""

import asyncio
import logging
import os
import ssl
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import aiohttp
import certifi

from ..catalog import DownloadableItem, MediaItemId
from ..core.constants import PARTIAL_SUFFIX
from ..core.files import set_file_mtime
from ..errors import DownloadError, DownloadTimeoutError, InvalidConcurrencyError

log = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


def get_certifi_path() -> str:
    """Get path to certifi CA bundle, handling PyInstaller bundles."""
    if getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS"):
        bundled_cert = os.path.join(sys._MEIPASS, "certifi", "cacert.pem")
        if os.path.exists(bundled_cert):
            return bundled_cert
    return certifi.where()


def validate_concurrency(concurrency: int) -> int:
    """Reject worker pool sizes below one."""
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise InvalidConcurrencyError(f"concurrency must be a positive integer, got {concurrency!r}")
    return concurrency


@dataclass
class DownloadResult:
    """Outcome of a single item download."""
    media_item_id: MediaItemId
    success: bool
    message: str
    bytes_downloaded: int = 0


class MediaDownloader:
    """
    Async photo downloader.

    Each item is fetched from its time-limited base URL into dest_dir under
    its display filename, then the file's mtime is set to the photo's
    creation time. A failed item is logged and left out of the result; it
    never stops the rest of the batch.
    """

    def __init__(
        self,
        dest_dir: Path,
        max_workers: int = DEFAULT_CONCURRENCY,
        timeout: Tuple[int, int] = (10, 120),
        task_timeout: float = 300.0,
        chunk_size: int = 32768,
    ):
        """
        Args:
            dest_dir: Directory downloaded files are written to
            max_workers: Default worker pool size
            timeout: (connect, socket read) timeouts in seconds
            task_timeout: Upper bound in seconds for one whole item download
            chunk_size: Bytes per streamed write
        """
        self.dest_dir = Path(dest_dir)
        self.max_workers = validate_concurrency(max_workers)
        self.timeout = aiohttp.ClientTimeout(connect=timeout[0], sock_read=timeout[1])
        self.task_timeout = task_timeout
        self.chunk_size = chunk_size

    def download(
        self,
        items: Sequence[DownloadableItem],
        concurrency: Optional[int] = None,
    ) -> List[MediaItemId]:
        """
        Download a batch and return the ids that succeeded.

        Result order is not related to input order.

        Args:
            items: Items to fetch
            concurrency: Worker pool size (defaults to max_workers)

        Raises:
            InvalidConcurrencyError: If concurrency < 1
        """
        concurrency = validate_concurrency(self.max_workers if concurrency is None else concurrency)
        if not items:
            return []

        results = asyncio.run(self._download_many_async(items, concurrency))

        succeeded = []
        seen = set()
        failed = 0
        total_bytes = 0
        for result in results:
            if not result.success:
                failed += 1
                continue
            total_bytes += result.bytes_downloaded
            if result.media_item_id not in seen:
                seen.add(result.media_item_id)
                succeeded.append(result.media_item_id)

        log.info("Downloaded %d of %d items, %d bytes (%d failed)",
                 len(succeeded), len(items), total_bytes, failed)
        return succeeded

    async def _download_many_async(
        self,
        items: Sequence[DownloadableItem],
        concurrency: int,
    ) -> List[DownloadResult]:
        """Run the worker pool and collect exactly one outcome per item."""
        work: asyncio.Queue = asyncio.Queue()
        for item in items:
            work.put_nowait(item)
        outcomes: asyncio.Queue = asyncio.Queue()

        ssl_context = ssl.create_default_context(cafile=get_certifi_path())
        worker_count = min(concurrency, len(items))
        connector = aiohttp.TCPConnector(
            limit=worker_count * 2,
            limit_per_host=worker_count,
            ttl_dns_cache=300,
            ssl=ssl_context,
        )

        async with aiohttp.ClientSession(timeout=self.timeout, connector=connector) as session:
            workers = [
                asyncio.create_task(self._worker(session, work, outcomes), name=f"download-worker-{n}")
                for n in range(worker_count)
            ]
            await asyncio.gather(*workers)

        return [outcomes.get_nowait() for _ in range(len(items))]

    async def _worker(
        self,
        session: aiohttp.ClientSession,
        work: asyncio.Queue,
        outcomes: asyncio.Queue,
    ):
        while True:
            try:
                item = work.get_nowait()
            except asyncio.QueueEmpty:
                return

            try:
                result = await self._download_item(session, item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                result = DownloadResult(item.id, False, f"ERR: {item.filename} - {e}")
                log.exception("Unexpected error downloading %s", item.filename)

            await outcomes.put(result)

    async def _download_item(
        self,
        session: aiohttp.ClientSession,
        item: DownloadableItem,
    ) -> DownloadResult:
        """Download one item. Failures are returned, not raised."""
        path = self.dest_dir / item.filename

        try:
            if not item.filename or Path(item.filename).name != item.filename:
                raise DownloadError(f"unsafe filename {item.filename!r}")

            url = item.media_item.download_url()
            log.debug("Downloading %s", item.filename)
            try:
                size = await asyncio.wait_for(
                    self._fetch_to_file(session, url, path),
                    timeout=self.task_timeout,
                )
            except asyncio.TimeoutError as e:
                raise DownloadTimeoutError(f"timed out after {self.task_timeout:g}s") from e

            set_file_mtime(path, item.media_item.creation_time)

        except (DownloadError, aiohttp.ClientError, OSError) as e:
            message = f"ERR: {item.filename} - {e}"
            log.warning("%s [id=%s]", message, item.id)
            return DownloadResult(item.id, False, message)

        return DownloadResult(
            item.id,
            True,
            f"OK: {item.filename}",
            bytes_downloaded=size,
        )

    async def _fetch_to_file(self, session: aiohttp.ClientSession, url: str, path: Path) -> int:
        """
        Stream url into path via a .part file.

        The final name only appears once the body is complete, so a directory
        listing never sees a half-written photo.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + PARTIAL_SUFFIX)
        downloaded_bytes = 0

        try:
            async with session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                with open(tmp_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            downloaded_bytes += len(chunk)
            os.replace(tmp_path, path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        return downloaded_bytes
