# src/gaze_session/sinks/upload.py

import asyncio
import gzip
import logging
import shutil
from pathlib import Path
from typing import Callable, Optional, Set

import aiohttp

logger = logging.getLogger(__name__)


class LogUploader:
    """
    Compresses a finished log file and POSTs it to an HTTP endpoint.

    Uploads run as background tasks on the event loop, with compression and
    file IO offloaded to a worker thread, so the tick loop never waits on the
    network. The only thing shared with the recording side is the path of the
    finished file. Use HTTPS to keep the transfer encrypted.
    """

    def __init__(
        self,
        form_field: str,
        retry_attempts: int = 3,
        backoff_factor_s: float = 0.5,
        timeout_s: float = 30.0,
    ):
        """
        Initializes the LogUploader.

        Args:
            form_field: Name of the multipart field carrying the file. The
                server can use it as a shared key to reject foreign uploads.
            retry_attempts: The number of attempts per upload.
            backoff_factor_s: The base factor for exponential backoff delay.
            timeout_s: Timeout of a single request attempt.
        """
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1.")
        self._form_field = form_field
        self._retry_attempts = retry_attempts
        self._backoff_factor_s = backoff_factor_s
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._active_uploads: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings) -> "LogUploader":
        """Builds an uploader from an `UploadSettings` section."""
        return cls(
            form_field=settings.form_field,
            retry_attempts=settings.retry_attempts,
            backoff_factor_s=settings.retry_backoff_factor_s,
            timeout_s=settings.timeout_s,
        )

    @staticmethod
    def compress(file_path: Path) -> Path:
        """Gzips the file next to the original and returns the new path."""
        compressed = file_path.with_name(file_path.name + ".gz")
        with file_path.open("rb") as src, gzip.open(compressed, "wb") as dst:
            shutil.copyfileobj(src, dst)
        return compressed

    async def _send_with_retry(self, session: aiohttp.ClientSession, url: str, payload_path: Path) -> bool:
        """Sends the compressed file with an exponential backoff retry mechanism."""
        payload = await asyncio.to_thread(payload_path.read_bytes)

        for attempt in range(self._retry_attempts):
            form = aiohttp.FormData()
            form.add_field(
                self._form_field,
                payload,
                filename=payload_path.name,
                content_type="application/gzip",
            )
            try:
                async with session.post(url, data=form, timeout=self._timeout) as response:
                    if 200 <= response.status < 300:
                        logger.info(f"Uploaded {payload_path.name}, status: {response.status}")
                        return True
                    response_text = await response.text()
                    logger.warning(
                        f"Server returned non-success status: {response.status} "
                        f"on attempt {attempt + 1}. Response: {response_text}"
                    )

            except aiohttp.ClientError as e:
                logger.warning(f"Network error on attempt {attempt + 1}: {e}")
            except asyncio.TimeoutError:
                logger.warning(f"Upload timed out on attempt {attempt + 1}")

            if attempt < self._retry_attempts - 1:
                backoff_time = self._backoff_factor_s * (2**attempt)
                logger.info(f"Retrying in {backoff_time:.2f} seconds...")
                await asyncio.sleep(backoff_time)

        logger.error("Failed to upload %s after %d attempts.", payload_path.name, self._retry_attempts)
        return False

    async def upload(self, file_path: Path, url: str) -> bool:
        """Compresses and uploads one file. Returns whether the server accepted it."""
        file_path = Path(file_path)
        compressed = await asyncio.to_thread(self.compress, file_path)
        try:
            async with aiohttp.ClientSession() as session:
                return await self._send_with_retry(session, url, compressed)
        finally:
            await asyncio.to_thread(compressed.unlink, True)

    def upload_in_background(
        self,
        file_path: Path,
        url: str,
        on_error: Optional[Callable[[Path], None]] = None,
    ) -> asyncio.Task:
        """
        Starts an upload without waiting for it.

        `on_error` is only called, with the file path, if the upload failed.
        """
        task = asyncio.create_task(self.upload(file_path, url))

        def _on_complete(t: asyncio.Task) -> None:
            try:
                ok = t.result()
            except asyncio.CancelledError:
                logger.info(f"Upload of {file_path} was cancelled.")
                ok = False
            except Exception:
                logger.exception(f"Upload of {file_path} crashed.")
                ok = False
            if not ok and on_error is not None:
                on_error(Path(file_path))

        self._active_uploads.add(task)
        task.add_done_callback(self._active_uploads.discard)
        task.add_done_callback(_on_complete)
        return task

    async def wait_closed(self) -> None:
        """Waits for all uploads that are still in flight."""
        if self._active_uploads:
            logger.info("Waiting for %d pending uploads...", len(self._active_uploads))
            await asyncio.gather(*self._active_uploads, return_exceptions=True)
