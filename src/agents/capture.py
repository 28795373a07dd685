"""Page capture collaborator: render listing pages to PDF with playwright."""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

from playwright.async_api import Browser, Error as PlaywrightError, async_playwright

from errors import TransientExternalError

logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 30000
TABLE_TIMEOUT_MS = 10000
SETTLE_MS = 2000


@dataclass
class CaptureResult:
    """A rendered page stored on disk."""
    id: str
    document_path: Path
    source_url: str
    page_index: int
    screenshot_path: Optional[Path] = None
    timestamp: Optional[datetime] = None


class PageCapture:
    """Headless Chromium renderer producing A4 PDFs and full-page screenshots."""

    def __init__(self, storage_dir: Path, headless: bool = True):
        self.storage_dir = Path(storage_dir)
        self.headless = headless
        self._playwright: Any = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        (self.storage_dir / "screenshots").mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=["--no-sandbox", "--disable-gpu", "--disable-dev-shm-usage"],
        )
        logger.info("Browser launched for PDF capture")

    async def stop(self) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        logger.info("Browser closed")

    async def __aenter__(self) -> "PageCapture":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def capture(self, url: str, page_index: int = 1) -> CaptureResult:
        """
        Render one page to PDF and PNG.

        Raises:
            TransientExternalError: On navigation, timeout or render failure
        """
        if self._browser is None:
            await self.start()

        capture_id = str(uuid.uuid4())
        context = None
        try:
            context = await self._browser.new_context(viewport={"width": 1920, "height": 1080})
            page = await context.new_page()
            logger.info(f"Capturing PDF: {url} (page {page_index})")
            await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
            try:
                await page.wait_for_selector("table", timeout=TABLE_TIMEOUT_MS)
            except PlaywrightError:
                logger.warning("No table found, proceeding with capture")
            await page.wait_for_timeout(SETTLE_MS)

            pdf_path = self.storage_dir / f"{capture_id}.pdf"
            await page.pdf(
                path=str(pdf_path),
                format="A4",
                print_background=True,
                margin={"top": "0", "right": "0", "bottom": "0", "left": "0"},
            )
            screenshot_path = self.storage_dir / "screenshots" / f"{capture_id}.png"
            await page.screenshot(path=str(screenshot_path), full_page=True, type="png")
        except PlaywrightError as e:
            raise TransientExternalError(f"Capture failed for {url}: {e}") from e
        finally:
            if context is not None:
                await context.close()

        logger.info(f"PDF captured: {pdf_path}")
        return CaptureResult(
            id=capture_id,
            document_path=pdf_path,
            source_url=url,
            page_index=page_index,
            screenshot_path=screenshot_path,
            timestamp=datetime.now(timezone.utc),
        )

    async def capture_pages(
        self,
        url_for_page: Callable[[int], str],
        total_pages: int,
        delay: float,
    ) -> List[CaptureResult]:
        """Capture pages 1..total_pages one at a time, skipping failures."""
        results = []
        for page_index in range(1, total_pages + 1):
            logger.info(f"Capturing page {page_index}/{total_pages}")
            try:
                results.append(await self.capture(url_for_page(page_index), page_index))
            except TransientExternalError as e:
                logger.error(f"Failed to capture page {page_index}: {e}")
            if page_index < total_pages:
                await asyncio.sleep(delay)

        logger.info(f"Multi-page capture complete: {len(results)}/{total_pages} captured")
        return results
