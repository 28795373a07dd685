"""Tests for sequential page capture (browser calls stubbed)."""
import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from agents.capture import CaptureResult, PageCapture
from errors import TransientExternalError


class TestCapturePages:
    def test_failed_pages_skipped(self, tmp_path, monkeypatch):
        capture = PageCapture(tmp_path)
        visited = []

        async def fake_capture(url, page_index=1):
            visited.append(url)
            if page_index == 2:
                raise TransientExternalError("navigation timeout")
            return CaptureResult(id=str(page_index), document_path=tmp_path / f"{page_index}.pdf",
                                 source_url=url, page_index=page_index)

        monkeypatch.setattr(capture, "capture", fake_capture)
        results = asyncio.run(capture.capture_pages(lambda n: f"https://x.gov.my/?page={n}", 3, delay=0))

        assert visited == [f"https://x.gov.my/?page={n}" for n in (1, 2, 3)]
        assert [r.page_index for r in results] == [1, 3]


class BrokenBrowser:
    """Browser stub whose context or page creation fails."""

    def __init__(self, fail_on: str):
        self.fail_on = fail_on
        self.closed_contexts = 0

    async def new_context(self, **kwargs):
        if self.fail_on == "context":
            raise PlaywrightError("Target closed")
        return self

    async def new_page(self):
        raise PlaywrightError("Target crashed")

    async def close(self):
        self.closed_contexts += 1


class TestCaptureErrors:
    def test_context_failure_is_transient(self, tmp_path):
        capture = PageCapture(tmp_path)
        capture._browser = BrokenBrowser("context")
        with pytest.raises(TransientExternalError):
            asyncio.run(capture.capture("https://x.gov.my/?page=1"))

    def test_page_failure_closes_context(self, tmp_path):
        capture = PageCapture(tmp_path)
        browser = BrokenBrowser("page")
        capture._browser = browser
        with pytest.raises(TransientExternalError):
            asyncio.run(capture.capture("https://x.gov.my/?page=1"))
        assert browser.closed_contexts == 1

    def test_browser_failures_skip_page(self, tmp_path):
        capture = PageCapture(tmp_path)
        capture._browser = BrokenBrowser("context")
        results = asyncio.run(capture.capture_pages(lambda n: f"https://x.gov.my/?page={n}", 2, delay=0))
        assert results == []
