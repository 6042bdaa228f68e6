"""Browser factory for fiberscope.

The chat page needs a logged-in browser profile, so by default we launch a
persistent Chromium context whose profile directory survives between runs.
The browser is opened and closed explicitly around one session.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from playwright.async_api import Page, async_playwright

_TRUTHY = {"1", "true", "yes", "on"}


def _headless() -> bool:
    return os.getenv("HEADLESS", "false").strip().lower() in _TRUTHY


@asynccontextmanager
async def open_page(url: str) -> AsyncIterator[Page]:
    """Open ``url`` in a Chromium page and close everything on exit.

    BROWSER_USER_DATA_DIR is read via python-dotenv; it holds the login
    session. Without it an ephemeral browser is used, which means scanning
    the login QR code on every run.
    """

    load_dotenv()

    user_data_dir = os.getenv("BROWSER_USER_DATA_DIR")
    headless = _headless()
    logger = logging.getLogger(__name__)

    async with async_playwright() as playwright:
        if user_data_dir:
            logger.info("Launching browser with persistent profile %s", user_data_dir)
            context = await playwright.chromium.launch_persistent_context(user_data_dir, headless=headless)
            browser = None
        else:
            logger.warning("BROWSER_USER_DATA_DIR is not set; using an ephemeral profile")
            browser = await playwright.chromium.launch(headless=headless)
            context = await browser.new_context()
        try:
            page = context.pages[0] if context.pages else await context.new_page()
            await page.goto(url)
            yield page
        finally:
            await context.close()
            if browser is not None:
                await browser.close()
