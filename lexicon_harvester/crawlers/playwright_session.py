"""
Playwright-backed shared session: one headless browser per epoch, one page
per attempt.
"""

from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from config import BrowserConfig
from lexicon_harvester.pipeline.interfaces import Handle, SessionProvider, SharedSession
from lexicon_harvester.utils.errors import SessionError
from lexicon_harvester.utils.logging import get_business_logger


logger = get_business_logger('session_pool')

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--no-first-run',
    '--no-zygote',
    '--disable-gpu',
    '--disable-blink-features=AutomationControlled',
    '--disable-extensions',
    '--disable-default-apps'
]

BLOCKED_RESOURCE_TYPES = {"image", "media", "font"}


class PageHandle(Handle):
    """A single browser tab lent to one extraction attempt."""

    def __init__(self, page: Page):
        self.page = page
        self._released = False

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        if not self.page.is_closed():
            await self.page.close()


class PlaywrightSession(SharedSession):
    """Browser, context and driver of one epoch."""

    def __init__(self, playwright: Playwright, browser: Browser, context: BrowserContext):
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.pages_opened = 0

    async def borrow(self) -> PageHandle:
        page = await self.context.new_page()
        self.pages_opened += 1
        return PageHandle(page)

    async def close(self) -> None:
        """Close context, browser and driver; each step is attempted even if an earlier one fails."""
        try:
            await self.context.close()
        except Exception as e:
            logger.warning(f"Error while closing browser context: {e}")

        try:
            await self.browser.close()
        except Exception as e:
            logger.warning(f"Error while closing browser: {e}")

        try:
            await self.playwright.stop()
        except Exception as e:
            logger.warning(f"Error while stopping Playwright: {e}")

        logger.info(f"Browser closed after {self.pages_opened} pages")


class PlaywrightSessionProvider(SessionProvider):
    """Launches a fresh Chromium for every epoch."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()

    async def acquire_session(self) -> PlaywrightSession:
        """
        Launch the browser and create a context.

        Raises:
            SessionError: If the browser cannot be started
        """
        cfg = self.config
        playwright = await async_playwright().start()

        try:
            browser = await playwright.chromium.launch(
                headless=cfg.headless,
                args=BROWSER_ARGS
            )
            context = await browser.new_context(
                user_agent=cfg.user_agent,
                viewport={'width': cfg.viewport_width, 'height': cfg.viewport_height},
                locale=cfg.locale,
                extra_http_headers={
                    'Accept-Language': cfg.accept_language,
                    'DNT': '1',
                    'Upgrade-Insecure-Requests': '1'
                }
            )
            context.set_default_timeout(cfg.page_timeout_ms)
            context.set_default_navigation_timeout(cfg.page_timeout_ms)

            if cfg.block_heavy_resources:
                await context.route("**/*", _block_heavy_resources)

        except Exception as e:
            await playwright.stop()
            raise SessionError(
                "Failed to initialize Playwright browser",
                {"error": str(e), "headless": cfg.headless}
            ) from e

        logger.info(f"Browser started (headless={cfg.headless}, block_heavy={cfg.block_heavy_resources})")
        return PlaywrightSession(playwright, browser, context)


async def _block_heavy_resources(route, request) -> None:
    if request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()
