"""
Browser Controller

Manages the Playwright browser instance and a registry of tabs addressed
by integer handles. Session persistence keeps cookies and logins between
runs in a persistent context.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)

BrowserType = Literal["chromium", "firefox", "webkit"]


@dataclass
class BrowserConfig:
    """
    Configuration for the browser instance.

    Reads from environment variables with sensible defaults.
    """

    browser_type: BrowserType = "chromium"

    # Visible browser by default so the user can take over
    headless: bool = False

    viewport_width: int = 1280
    viewport_height: int = 720

    # Slow motion delay in ms (useful for debugging)
    slow_mo: int = 0

    sessions_dir: Path = field(default_factory=lambda: Path(".browser-sessions"))
    persist_session: bool = True

    # Timeouts in ms
    page_load_timeout: int = 30000
    navigation_timeout: int = 30000

    @classmethod
    def from_env(cls) -> "BrowserConfig":
        """
        Create BrowserConfig from environment variables.

        Environment variables:
            BROWSER_TYPE: chromium, firefox, or webkit (default: chromium)
            BROWSER_HEADLESS: true/false (default: false)
            BROWSER_VIEWPORT_WIDTH: int (default: 1280)
            BROWSER_VIEWPORT_HEIGHT: int (default: 720)
            BROWSER_SLOW_MO: int in ms (default: 0)
            SESSIONS_DIR: path (default: .browser-sessions)
            SESSION_PERSIST: true/false (default: true)
            PAGE_LOAD_TIMEOUT: int in ms (default: 30000)
            NAVIGATION_TIMEOUT: int in ms (default: 30000)
        """
        browser_type_map = {
            "chrome": "chromium",
            "chromium": "chromium",
            "firefox": "firefox",
            "webkit": "webkit",
            "safari": "webkit",
        }
        browser_type = browser_type_map.get(os.getenv("BROWSER_TYPE", "chromium").lower(), "chromium")

        return cls(
            browser_type=browser_type,
            headless=os.getenv("BROWSER_HEADLESS", "false").lower() in ("true", "1", "yes"),
            viewport_width=int(os.getenv("BROWSER_VIEWPORT_WIDTH", "1280")),
            viewport_height=int(os.getenv("BROWSER_VIEWPORT_HEIGHT", "720")),
            slow_mo=int(os.getenv("BROWSER_SLOW_MO", "0")),
            sessions_dir=Path(os.getenv("SESSIONS_DIR", ".browser-sessions")),
            persist_session=os.getenv("SESSION_PERSIST", "true").lower() in ("true", "1", "yes"),
            page_load_timeout=int(os.getenv("PAGE_LOAD_TIMEOUT", "30000")),
            navigation_timeout=int(os.getenv("NAVIGATION_TIMEOUT", "30000")),
        )


class BrowserController:
    """
    Owns Playwright, the browser context and the tab registry.

    Usage:
        >>> async with BrowserController(config) as browser:
        ...     handle = await browser.new_tab("https://example.com")
        ...     page = browser.page(handle)
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig.from_env()

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._tabs: dict[int, Page] = {}
        self._next_handle = 1
        self._front: Optional[int] = None
        self._startup_page: Optional[Page] = None

    @property
    def is_initialized(self) -> bool:
        return self._context is not None

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser not initialized")
        return self._context

    @property
    def front_handle(self) -> Optional[int]:
        """Handle of the tab most recently brought to the front."""
        return self._front if self._front in self._tabs else None

    async def initialize(self) -> None:
        """
        Start Playwright and launch the browser.

        Uses a persistent context when session persistence is enabled.
        Pages that already exist are registered as tabs.
        """
        if self._playwright is not None:
            return

        self._playwright = await async_playwright().start()
        launcher = self._get_browser_launcher()

        launch_options = {
            "headless": self.config.headless,
            "slow_mo": self.config.slow_mo,
        }
        viewport = {
            "width": self.config.viewport_width,
            "height": self.config.viewport_height,
        }

        if self.config.persist_session:
            self.config.sessions_dir.mkdir(parents=True, exist_ok=True)
            user_data_dir = str(self.config.sessions_dir / self.config.browser_type)
            self._context = await launcher.launch_persistent_context(
                user_data_dir,
                **launch_options,
                viewport=viewport,
            )
        else:
            self._browser = await launcher.launch(**launch_options)
            self._context = await self._browser.new_context(viewport=viewport)

        self._context.set_default_timeout(self.config.page_load_timeout)
        self._context.set_default_navigation_timeout(self.config.navigation_timeout)

        for page in self._context.pages:
            self.register(page)
        blank = [page for page in self._context.pages if page.url in ("about:blank", "")]
        self._startup_page = blank[0] if blank else None

    def _get_browser_launcher(self):
        if self._playwright is None:
            raise RuntimeError("Playwright not initialized")

        launchers = {
            "chromium": self._playwright.chromium,
            "firefox": self._playwright.firefox,
            "webkit": self._playwright.webkit,
        }
        return launchers.get(self.config.browser_type, self._playwright.chromium)

    def register(self, page: Page) -> int:
        """Give a page a handle (idempotent)."""
        existing = self.handle_of(page)
        if existing is not None:
            return existing
        handle = self._next_handle
        self._next_handle += 1
        self._tabs[handle] = page
        self._front = handle
        page.on("close", lambda _: self._tabs.pop(handle, None))
        return handle

    def handle_of(self, page: Page) -> Optional[int]:
        for handle, known in self._tabs.items():
            if known is page:
                return handle
        return None

    def page(self, handle: int) -> Page:
        """
        Page for a handle.

        Raises:
            KeyError: Unknown or closed tab
        """
        page = self._tabs.get(handle)
        if page is None or page.is_closed():
            raise KeyError(f"No open tab with handle {handle}")
        return page

    def open_pages(self) -> list[Page]:
        return [page for page in self.context.pages if not page.is_closed()]

    async def new_tab(self, url: Optional[str] = None) -> int:
        """Open a page (optionally navigating it) and return its handle."""
        if self._context is None:
            await self.initialize()

        # The blank page a fresh context starts with is used once
        if self._startup_page is not None and not self._startup_page.is_closed():
            page, self._startup_page = self._startup_page, None
        else:
            page = await self.context.new_page()
        handle = self.register(page)
        if url:
            await page.goto(url, wait_until="domcontentloaded")
        await self.bring_to_front(handle)
        return handle

    async def bring_to_front(self, handle: int) -> None:
        await self.page(handle).bring_to_front()
        self._front = handle

    async def close(self) -> None:
        """Close the browser and release Playwright."""
        self._tabs.clear()

        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug("Context close failed: %s", e)
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug("Browser close failed: %s", e)
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "BrowserController":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_browser(config: Optional[BrowserConfig] = None) -> BrowserController:
    """
    Factory function to create a browser controller.

    Args:
        config: Browser configuration (uses env if None)

    Returns:
        BrowserController instance (not yet initialized)
    """
    return BrowserController(config)
