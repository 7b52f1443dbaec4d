"""Headless browser rendering for JavaScript-heavy pages."""

from __future__ import annotations

import logging
import re
import threading
import time

from bs4 import BeautifulSoup
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.common.by import By
from selenium.webdriver.firefox.options import Options as FirefoxOptions
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from .constants import DEFAULT_JS_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from .context import Context
from .errors import RenderError


logger = logging.getLogger(__name__)

SPA_MARKERS = (
    re.compile(r'<div[^>]+id=["\'](?:root|app|__next|___gatsby)["\'][^>]*>\s*</div>', re.IGNORECASE),
    re.compile(r"__NEXT_DATA__"),
    re.compile(r"__NUXT__"),
    re.compile(r"\bng-version="),
    re.compile(r"data-reactroot"),
    re.compile(r"window\.__INITIAL_STATE__"),
)
MIN_STATIC_TEXT_CHARS = 200
MIN_SCRIPT_TAGS = 5


def needs_js_rendering(html: str) -> bool:
    """Heuristically decide whether a page only renders in a browser."""

    if not html:
        return False
    if any(pattern.search(html) for pattern in SPA_MARKERS):
        return True

    soup = BeautifulSoup(html, "lxml")
    scripts = len(soup.find_all("script"))
    body = soup.body
    if body is None:
        return False
    for node in body.find_all(["script", "style", "noscript"]):
        node.decompose()
    text = body.get_text(" ", strip=True)
    return scripts >= MIN_SCRIPT_TAGS and len(text) < MIN_STATIC_TEXT_CHARS


class Renderer:
    """Render pages with one shared headless browser.

    The browser instance is created lazily and every render is serialized
    with a lock, because a single WebDriver session is not safe to drive from
    several threads at once.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_JS_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        wait_selector: str | None = None,
        settle_seconds: float = 0.5,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.wait_selector = wait_selector
        self.settle_seconds = settle_seconds

        self._lock = threading.Lock()
        self._driver = None
        self._closed = False

    def render(self, url: str, *, ctx: Context | None = None) -> str:
        """Return the fully rendered HTML of ``url``."""

        if ctx is not None:
            ctx.raise_if_done()

        with self._lock:
            if self._closed:
                raise RenderError("renderer is closed")

            try:
                driver = self._get_or_create_driver()
            except Exception as exc:
                raise RenderError(f"failed to start browser: {exc}") from exc

            try:
                driver.set_page_load_timeout(max(1, int(self.timeout_seconds)))
                driver.get(url)
                if self.wait_selector:
                    WebDriverWait(driver, self.timeout_seconds).until(
                        EC.presence_of_element_located((By.CSS_SELECTOR, self.wait_selector))
                    )
                if self.settle_seconds > 0:
                    time.sleep(self.settle_seconds)
                return driver.page_source or ""
            except (TimeoutException, WebDriverException) as exc:
                raise RenderError(f"failed to render {url}: {exc.__class__.__name__}: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._driver is None:
                return
            try:
                self._driver.quit()
            except WebDriverException as exc:
                logger.debug("Ignoring browser shutdown error: %s", exc)
            finally:
                self._driver = None

    def _get_or_create_driver(self):
        if self._driver is not None:
            return self._driver

        errors: list[str] = []

        try:
            chrome_options = ChromeOptions()
            chrome_options.add_argument("--headless=new")
            chrome_options.add_argument("--disable-gpu")
            chrome_options.add_argument("--no-sandbox")
            chrome_options.add_argument("--disable-dev-shm-usage")
            chrome_options.add_argument(f"--user-agent={self.user_agent}")
            self._driver = webdriver.Chrome(options=chrome_options)
            return self._driver
        except WebDriverException as exc:
            errors.append(f"Chrome: {exc}")

        try:
            firefox_options = FirefoxOptions()
            firefox_options.add_argument("-headless")
            firefox_options.set_preference("general.useragent.override", self.user_agent)
            self._driver = webdriver.Firefox(options=firefox_options)
            return self._driver
        except WebDriverException as exc:
            errors.append(f"Firefox: {exc}")

        raise RenderError("; ".join(errors) or "no usable browser driver found")


__all__ = [
    "Renderer",
    "needs_js_rendering",
]
