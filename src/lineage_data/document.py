"""
Interactive document source used by the harvest.

The harvest only needs a handful of browser capabilities: navigate, wait for
a selector with a bound, select rows and cells, read text and attributes,
click, and read the current location. DocumentSource and Element describe
that surface; PlaywrightDocumentSource provides it with a headless Chromium.
Tests supply an in-memory implementation instead.
"""

import logging
import platform
from typing import Any, Protocol

from playwright.sync_api import Browser, ElementHandle, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from lineage_data.config import Settings
from lineage_data.exceptions import ExtractionError, UnsupportedEnvironmentError
from lineage_data.types import WaitResult

log = logging.getLogger(__name__)

_ARM_MACHINES = {"arm", "arm64", "aarch64", "armv7l", "armv6l"}
_X86_MACHINES = {"x86_64", "amd64", "i386", "i686", "x86"}
_SANDBOX_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]


class Element(Protocol):
    def query(self, selector: str) -> "Element | None": ...

    def query_all(self, selector: str) -> list["Element"]: ...

    def text(self) -> str: ...

    def attribute(self, name: str) -> str | None: ...

    def click(self) -> None: ...


class DocumentSource(Protocol):
    def goto(self, url: str) -> None: ...

    def wait_for(self, selector: str, timeout: float, *, hidden: bool = False) -> WaitResult: ...

    def query(self, selector: str) -> Element | None: ...

    def query_all(self, selector: str) -> list[Element]: ...

    def current_url(self) -> str: ...

    def close(self) -> None: ...


def launch_options(
    settings: Settings, system: str | None = None, machine: str | None = None
) -> dict[str, Any]:
    """
    Pick Chromium launch options for the host platform.

    Windows, macOS and x86 Linux use Playwright's bundled browser. ARM Linux
    has no bundled build, so it needs a system Chromium plus sandbox flags.
    Anything else is rejected before a browser is started.
    """
    system = system or platform.system()
    machine = (machine or platform.machine()).lower()

    if system in ("Windows", "Darwin"):
        return {"headless": settings.headless}

    if system == "Linux":
        if machine in _X86_MACHINES:
            return {"headless": settings.headless}
        if machine in _ARM_MACHINES:
            if not settings.browser_executable:
                raise UnsupportedEnvironmentError(
                    system, machine, "ARM Linux requires LINEAGE_BROWSER_EXECUTABLE"
                )
            return {
                "headless": settings.headless,
                "executable_path": settings.browser_executable,
                "args": list(_SANDBOX_ARGS),
            }

    raise UnsupportedEnvironmentError(system, machine)


class PlaywrightElement:
    def __init__(self, handle: ElementHandle):
        self._handle = handle

    def query(self, selector: str) -> Element | None:
        try:
            found = self._handle.query_selector(selector)
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to select '{selector}': {e}") from e
        return PlaywrightElement(found) if found else None

    def query_all(self, selector: str) -> list[Element]:
        try:
            found = self._handle.query_selector_all(selector)
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to select '{selector}': {e}") from e
        return [PlaywrightElement(handle) for handle in found]

    def text(self) -> str:
        try:
            content = self._handle.text_content()
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to read element text: {e}") from e
        return (content or "").strip()

    def attribute(self, name: str) -> str | None:
        try:
            return self._handle.get_attribute(name)
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to read attribute '{name}': {e}") from e

    def click(self) -> None:
        try:
            self._handle.click()
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to click element: {e}") from e


class PlaywrightDocumentSource:
    def __init__(self, playwright: Playwright, browser: Browser, page: Page):
        self._playwright = playwright
        self._browser = browser
        self._page = page
        self._closed = False

    @classmethod
    def launch(cls, options: dict[str, Any]) -> "PlaywrightDocumentSource":
        log.info("Launching Chromium (%s)", ", ".join(f"{k}={v}" for k, v in options.items()))
        playwright = sync_playwright().start()
        try:
            browser = playwright.chromium.launch(**options)
            page = browser.new_page()
        except PlaywrightError:
            playwright.stop()
            raise
        return cls(playwright, browser, page)

    def goto(self, url: str) -> None:
        log.debug("Navigating to %s", url)
        self._page.goto(url)

    def wait_for(self, selector: str, timeout: float, *, hidden: bool = False) -> WaitResult:
        state = "hidden" if hidden else "visible"
        try:
            self._page.wait_for_selector(selector, timeout=timeout * 1000, state=state)
        except PlaywrightTimeout:
            return WaitResult(selector=selector, found=False)
        except PlaywrightError as e:
            raise ExtractionError(f"Failed waiting for '{selector}': {e}") from e
        return WaitResult(selector=selector, found=True)

    def query(self, selector: str) -> Element | None:
        try:
            found = self._page.query_selector(selector)
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to select '{selector}': {e}") from e
        return PlaywrightElement(found) if found else None

    def query_all(self, selector: str) -> list[Element]:
        try:
            found = self._page.query_selector_all(selector)
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to select '{selector}': {e}") from e
        return [PlaywrightElement(handle) for handle in found]

    def current_url(self) -> str:
        return self._page.url

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._browser.close()
        finally:
            self._playwright.stop()
        log.info("Browser closed")
