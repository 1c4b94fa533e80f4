"""
Playwright Gateway

EnvironmentGateway implementation on top of BrowserController.

- Snapshots tag interactive elements with ``data-agent-id`` so the Manager
  can address them with ``[data-agent-id='N']`` selectors
- CLICK/SUBMIT watch the context for new pages and report them as
  ``opened_tab``
- Learning mode reports user clicks, text entry and form submits through
  an exposed binding
- SEARCH_PAGE embeds three-sentence chunks of the page and ranks them
  against the query
"""

import asyncio
import logging
import re
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..knowledge.embeddings import Embedder, EmbeddingError, batch_cosine_similarity
from .cache import EmbeddedChunks, PageChunkCache
from .controller import BrowserController
from .gateway import (
    FALLBACK_TEXT_CHARS,
    ActionOutcome,
    EnvironmentGateway,
    GatewayError,
    PageSnapshot,
    PrimitiveAction,
    RecordedActionCallback,
)

logger = logging.getLogger(__name__)

AGENT_ID_SELECTOR = re.compile(r"\[\s*agent-id\s*=")
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
CHUNK_SENTENCES = 3
RECORD_BINDING = "__taskpilotRecord"

SNAPSHOT_SCRIPT = """
() => {
    const interactiveSelector = 'a[href], button, input, textarea, select, [role="button"], [role="link"], [onclick], [contenteditable="true"]';
    const visible = (el) => {
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return rect.width > 0 && rect.height > 0 && style.visibility !== 'hidden' && style.display !== 'none';
    };
    let nextId = 1;
    document.querySelectorAll('[data-agent-id]').forEach((el) => {
        const id = parseInt(el.getAttribute('data-agent-id'), 10);
        if (!isNaN(id) && id >= nextId) nextId = id + 1;
    });
    const elements = [];
    document.querySelectorAll(interactiveSelector).forEach((el) => {
        if (!visible(el)) return;
        let id = el.getAttribute('data-agent-id');
        if (!id) {
            id = String(nextId++);
            el.setAttribute('data-agent-id', id);
        }
        elements.push({
            id: id,
            selector: `[data-agent-id='${id}']`,
            tag: el.tagName.toLowerCase(),
            type: el.getAttribute('type') || undefined,
            text: (el.innerText || (el.type === 'password' ? '' : el.value) || '').trim().slice(0, 100),
            placeholder: el.getAttribute('placeholder') || undefined,
            ariaLabel: el.getAttribute('aria-label') || undefined,
            href: el.getAttribute('href') || undefined,
        });
    });
    const main = document.querySelector('main, article, [role="main"]') || document.body;
    const images = Array.from(document.images)
        .filter((img) => img.alt && visible(img))
        .map((img) => ({ src: img.currentSrc || img.src, alt: img.alt }));
    return {
        url: location.href,
        title: document.title,
        main_content: main ? main.innerText : '',
        interactive_elements: elements,
        images: images,
    };
}
"""

RECORDER_SCRIPT = """
(() => {
    if (window.__taskpilotRecorderInstalled) return;
    window.__taskpilotRecorderInstalled = true;
    const selectorFor = (el) => {
        if (el.getAttribute && el.getAttribute('data-agent-id')) {
            return `[data-agent-id='${el.getAttribute('data-agent-id')}']`;
        }
        if (el.id) return `#${CSS.escape(el.id)}`;
        if (el.name) return `${el.tagName.toLowerCase()}[name="${el.name}"]`;
        return el.tagName ? el.tagName.toLowerCase() : 'body';
    };
    const send = (payload) => {
        if (window.%(binding)s) window.%(binding)s(payload);
    };
    document.addEventListener('click', (event) => {
        const el = event.target.closest('a, button, input, [role="button"], [role="link"]') || event.target;
        send({ action: 'CLICK', selector: selectorFor(el), text: (el.innerText || '').trim().slice(0, 100) });
    }, true);
    document.addEventListener('change', (event) => {
        const el = event.target;
        if (!('value' in el)) return;
        const secret = el.type === 'password';
        send({ action: 'TYPE', selector: selectorFor(el), text: secret ? '' : el.value, redacted: secret });
    }, true);
    document.addEventListener('submit', (event) => {
        send({ action: 'SUBMIT', selector: selectorFor(event.target) });
    }, true);
})();
""" % {"binding": RECORD_BINDING}


def normalize_selector(selector: str) -> str:
    """Rewrite ``[agent-id=...]`` to the attribute snapshots actually set."""
    return AGENT_ID_SELECTOR.sub("[data-agent-id=", selector)


def chunk_sentences(text: str, size: int = CHUNK_SENTENCES) -> list[str]:
    sentences = [s.strip() for s in SENTENCE_SPLIT.split(text) if s.strip()]
    return [" ".join(sentences[i:i + size]) for i in range(0, len(sentences), size)]


class PlaywrightGateway(EnvironmentGateway):
    """
    Browser gateway backed by Playwright.

    Usage:
        >>> gateway = PlaywrightGateway(BrowserController(config))
        >>> handle = await gateway.create_tab("https://example.com")
        >>> snapshot = await gateway.snapshot(handle)
    """

    def __init__(
        self,
        browser: BrowserController,
        embedder: Optional[Embedder] = None,
        new_tab_settle_seconds: float = 1.5,
        chunk_cache: Optional[PageChunkCache] = None,
    ):
        self.browser = browser
        self.embedder = embedder
        self.new_tab_settle_seconds = new_tab_settle_seconds
        self.chunk_cache = chunk_cache or PageChunkCache()
        self._recorder: Optional[RecordedActionCallback] = None
        self._learning: set[int] = set()
        self._binding_installed = False

    async def _page(self, handle: int) -> Page:
        if not self.browser.is_initialized:
            await self.browser.initialize()
        try:
            return self.browser.page(handle)
        except KeyError as e:
            raise GatewayError(str(e)) from e

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    async def snapshot(self, handle: int) -> PageSnapshot:
        page = await self._page(handle)
        try:
            raw = await page.evaluate(SNAPSHOT_SCRIPT)
        except PlaywrightError as e:
            raise GatewayError(f"Snapshot failed: {e}") from e
        return PageSnapshot.model_validate(raw)

    async def semantic_search(self, handle: int, query: str, top_k: int = 5) -> list[str]:
        page = await self._page(handle)
        try:
            text = await page.inner_text("body")
        except PlaywrightError as e:
            raise GatewayError(f"Could not read page text: {e}") from e

        if self.embedder is None:
            return [text[:FALLBACK_TEXT_CHARS]]

        try:
            embedded = await self.chunk_cache.get_or_set(
                key=PageChunkCache.key(page.url, text),
                compute_fn=lambda: self._embed_chunks(text),
            )
            if not embedded.chunks:
                return [text[:FALLBACK_TEXT_CHARS]]
            query_vector = (await self.embedder.embed([query]))[0]
        except EmbeddingError as e:
            logger.warning("Semantic search fell back to raw text: %s", e)
            return [text[:FALLBACK_TEXT_CHARS]]

        scores = batch_cosine_similarity(query_vector, embedded.vectors)
        ranked = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)
        return [embedded.chunks[i] for i in ranked[:top_k]]

    async def _embed_chunks(self, text: str) -> EmbeddedChunks:
        chunks = chunk_sentences(text)
        vectors = await self.embedder.embed(chunks) if chunks else []
        return EmbeddedChunks(chunks=chunks, vectors=vectors)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def execute(self, handle: int, action: PrimitiveAction) -> ActionOutcome:
        try:
            page = await self._page(handle)
            selector = normalize_selector(action.selector) if action.selector else None

            if action.action == "CLICK":
                return await self._watch_new_tab(page.click(selector))
            if action.action == "SUBMIT":
                return await self._watch_new_tab(self._submit(page, selector))
            if action.action == "TYPE":
                await page.fill(selector, action.text or "")
                return ActionOutcome(success=True)
            if action.action == "GOTO":
                await page.goto(action.url, wait_until="domcontentloaded")
                return ActionOutcome(success=True)
            if action.action == "SCROLL_DOWN":
                await page.mouse.wheel(0, 800)
                return ActionOutcome(success=True)
            if action.action == "PRESS_ESCAPE":
                await page.keyboard.press("Escape")
                return ActionOutcome(success=True)
            if action.action == "EXTRACT_TEXT":
                text = await page.inner_text(selector or "body")
                return ActionOutcome(success=True, text=text)
            return ActionOutcome(success=False, error=f"Unsupported primitive: {action.action}")

        except PlaywrightTimeoutError:
            return ActionOutcome(success=False, error=f"Timed out on {action.action} {action.selector or action.url or ''}".strip())
        except (PlaywrightError, GatewayError) as e:
            return ActionOutcome(success=False, error=f"{action.action} failed: {e}")

    async def _submit(self, page: Page, selector: Optional[str]) -> None:
        """Submit the form owning the element, or press Enter in it."""
        target = page.locator(selector or "form").first
        submitted = await target.evaluate(
            """(el) => {
                const form = el.tagName === 'FORM' ? el : el.form || el.closest('form');
                if (!form) return false;
                if (form.requestSubmit) form.requestSubmit(); else form.submit();
                return true;
            }"""
        )
        if not submitted:
            await target.press("Enter")

    async def _watch_new_tab(self, operation) -> ActionOutcome:
        """Run an operation and register any page it opened."""
        before = set(self.browser.open_pages())
        await operation
        await asyncio.sleep(self.new_tab_settle_seconds)

        opened = [page for page in self.browser.open_pages() if page not in before]
        if not opened:
            return ActionOutcome(success=True)

        page = opened[-1]
        try:
            await page.wait_for_load_state("domcontentloaded")
        except PlaywrightTimeoutError:
            logger.debug("New tab still loading: %s", page.url)
        handle = self.browser.register(page)
        logger.info("Action opened a new tab: %s", page.url)
        return ActionOutcome(success=True, opened_tab=handle)

    # -------------------------------------------------------------------------
    # Tabs
    # -------------------------------------------------------------------------

    async def create_tab(self, url: str) -> int:
        try:
            handle = await self.browser.new_tab(url)
        except PlaywrightError as e:
            raise GatewayError(f"Could not open {url}: {e}") from e
        if self._binding_installed:
            await self._install_recorder(self.browser.page(handle))
        return handle

    async def switch_tab(self, handle: int) -> None:
        await self._page(handle)
        await self.browser.bring_to_front(handle)

    async def wait_for_load(self, handle: int) -> None:
        page = await self._page(handle)
        try:
            await page.wait_for_load_state("load")
        except PlaywrightTimeoutError as e:
            raise GatewayError(f"Tab {handle} did not finish loading") from e

    async def current_tab(self) -> Optional[int]:
        if not self.browser.is_initialized:
            return None
        return self.browser.front_handle

    async def tab_url(self, handle: int) -> Optional[str]:
        return (await self._page(handle)).url

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def set_recorder(self, callback: Optional[RecordedActionCallback]) -> None:
        self._recorder = callback

    async def start_learning(self, handle: int) -> None:
        page = await self._page(handle)
        if not self._binding_installed:
            await self.browser.context.expose_binding(RECORD_BINDING, self._on_recorded)
            await self.browser.context.add_init_script(RECORDER_SCRIPT)
            self._binding_installed = True
        await self._install_recorder(page)
        self._learning.add(handle)
        logger.info("Learning started on tab %s", handle)

    async def stop_learning(self, handle: int) -> None:
        self._learning.discard(handle)
        logger.info("Learning stopped on tab %s", handle)

    async def _install_recorder(self, page: Page) -> None:
        try:
            await page.evaluate(RECORDER_SCRIPT)
        except PlaywrightError as e:
            logger.debug("Recorder not installed on %s: %s", page.url, e)

    async def _on_recorded(self, source: dict[str, Any], payload: dict[str, Any]) -> None:
        handle = self.browser.handle_of(source["page"])
        if handle not in self._learning or self._recorder is None:
            return
        result = self._recorder({**payload, "url": source["page"].url})
        if asyncio.iscoroutine(result):
            await result

    async def close(self) -> None:
        await self.browser.close()
