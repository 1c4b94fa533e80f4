"""
Integration tests for the Playwright gateway.

These launch a real headless Chromium and are skipped when the browser
binaries are not installed (``playwright install chromium``).
"""

import asyncio

import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError

from taskpilot.browser import BrowserConfig, BrowserController, PlaywrightGateway, PrimitiveAction

pytestmark = pytest.mark.integration

LOGIN_PAGE = """<!DOCTYPE html>
<html>
<head><title>Shop Login</title></head>
<body>
    <main>
        <h1>Welcome back</h1>
        <p>Sign in to see your orders.</p>
        <form id="login" onsubmit="event.preventDefault(); document.getElementById('status').innerText = 'Signed in';">
            <input id="user" name="user" placeholder="Email">
            <input id="pw" name="pw" type="password" value="hunter2">
            <button id="go" type="submit">Sign in</button>
        </form>
        <p id="status">Signed out</p>
        <a id="help" href="about:blank" target="_blank">Help</a>
    </main>
</body>
</html>"""


@pytest_asyncio.fixture
async def gateway(tmp_path):
    config = BrowserConfig(
        browser_type="chromium",
        headless=True,
        persist_session=False,
        sessions_dir=tmp_path,
        page_load_timeout=3000,
        navigation_timeout=3000,
    )
    browser = BrowserController(config)
    try:
        await browser.initialize()
    except PlaywrightError as e:
        await browser.close()
        pytest.skip(f"Chromium is not available: {e}")

    gateway = PlaywrightGateway(browser, new_tab_settle_seconds=0.5)
    yield gateway
    await gateway.close()


async def open_login_page(gateway: PlaywrightGateway) -> int:
    handle = await gateway.create_tab("about:blank")
    await gateway.browser.page(handle).set_content(LOGIN_PAGE)
    return handle


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_tags_interactive_elements(self, gateway):
        handle = await open_login_page(gateway)

        snapshot = await gateway.snapshot(handle)

        assert snapshot.title == "Shop Login"
        assert "Welcome back" in snapshot.main_content
        selectors = [element["selector"] for element in snapshot.interactive_elements]
        assert "[data-agent-id='1']" in selectors
        assert len(selectors) == len(set(selectors))

    @pytest.mark.asyncio
    async def test_ids_are_stable_across_snapshots(self, gateway):
        handle = await open_login_page(gateway)

        first = await gateway.snapshot(handle)
        second = await gateway.snapshot(handle)

        assert first.interactive_elements == second.interactive_elements

    @pytest.mark.asyncio
    async def test_password_value_is_not_exposed(self, gateway):
        handle = await open_login_page(gateway)

        snapshot = await gateway.snapshot(handle)

        assert "hunter2" not in snapshot.model_dump_json()


class TestExecute:

    @pytest.mark.asyncio
    async def test_type_and_submit(self, gateway):
        handle = await open_login_page(gateway)

        typed = await gateway.execute(handle, PrimitiveAction("TYPE", selector="#user", text="alice@example.com"))
        submitted = await gateway.execute(handle, PrimitiveAction("SUBMIT", selector="#user"))
        status = await gateway.execute(handle, PrimitiveAction("EXTRACT_TEXT", selector="#status"))

        assert typed.success and submitted.success
        assert status.text == "Signed in"

    @pytest.mark.asyncio
    async def test_agent_id_selector(self, gateway):
        handle = await open_login_page(gateway)
        snapshot = await gateway.snapshot(handle)
        button = next(e for e in snapshot.interactive_elements if e["tag"] == "button")

        outcome = await gateway.execute(handle, PrimitiveAction("CLICK", selector=button["selector"]))

        assert outcome.success

    @pytest.mark.asyncio
    async def test_missing_element_fails_without_raising(self, gateway):
        handle = await open_login_page(gateway)

        outcome = await gateway.execute(handle, PrimitiveAction("CLICK", selector="#does-not-exist"))

        assert not outcome.success
        assert outcome.error

    @pytest.mark.asyncio
    async def test_click_reports_new_tab(self, gateway):
        handle = await open_login_page(gateway)

        outcome = await gateway.execute(handle, PrimitiveAction("CLICK", selector="#help"))

        assert outcome.success
        assert outcome.opened_tab is not None
        assert outcome.opened_tab != handle
        assert await gateway.tab_url(outcome.opened_tab) == "about:blank"


class TestLearning:

    @pytest.mark.asyncio
    async def test_user_actions_are_recorded(self, gateway):
        recorded = []
        gateway.set_recorder(recorded.append)
        handle = await open_login_page(gateway)

        await gateway.start_learning(handle)
        page = gateway.browser.page(handle)
        await page.fill("#pw", "s3cret")
        await page.click("#user")
        await asyncio.sleep(0.3)
        await gateway.stop_learning(handle)

        actions = [entry["action"] for entry in recorded]
        assert "CLICK" in actions
        typed = [entry for entry in recorded if entry["action"] == "TYPE"]
        assert all(entry["text"] == "" for entry in typed if entry.get("redacted"))
        assert "s3cret" not in repr(recorded)

    @pytest.mark.asyncio
    async def test_nothing_recorded_after_stop(self, gateway):
        recorded = []
        gateway.set_recorder(recorded.append)
        handle = await open_login_page(gateway)

        await gateway.start_learning(handle)
        await gateway.stop_learning(handle)
        await gateway.browser.page(handle).click("#user")
        await asyncio.sleep(0.3)

        assert recorded == []
