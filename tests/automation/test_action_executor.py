import io
import random
from typing import Any

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ero_automation.automation.actions import Click, Hover, Input, MatchField, Scroll, Select, Unknown, Wait
from ero_automation.automation.conditions import parse_condition
from ero_automation.automation.errors import ActionError, SurfaceClosedError
from ero_automation.automation.executor import ActionExecutor, PacingPolicy
from ero_automation.common.json_logger import JsonLogger


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str, index: int = 0) -> None:
        self.page = page
        self.selector = selector
        self.index = index

    @property
    def _elements(self) -> list[dict[str, Any]]:
        return self.page.elements.get(self.selector, [])

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self.page, self.selector, 0)

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self.page, self.selector, index)

    async def count(self) -> int:
        return len(self._elements)

    def locator(self, selector: str) -> "FakeChildLocator":
        return FakeChildLocator(self._elements[self.index].get("children", {}).get(selector))

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        self.page.calls.append(("wait_for", self.selector, state))
        if self.page.raise_on_wait is not None:
            raise self.page.raise_on_wait
        if not self._elements:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.selector}")

    async def text_content(self, timeout: float | None = None) -> str:
        return self._elements[self.index].get("text", "")

    async def click(self, timeout: float | None = None) -> None:
        self.page.calls.append(("click", self.selector, self.index))

    async def fill(self, value: str, timeout: float | None = None) -> None:
        self.page.calls.append(("fill", self.selector, value))

    async def select_option(self, value: str, timeout: float | None = None) -> None:
        self.page.calls.append(("select", self.selector, value))

    async def hover(self, timeout: float | None = None) -> None:
        self.page.calls.append(("hover", self.selector, self.index))

    async def scroll_into_view_if_needed(self, timeout: float | None = None) -> None:
        self.page.calls.append(("scroll", self.selector, self.index))


class FakeChildLocator:
    def __init__(self, text: str | None) -> None:
        self.text = text

    @property
    def first(self) -> "FakeChildLocator":
        return self

    async def count(self) -> int:
        return 0 if self.text is None else 1

    async def text_content(self, timeout: float | None = None) -> str | None:
        return self.text


class FakePage:
    def __init__(self, elements: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.elements = elements or {}
        self.calls: list[tuple] = []
        self.waits: list[int] = []
        self.url = "https://depot.example.com/home"
        self.raise_on_wait: BaseException | None = None

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def wait_for_load_state(self, state: str, timeout: float | None = None) -> None:
        self.calls.append(("load_state", state))
        raise PlaywrightTimeoutError("network never idled")

    async def wait_for_timeout(self, timeout: float) -> None:
        self.waits.append(timeout)


def _executor(**kwargs: Any) -> ActionExecutor:
    logger = JsonLogger(stream=io.StringIO(), log_file_path=None)
    return ActionExecutor(logger, timeout_ms=50, **kwargs)


@pytest.mark.asyncio
async def test_input_resolves_data_paths_and_absent_values_fill_empty() -> None:
    page = FakePage({"#user": [{}], "#note": [{}]})
    executor = _executor()
    data = {"account": {"username": "op1"}, "QTY": 2.0}

    await executor.execute(page, Input(selector="#user", value="data.account.username"), data)
    await executor.execute(page, Input(selector="#note", value="data.account.missing"), data)
    await executor.execute(page, Select(selector="#note", value="data.QTY"), data)

    fills = [call for call in page.calls if call[0] in {"fill", "select"}]
    assert fills == [("fill", "#user", "op1"), ("fill", "#note", ""), ("select", "#note", "2")]


@pytest.mark.asyncio
async def test_click_settles_and_swallows_network_idle_timeout() -> None:
    page = FakePage({"#go": [{}]})

    assert await _executor().execute(page, Click(selector="#go", print_url=True), {}) is True
    assert ("click", "#go", 0) in page.calls
    assert ("load_state", "networkidle") in page.calls


@pytest.mark.asyncio
async def test_false_condition_skips_action() -> None:
    page = FakePage({"#go": [{}]})
    spec = Click(selector="#go", condition=parse_condition("ORDER_TYPE == 'EXPORT'"))

    assert await _executor().execute(page, spec, {"ORDER_TYPE": "IMPORT"}) is False
    assert page.calls == []


@pytest.mark.asyncio
async def test_missing_element_raises_action_error() -> None:
    page = FakePage()

    with pytest.raises(ActionError) as excinfo:
        await _executor().execute(page, Click(selector="#missing"), {})

    assert excinfo.value.kind == "click"
    assert excinfo.value.selector == "#missing"
    assert excinfo.value.reason == "element not found within 50ms"


@pytest.mark.asyncio
async def test_closed_page_raises_surface_closed() -> None:
    page = FakePage({"#go": [{}]})
    page.raise_on_wait = RuntimeError("Target page, context or browser has been closed")

    with pytest.raises(SurfaceClosedError):
        await _executor().execute(page, Click(selector="#go"), {})


@pytest.mark.asyncio
async def test_match_field_picks_row_whose_text_contains_value() -> None:
    rows = [
        {"children": {"td.ro": "RO-100"}},
        {"children": {"td.ro": "RO-200"}},
        {"children": {"td.ro": "RO-300"}},
    ]
    page = FakePage({"tr.row": rows})
    spec = Click(
        selector="tr.row",
        first_only=True,
        match_field=MatchField(field_key="releaseOrderNumber", selector="td.ro"),
    )

    await _executor().execute(page, spec, {"releaseOrderNumber": "RO-200"})

    assert ("click", "tr.row", 1) in page.calls


@pytest.mark.asyncio
async def test_match_field_without_match_falls_back_to_first() -> None:
    page = FakePage({"li": [{"text": "alpha"}, {"text": "beta"}]})
    spec = Hover(selector="li", match_field=MatchField(field_key="name"))

    await _executor().execute(page, spec, {"name": "gamma"})

    assert ("hover", "li", 0) in page.calls


@pytest.mark.asyncio
async def test_scroll_waits_for_attached_and_wait_only_waits() -> None:
    page = FakePage({"#footer": [{}]})
    executor = _executor()

    await executor.execute(page, Scroll(selector="#footer"), {})
    await executor.execute(page, Wait(selector="#footer"), {})

    assert page.calls == [
        ("wait_for", "#footer", "attached"),
        ("scroll", "#footer", 0),
        ("wait_for", "#footer", "visible"),
    ]


@pytest.mark.asyncio
async def test_unknown_kind_is_a_no_op() -> None:
    page = FakePage()

    assert await _executor().execute(page, Unknown(selector="#x", raw_kind="drag"), {}) is True
    assert page.calls == []


@pytest.mark.asyncio
async def test_pause_uses_explicit_delay_or_random_range() -> None:
    page = FakePage()
    executor = _executor(pacing=PacingPolicy(min_ms=100, max_ms=200), rng=random.Random(7))

    await executor.pause(page, Click(selector="#a", delay_ms=1500))
    await executor.pause(page, Click(selector="#a"))

    assert page.waits[0] == 1500
    assert 100 <= page.waits[1] < 200


def test_pacing_policy_disabled_and_degenerate_range() -> None:
    spec = Click(selector="#a")

    assert PacingPolicy(enabled=False).next_delay_ms(spec) == 0
    assert PacingPolicy(min_ms=300, max_ms=300).next_delay_ms(spec) == 300
