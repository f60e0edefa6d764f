"""End-to-end runs against a real headless Chromium; skipped when none can launch."""

import asyncio
from urllib.parse import quote

import pytest

from actionkit.service import PipelineService
from fakes import fast_config
from pagerunner.errors import ActionFailed, SelectorTimeout

HEADING_PAGE = "data:text/html," + quote("<html><body><h1>Hello</h1></body></html>")
BUTTON_PAGE = "data:text/html," + quote(
    "<html><body>"
    "<div style='width:40px;height:40px;background:red'></div>"
    "<button id='go' onclick=\"document.title='clicked'\">Go</button>"
    "</body></html>"
)
LADDER_PAGE = "data:text/html," + quote(
    "<!doctype html><html><body>"
    "<button id='go'>Go</button>"
    "<button data-testid='save'>Save</button>"
    "<input name='email'>"
    "<input type='submit' value='Send'>"
    "<div id='dialogs'>"
    "<span class='modal-window' onclick='void 0'>First</span>"
    "<span class='modal-window open' onclick='void 0'>Second</span>"
    "</div>"
    "<div role='tab'>Tab</div>"
    "<ul><li data-id='42' onclick='void 0'>Item</li></ul>"
    "<section id='dup'><b onclick='void 0'>A</b></section>"
    "<section id='dup'><b onclick='void 0' data-pr-id='abc'>B</b></section>"
    "<section id='dup'><b onclick='void 0' data-pr-id='abc'>C</b></section>"
    "<input type='text' name='ghost' style='pointer-events:none'>"
    "</body></html>"
)


def _service():
    return PipelineService(
        config=fast_config(
            interactive_selector_timeout_ms=3000,
            read_selector_timeout_ms=3000,
            body_idle_timeout_ms=500,
            dom_update_timeout_ms=500,
        )
    )


def _run(scenario):
    async def wrapper():
        service = _service()
        try:
            try:
                await service.execute_steps([], force_new_instance=True)
            except Exception as exc:
                return exc, None
            return None, await scenario(service)
        finally:
            await service.close_all()

    launch_error, result = asyncio.run(wrapper())
    if launch_error is not None:
        pytest.skip(f"Chromium unavailable: {launch_error}")
    return result


def test_read_heading_text():
    async def scenario(service):
        return await service.execute_steps(
            [
                {"action": "go", "url": HEADING_PAGE},
                {"action": "waitForSelector", "selector": "h1"},
                {"action": "getText", "selector": "h1"},
            ]
        )

    outcome = _run(scenario)
    assert outcome.result == "Hello"
    assert outcome.history_length == 3


def test_body_content_lists_single_clickable_button():
    async def scenario(service):
        outcome = await service.execute_steps([{"action": "go", "url": BUTTON_PAGE}, {"action": "getBodyContent"}])
        clicked = await service.execute_more_steps(
            outcome.instance_id,
            [{"action": "click", "selector": "#go"}, {"action": "evaluate", "fn": "() => document.title"}],
        )
        return outcome, clicked

    outcome, clicked = _run(scenario)
    body = outcome.result
    assert [element.selector for element in body.elements] == ["#go"]
    assert body.elements[0].type == "clickable"
    assert 'data-stable-selector="#go"' in body.content
    assert "style" not in body.content
    assert clicked.result == "clicked"


def test_missing_selector_fails_with_timeout():
    async def scenario(service):
        with pytest.raises(ActionFailed) as excinfo:
            await service.execute_steps(
                [{"action": "go", "url": HEADING_PAGE}, {"action": "click", "selector": "#nothing"}]
            )
        return excinfo.value

    failure = _run(scenario)
    assert isinstance(failure.__cause__, SelectorTimeout)
    assert failure.url.startswith("data:text/html")


def test_two_instances_navigate_concurrently():
    async def scenario(service):
        first = await service.execute_steps([], force_new_instance=True)
        second = await service.execute_steps([], force_new_instance=True)
        return await asyncio.gather(
            service.execute_more_steps(
                first.instance_id, [{"action": "go", "url": HEADING_PAGE}, {"action": "getText", "selector": "h1"}]
            ),
            service.execute_more_steps(
                second.instance_id, [{"action": "go", "url": BUTTON_PAGE}, {"action": "getText", "selector": "#go"}]
            ),
        )

    first, second = _run(scenario)
    assert first.result == "Hello"
    assert second.result == "Go"
    assert first.instance_id != second.instance_id


def test_selector_ladder_yields_unique_selectors():
    async def scenario(service):
        outcome = await service.execute_steps([{"action": "go", "url": LADDER_PAGE}, {"action": "getClickableElements"}])
        writeable = await service.execute_more_steps(outcome.instance_id, [{"action": "getWriteableElements"}])
        selectors = [element.selector for element in outcome.result + writeable.result]
        counts = await service.execute_more_steps(
            outcome.instance_id,
            [
                {
                    "action": "evaluate",
                    "fn": "(selectors) => selectors.map((s) => document.querySelectorAll(s).length)",
                    "args": [selectors],
                }
            ],
        )
        return outcome.result, writeable.result, counts.result

    clickable, writeable, counts = _run(scenario)
    clickable_selectors = [element.selector for element in clickable]
    assert clickable_selectors[:4] == [
        "#go",
        '[data-testid="save"]',
        'input[type="submit"][value="Send"]',
        "span:nth-of-type(1)",
    ]
    assert "span.modal-window.open" in clickable_selectors
    assert 'div[role="tab"]' in clickable_selectors
    assert 'li[data-id="42"]' in clickable_selectors
    markers = [selector for selector in clickable_selectors if selector.startswith("[data-pr-id=")]
    assert len(markers) == 3
    assert len(set(markers)) == 3
    assert [element.selector for element in writeable] == ['input[name="email"]']
    assert not any("ghost" in element.selector for element in clickable + writeable)
    assert counts == [1] * len(clickable + writeable)


def test_write_on_missing_selector_fails_before_typing():
    async def scenario(service):
        with pytest.raises(ActionFailed) as excinfo:
            await service.execute_steps(
                [
                    {"action": "go", "url": LADDER_PAGE},
                    {"action": "write", "selector": "#nothing", "text": "hello"},
                ]
            )
        value = await service.execute_steps([{"action": "getValue", "selector": "input[name='email']"}])
        return excinfo.value, value

    failure, value = _run(scenario)
    assert isinstance(failure.__cause__, SelectorTimeout)
    assert value.result == ""
