import asyncio

import pytest

from actionkit.dsl.results import BodyContent, ElementInfo
from fakes import FakeElement, FakePage, fast_config, make_instance
from pagerunner.errors import ActionFailed, InvalidSelector, PipelineTimeout, SelectorTimeout
from pagerunner.events import ACTION_END, ACTION_ERROR, ACTION_START, EventBus
from pagerunner.executor import ActionRunner, PipelineState, normalise_url
from pagerunner.page_stability import NetworkTracker


def _runner(**overrides):
    bus = EventBus()
    events = []
    bus.on("*", events.append)
    return ActionRunner(bus=bus, config=fast_config(**overrides)), events


def _names(events):
    return [event["event"] for event in events]


def test_navigate_wait_and_read_text():
    page = FakePage({"h1": [FakeElement("Hello")]})
    instance = make_instance(page)
    runner, events = _runner()

    report = asyncio.run(
        runner.run(
            instance,
            [
                {"action": "go", "url": "example.com"},
                {"action": "waitForSelector", "selector": "h1"},
                {"action": "getText", "selector": "h1"},
            ],
        )
    )

    assert report.state is PipelineState.COMPLETED
    assert report.value() == "Hello"
    assert len(instance.history) == 3
    assert instance.url == "https://example.com"
    assert _names(events) == [ACTION_START, ACTION_END] * 3
    assert events[0]["current_url"] == "about:blank"
    assert events[1]["current_url"] == "https://example.com"
    assert events[-1]["result"] == "Hello"
    goto = next(call for call in page.calls if call[0] == "goto")
    assert goto[2]["wait_until"] == "domcontentloaded"


def test_failure_aborts_remaining_actions():
    page = FakePage({"h1": [FakeElement("Hello")]}, url="https://example.com/form")
    instance = make_instance(page)
    runner, events = _runner()

    with pytest.raises(ActionFailed) as excinfo:
        asyncio.run(
            runner.run(
                instance,
                [
                    {"action": "getText", "selector": "h1"},
                    {"action": "write", "selector": "#missing", "value": "x"},
                    {"action": "click", "selector": "h1"},
                ],
            )
        )

    failure = excinfo.value
    assert isinstance(failure.__cause__, SelectorTimeout)
    assert failure.code == "SELECTOR_TIMEOUT"
    assert failure.url == "https://example.com/form"
    assert failure.action.action_name == "write"
    assert _names(events) == [ACTION_START, ACTION_END, ACTION_START, ACTION_ERROR]
    error_event = events[-1]
    assert error_event["current_url"] == "https://example.com/form"
    assert "#missing" in error_event["error"]["message"]
    assert error_event["error"]["stack"]
    assert [action.action_name for action in instance.history] == ["getText"]
    assert page.elements["h1"][0].calls == []


def test_navigation_timeout_is_soft():
    page = FakePage(goto_timeout=True)
    instance = make_instance(page)
    runner, events = _runner()
    report = asyncio.run(runner.run(instance, [{"action": "go", "url": "https://slow.example"}]))
    assert report.state is PipelineState.COMPLETED
    assert not report.has_result
    assert _names(events) == [ACTION_START, ACTION_END]
    assert len(instance.history) == 1


def test_unknown_actions_are_skipped_silently():
    page = FakePage({"#go": [FakeElement("Go")]})
    instance = make_instance(page)
    runner, events = _runner()
    report = asyncio.run(
        runner.run(instance, [{"action": "teleport", "to": "mars"}, {"action": "click", "selector": "#go"}])
    )
    assert report.skipped == ["teleport"]
    assert _names(events) == [ACTION_START, ACTION_END]
    assert [action.action_name for action in instance.history] == ["click"]
    assert page.elements["#go"][0].calls[0][0] == "click"


def test_result_comes_from_last_producing_action():
    page = FakePage()
    instance = make_instance(page)
    runner, _ = _runner()

    report = asyncio.run(runner.run(instance, [{"action": "go", "url": "https://example.com"}]))
    assert not report.has_result
    assert report.value() is None

    report = asyncio.run(
        runner.run(
            instance,
            [
                {"action": "evaluate", "fn": "(x) => x", "args": [5]},
                {"action": "sleep", "duration": 0},
            ],
        )
    )
    assert report.value() == {"script": "(x) => x", "arg": 5}


def test_locale_dependent_selector_is_rejected():
    page = FakePage({"button[aria-label='Search']": [FakeElement("Search")]})
    instance = make_instance(page)
    runner, events = _runner()
    with pytest.raises(ActionFailed) as excinfo:
        asyncio.run(runner.run(instance, [{"action": "click", "selector": "button[aria-label='Search']"}]))
    assert isinstance(excinfo.value.__cause__, InvalidSelector)
    assert _names(events) == [ACTION_START, ACTION_ERROR]


def test_locale_check_can_be_disabled():
    page = FakePage({"button[aria-label='Search']": [FakeElement("Search")]})
    instance = make_instance(page)
    runner, _ = _runner(language_independent=False)
    asyncio.run(runner.run(instance, [{"action": "click", "selector": "button[aria-label='Search']"}]))
    assert len(instance.history) == 1


def test_body_content_is_stabilised_and_annotated():
    page = FakePage(
        classifier_output=[{"selector": "#go", "type": "clickable", "tag": "button", "id": "go", "text": "Go"}],
        body_html='<button id="go" onclick="x()">Go</button><div class="decor"></div><script>1</script>',
    )
    instance = make_instance(page)
    runner, _ = _runner()
    report = asyncio.run(runner.run(instance, [{"action": "getBodyContent"}]))
    body = report.value()
    assert isinstance(body, BodyContent)
    assert body.elements == [ElementInfo(selector="#go", type="clickable", tag="button", id="go", text="Go")]
    assert 'data-stable-selector="#go"' in body.content
    assert "onclick" not in body.content
    assert "decor" not in body.content
    assert "<script" not in body.content
    assert body.as_dict()["stabilizedHTML"] is True


def test_element_listings_and_screenshot():
    page = FakePage(
        classifier_output=[
            {"selector": "#go", "type": "clickable", "tag": "button"},
            {"selector": "#q", "type": "writeable", "tag": "input"},
        ]
    )
    instance = make_instance(page)
    runner, _ = _runner()
    clickable = asyncio.run(runner.run(instance, [{"action": "getClickableElements"}])).value()
    writeable = asyncio.run(runner.run(instance, [{"action": "getWriteableElements"}])).value()
    shot = asyncio.run(runner.run(instance, [{"action": "screenshot", "options": {"fullPage": True}}])).value()
    assert [element.selector for element in clickable] == ["#go"]
    assert [element.selector for element in writeable] == ["#q"]
    assert shot == b"\x89PNG-fake"
    assert ("screenshot", {"full_page": True}) in page.calls


def test_failing_listener_does_not_break_the_run():
    page = FakePage({"#go": [FakeElement("Go")]})
    instance = make_instance(page)
    bus = EventBus()

    def explode(payload):
        raise RuntimeError("listener bug")

    bus.on(ACTION_START, explode)
    runner = ActionRunner(bus=bus, config=fast_config())
    report = asyncio.run(runner.run(instance, [{"action": "click", "selector": "#go"}]))
    assert report.state is PipelineState.COMPLETED


def test_write_clears_then_types():
    field = FakeElement()
    page = FakePage({"#q": [field]})
    instance = make_instance(page)
    runner, _ = _runner()
    asyncio.run(runner.run(instance, [{"action": "write", "selector": "#q", "value": "pagerunner"}]))
    assert field.calls == [("focus",)]
    assert page.keyboard.calls == [("press", "Control+A"), ("press", "Backspace"), ("type", "pagerunner")]


def test_clear_input_and_read_value():
    field = FakeElement(value="stale")
    page = FakePage({"#q": [field]})
    instance = make_instance(page)
    runner, _ = _runner()
    report = asyncio.run(
        runner.run(instance, [{"action": "clearInput", "selector": "#q"}, {"action": "getValue", "selector": "#q"}])
    )
    assert ("clear",) in field.calls
    assert report.value() == ""


def test_wait_for_navigation_is_soft():
    page = FakePage()
    instance = make_instance(page)
    runner, events = _runner()
    asyncio.run(runner.run(instance, [{"action": "waitForNavigation", "options": {"timeout": 10}}]))
    assert ("wait_for_event", "framenavigated") in page.calls
    assert ("wait_for_load_state", "domcontentloaded") in page.calls
    assert _names(events) == [ACTION_START, ACTION_END]


def test_wait_for_function_timeout_is_hard():
    page = FakePage()
    instance = make_instance(page)
    runner, _ = _runner()
    with pytest.raises(ActionFailed) as excinfo:
        asyncio.run(runner.run(instance, [{"action": "waitForFunction", "fn": "() => window.ready", "options": {"timeout": 5}}]))
    cause = excinfo.value.__cause__
    assert isinstance(cause, PipelineTimeout)
    assert cause.timeout_ms == 5


def test_cookies_default_to_current_url():
    page = FakePage(url="https://shop.example/cart")
    instance = make_instance(page)
    runner, _ = _runner()
    report = asyncio.run(
        runner.run(
            instance,
            [
                {"action": "setCookies", "cookies": [{"name": "sid", "value": "1"}, {"name": "t", "value": "2", "domain": ".example"}]},
                {"action": "deleteCookies", "cookies": [{"name": "t"}]},
                {"action": "getCookies"},
            ],
        )
    )
    assert instance.context.cleared == [{"name": "t"}]
    assert report.value() == [{"name": "sid", "value": "1", "url": "https://shop.example/cart"}]


def test_viewport_user_agent_and_focus():
    page = FakePage()
    instance = make_instance(page)
    runner, _ = _runner()
    asyncio.run(
        runner.run(
            instance,
            [
                {"action": "setViewport", "value": '{"width": 1024, "height": 768}'},
                {"action": "setUserAgent", "value": "pagerunner-test"},
                {"action": "bringToFront"},
            ],
        )
    )
    assert ("set_viewport_size", {"width": 1024, "height": 768}) in page.calls
    assert ("set_extra_http_headers", {"User-Agent": "pagerunner-test"}) in page.calls
    assert ("bring_to_front",) in page.calls


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("example.com", "https://example.com"),
        ("  http://example.com/a ", "http://example.com/a"),
        ("about:blank", "about:blank"),
        ("data:text/html,<h1>Hi</h1>", "data:text/html,<h1>Hi</h1>"),
        ("localhost:8080/x", "https://localhost:8080/x"),
    ],
)
def test_normalise_url(raw, expected):
    assert normalise_url(raw) == expected


def test_cookie_deletion_requires_a_name():
    page = FakePage(url="https://shop.example/cart")
    instance = make_instance(page)
    instance.context.cookie_jar = [{"name": "sid", "value": "1"}, {"name": "t", "value": "2"}]
    runner, _ = _runner()
    asyncio.run(
        runner.run(
            instance,
            [{"action": "deleteCookies", "cookies": [{"url": "https://shop.example"}, {"name": "t", "path": "/"}]}],
        )
    )
    assert instance.context.cleared == [{"name": "t", "path": "/"}]
    assert [cookie["name"] for cookie in instance.context.cookie_jar] == ["sid", "t"]


def test_dom_update_wait_is_soft_when_requests_never_finish():
    page = FakePage()
    instance = make_instance(page)
    instance.network = NetworkTracker(page)
    instance.network.start()
    page.listeners["request"][0](object())
    runner, events = _runner(dom_update_idle_ms=20)

    report = asyncio.run(runner.run(instance, [{"action": "waitForDomUpdate", "timeout": 30}]))

    assert instance.network.inflight == 1
    assert report.state is PipelineState.COMPLETED
    assert _names(events) == [ACTION_START, ACTION_END]
    assert [action.action_name for action in instance.history] == ["waitForDomUpdate"]


def test_write_on_missing_selector_stops_the_batch():
    page = FakePage({"h1": [FakeElement("Hello")]})
    instance = make_instance(page)
    runner, events = _runner()

    with pytest.raises(ActionFailed) as excinfo:
        asyncio.run(
            runner.run(
                instance,
                [
                    {"action": "go", "url": "https://example.com"},
                    {"action": "write", "selector": "#nothing", "value": "hi"},
                    {"action": "getText", "selector": "h1"},
                ],
            )
        )

    assert isinstance(excinfo.value.__cause__, SelectorTimeout)
    assert excinfo.value.url == "https://example.com"
    assert page.keyboard.calls == []
    assert _names(events) == [ACTION_START, ACTION_END, ACTION_START, ACTION_ERROR]
    assert len(instance.history) == 1


def test_event_payloads_use_snake_case_keys():
    page = FakePage({})
    instance = make_instance(page)
    runner, events = _runner()

    with pytest.raises(ActionFailed):
        asyncio.run(runner.run(instance, [{"action": "go", "url": "example.com"}, {"action": "click", "selector": "#gone"}]))

    keys = {event["event"]: set(event) - {"event"} for event in events}
    assert keys[ACTION_START] == {"session_id", "action", "current_url"}
    assert keys[ACTION_END] == {"session_id", "action", "result", "current_url"}
    assert keys[ACTION_ERROR] == {"session_id", "action", "error", "current_url"}
    assert set(events[-1]["error"]) == {"message", "stack"}
    assert all(event["session_id"] == instance.instance_id for event in events)
