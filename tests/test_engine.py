import asyncio
import json

import pytest
from bs4 import BeautifulSoup

from automation.dsl import models
from engine import ActionEngine, EngineConfig
from engine.hosts import VirtualPage
from engine.outcome import ActionTimeout, NotFound


class ReplacingPage(VirtualPage):
    """Swaps ``#go`` for a fresh identical node right after it passes a hit test."""

    def __init__(self, html, *, swaps):
        super().__init__(html)
        self.swaps = swaps
        self.hit_tests = 0

    async def hit_test(self, handle, x, y):
        hit = await super().hit_test(handle, x, y)
        self.hit_tests += 1
        if hit and self.swaps and self.hit_tests % 2 == 0:
            self.swaps -= 1
            handle.replace_with(BeautifulSoup('<button id="go">Go</button>', "html.parser").button)
        return hit


def test_ready_target_completes_after_one_poll_interval(clock):
    page = VirtualPage('<button id="go">Go</button>')
    engine = ActionEngine(page, clock=clock)

    outcome = asyncio.run(engine.perform(models.ClickAction(target="#go")))

    assert outcome.ok
    assert outcome.polls == 2
    assert outcome.elapsed_ms == pytest.approx(20)
    assert outcome.state.stable is True
    assert page.events_for("#go") == ["pointerdown", "mousedown", "pointerup", "mouseup", "click"]


def test_perform_accepts_payload_dicts(clock):
    page = VirtualPage('<input id="q">')
    engine = ActionEngine(page, clock=clock)

    outcome = asyncio.run(engine.perform({"action": "fill", "selector": "#q", "text": "hello"}))

    assert outcome.ok and outcome.kind == "fill"
    assert outcome.as_dict()["details"] == {"value": "hello", "keystrokes": 0}
    assert page.value_of("#q") == "hello"


def test_check_twice_produces_one_change(clock):
    page = VirtualPage('<input id="agree" type="checkbox">')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        await engine.check("#agree")
        await engine.check("#agree")

    asyncio.run(scenario())

    assert page.is_checked("#agree")
    assert page.events_for("#agree", ["change"]) == ["change"]


def test_force_mutates_disabled_controls(clock):
    page = VirtualPage('<input id="off" type="text" disabled><input id="box" type="checkbox" disabled>')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        blocked = await engine.perform(models.FillAction(target="#off", value="nope", timeout_ms=100))
        filled = await engine.fill("#off", "disabled error checking", force=True)
        checked = await engine.check("#box", force=True)
        return blocked, filled, checked

    blocked, filled, checked = asyncio.run(scenario())

    assert blocked.code == "TIMEOUT"
    assert "enabled=false" in blocked.error.diagnostic()
    assert filled.polls == 1
    assert page.value_of("#off") == "disabled error checking"
    assert checked.details["method"] == "direct"
    assert page.is_checked("#box")


def test_fill_then_clear_gives_two_change_transitions(clock):
    page = VirtualPage('<input id="email" type="email">')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        await engine.fill("#email", "fake@email.com")
        await engine.clear("#email")

    asyncio.run(scenario())

    assert page.value_of("#email") == ""
    assert page.events_for("#email", ["change"]) == ["change", "change"]


def test_not_found_and_timeout_are_distinct(clock):
    page = VirtualPage('<button id="hidden" style="display: none">Hidden</button>')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        missing = await engine.perform(models.ClickAction(target="#missing", timeout_ms=100))
        hidden = await engine.perform(models.ClickAction(target="#hidden", timeout_ms=100))
        return missing, hidden

    missing, hidden = asyncio.run(scenario())

    assert missing.code == "NOT_FOUND"
    assert isinstance(missing.error, NotFound)
    assert missing.state is None
    assert hidden.code == "TIMEOUT"
    assert hidden.state.attached is True and hidden.state.visible is False
    assert hidden.error.diagnostic().endswith("after 100ms")
    assert hidden.elapsed_ms == pytest.approx(100)
    assert "visible=false" in hidden.as_dict()["error"]["message"]


def test_sugar_methods_raise_typed_errors(clock):
    page = VirtualPage("<div></div>")
    engine = ActionEngine(page, clock=clock, config=EngineConfig(action_timeout_ms=60))

    with pytest.raises(NotFound) as excinfo:
        asyncio.run(engine.click("#missing"))

    assert excinfo.value.elapsed_ms == pytest.approx(60)


def test_canvas_click_offsets_from_top_left(clock):
    page = VirtualPage('<canvas id="canvas"></canvas>')
    page.place("#canvas", 10, 20, 250, 250)
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        centre = await engine.click("#canvas")
        corner = await engine.click("#canvas", position={"x": 80, "y": 75})
        return centre, corner

    centre, corner = asyncio.run(scenario())

    clicks = [event.init for event in page.events if event.type == "click"]
    assert (clicks[0]["clientX"], clicks[0]["clientY"]) == (135, 145)
    assert (clicks[1]["clientX"], clicks[1]["clientY"]) == (90, 95)
    assert corner.details["x"] == 90


def test_multi_select_three_values_one_change(clock):
    page = VirtualPage(
        '<select id="fruit" multiple>'
        '<option value="fr-apples">apples</option>'
        '<option value="fr-oranges">oranges</option>'
        '<option value="fr-bananas">bananas</option>'
        "</select>"
    )
    engine = ActionEngine(page, clock=clock)

    outcome = asyncio.run(engine.select_option("#fruit", ["apples", "oranges", "bananas"]))

    assert outcome.details["values"] == ["fr-apples", "fr-oranges", "fr-bananas"]
    assert page.selected_values("#fruit") == ["fr-apples", "fr-oranges", "fr-bananas"]
    assert page.events_for("#fruit", ["change"]) == ["change"]


def test_unmatched_option_is_reported(clock):
    page = VirtualPage('<select id="fruit"><option value="a">apples</option></select>')
    engine = ActionEngine(page, clock=clock)

    outcome = asyncio.run(engine.perform(models.SelectOptionAction(target="#fruit", values=["kiwi"])))

    assert outcome.code == "INVALID_OPTION"
    assert outcome.details["available"] == ["a"]
    assert outcome.state.visible is True


def test_detached_target_is_restarted_once(clock):
    page = ReplacingPage('<button id="go">Go</button>', swaps=1)
    engine = ActionEngine(page, clock=clock)

    outcome = asyncio.run(engine.perform(models.ClickAction(target="#go")))

    assert outcome.ok
    assert outcome.restarts == 1
    assert outcome.polls == 4
    assert page.events_for("#go") == ["pointerdown", "mousedown", "pointerup", "mouseup", "click"]


def test_repeated_detachment_fails(clock):
    page = ReplacingPage('<button id="go">Go</button>', swaps=2)
    engine = ActionEngine(page, clock=clock)

    outcome = asyncio.run(engine.perform(models.ClickAction(target="#go")))

    assert outcome.code == "DETACHED"
    assert outcome.restarts == 1
    assert page.events == []


def test_cancel_stops_polling(clock):
    page = VirtualPage('<button id="hidden" style="display: none">Hidden</button>')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        task = asyncio.create_task(engine.perform(models.ClickAction(target="#hidden")))
        for _ in range(5):
            await asyncio.sleep(0)
        signalled = engine.cancel("#hidden")
        return signalled, await task

    signalled, outcome = asyncio.run(scenario())

    assert signalled == 1
    assert outcome.code == "CANCELLED"
    assert outcome.state.visible is False
    assert outcome.elapsed_ms < 5000
    assert engine.cancel() == 0


def test_task_cancellation_never_splits_an_event_sequence(clock):
    page = VirtualPage('<button id="go">Go</button>')
    engine = ActionEngine(page, clock=clock)

    async def slow_listener(event):
        for _ in range(3):
            await asyncio.sleep(0)

    page.on("#go", "mousedown", slow_listener)

    async def scenario():
        task = asyncio.create_task(engine.click("#go"))
        while "mousedown" not in page.events_for("#go"):
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert page.events_for("#go") == ["pointerdown", "mousedown", "pointerup", "mouseup", "click"]


def test_actions_on_one_target_are_serialised(clock):
    page = VirtualPage('<button id="go" style="display: none">Go</button>')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        click = asyncio.create_task(engine.click("#go"))
        focus = asyncio.create_task(engine.focus("#go"))
        for _ in range(5):
            await asyncio.sleep(0)
        blocked = page.events_for("#go")
        page.set_style("#go", display=None)
        await asyncio.gather(click, focus)
        return blocked

    blocked = asyncio.run(scenario())

    assert blocked == []
    assert page.events_for("#go") == [
        "pointerdown",
        "mousedown",
        "pointerup",
        "mouseup",
        "click",
        "focus",
        "focusin",
    ]


def test_actions_on_different_targets_interleave(clock):
    page = VirtualPage('<button id="a" style="display: none">A</button><input id="b">')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        click = asyncio.create_task(engine.click("#a", timeout_ms=200))
        fill = asyncio.create_task(engine.fill("#b", "hi"))
        await fill
        still_waiting = not click.done()
        with pytest.raises(ActionTimeout):
            await click
        return still_waiting

    assert asyncio.run(scenario()) is True
    assert page.value_of("#b") == "hi"


def test_scroll_to_window_without_target(clock):
    page = VirtualPage('<div id="tall"></div>', viewport=(800, 600))
    page.place("#tall", 0, 0, 800, 3000)
    engine = ActionEngine(page, clock=clock)

    outcome = asyncio.run(engine.scroll_to(y="end"))

    assert outcome.target == "window"
    assert outcome.polls == 0
    assert page.scroll_offset() == (0.0, 2400.0)


def test_readers_and_bound_locator(clock):
    page = VirtualPage(
        '<ul><li class="label">click</li><li class="label">me</li></ul>'
        '<input id="name" value="Ada"><input id="box" type="checkbox" checked>'
        '<input id="ghost" style="display: none">'
    )
    engine = ActionEngine(page, clock=clock)
    labels = engine.locator(".label")

    async def scenario():
        count = await labels.count()
        for index in range(count):
            await labels.nth(index).click()
        return {
            "count": count,
            "text": await labels.last().text_content(),
            "value": await engine.input_value("#name"),
            "checked": await engine.locator("#box").is_checked(),
            "ghost": await engine.is_visible("#ghost"),
            "nothing": await engine.is_visible("#nothing"),
        }

    result = asyncio.run(scenario())

    assert result == {
        "count": 2,
        "text": "me",
        "value": "Ada",
        "checked": True,
        "ghost": False,
        "nothing": False,
    }
    assert [event.target.get_text() for event in page.events if event.type == "click"] == ["click", "me"]
    with pytest.raises(NotFound):
        asyncio.run(engine.input_value("#nothing"))


def test_run_request_logs_each_outcome(clock, tmp_path):
    page = VirtualPage('<input id="q"><button id="go">Go</button>')
    engine = ActionEngine(page, clock=clock, config=EngineConfig(log_root=tmp_path))
    plan = [
        {"type": "fill", "selector": "#q", "value": "query"},
        {"type": "click", "selector": "#missing", "timeout_ms": 40},
        {"type": "click", "selector": "#go"},
    ]

    stopped = asyncio.run(engine.run({"run_id": "run-1", "plan": plan, "metadata": {"suite": "actions"}}))
    complete = asyncio.run(engine.run({"run_id": "run-2", "plan": plan}, stop_on_error=False))

    assert stopped["success"] is False
    assert [result["ok"] for result in stopped["results"]] == [True, False]
    assert stopped["metadata"] == {"suite": "actions"}
    assert [result["ok"] for result in complete["results"]] == [True, False, True]

    lines = (tmp_path / "run-1" / "events.jsonl").read_text(encoding="utf-8").splitlines()
    events = [json.loads(line) for line in lines]
    assert [event["step"] for event in events] == [1, 2]
    assert events[0]["action"]["target"] == "#q"
    assert events[0]["result"] == {"value": "query", "keystrokes": 0}
    assert events[1]["error"] == "NOT_FOUND"
    assert events[1]["diagnostic"].startswith("after")
    assert stopped["log_path"] == str(tmp_path / "run-1" / "events.jsonl")


def test_from_config_logs_single_actions(clock, tmp_path):
    page = VirtualPage('<input id="q">')
    config = EngineConfig(log_root=tmp_path, log_events=True)
    engine = ActionEngine.from_config(page, config, run_id="session", clock=clock)

    outcome = asyncio.run(engine.focus("#q"))
    engine.close()

    lines = (tmp_path / "session" / "events.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["action"]["type"] == "focus"
    assert outcome.details["step"] == 1


def test_clear_keeps_its_selection_while_another_target_is_filled(clock):
    page = VirtualPage('<input id="a" value="old"><input id="b">')
    engine = ActionEngine(page, clock=clock)

    async def slow_keyup(event):
        for _ in range(5):
            await asyncio.sleep(0)

    page.on("#a", "keyup", slow_keyup)

    async def scenario():
        return await asyncio.gather(engine.clear("#a"), engine.fill("#b", "x"))

    cleared, filled = asyncio.run(scenario())

    assert cleared.details == {"value": "", "changed": True}
    assert page.value_of("#a") == ""
    assert filled.ok and page.value_of("#b") == "x"


def test_locks_are_released_once_no_action_uses_them(clock):
    page = VirtualPage('<button id="go">Go</button>')
    engine = ActionEngine(page, clock=clock)

    async def scenario():
        for index in range(50):
            await engine.perform(models.ClickAction(target=models.ElementRef(selector="#go", index=index), timeout_ms=0))
        await asyncio.gather(engine.click("#go"), engine.click("#go"))

    asyncio.run(scenario())

    assert engine._locks == {}
    assert engine._lock_users == {}
    assert page.events_for("#go", ["click"]) == ["click", "click"]
