"""Scenarios against the actions demo page rendered by :class:`VirtualPage`."""

import asyncio

import pytest

from engine import ActionEngine
from engine.hosts import VirtualPage
from engine.outcome import ActionTimeout


@pytest.fixture
def page(actions_html):
    return VirtualPage(actions_html)


@pytest.fixture
def engine(page, clock):
    return ActionEngine(page, clock=clock)


def _client_box(page, selector):
    return asyncio.run(page.describe(page.query(selector))).box


def test_type_into_email_then_clear_with_keys(page, engine):
    email = engine.locator(".action-email")

    async def scenario():
        await email.fill("fake@email.com")
        first = await email.input_value()
        await email.press("Control+a")
        await email.press("Delete")
        cleared = await email.input_value()
        await email.type("slow.typing@email.com", delay_ms=100)
        await engine.fill(".action-disabled", "disabled error checking", force=True)
        return first, cleared

    first, cleared = asyncio.run(scenario())

    assert first == "fake@email.com"
    assert cleared == ""
    assert page.value_of(".action-email") == "slow.typing@email.com"
    assert len(page.events_for(".action-email", ["keydown"])) == len("slow.typing@email.com") + 3
    assert page.events_for(".action-email", ["change"]) == ["change", "change"]
    assert page.value_of(".action-disabled") == "disabled error checking"


def test_focus_marks_the_field(page, engine):
    def on_focus(event):
        event.page.add_class(event.target, "focus")
        label = event.target.find_previous_sibling("label")
        event.page.set_attribute(label, "style", "color: orange;")

    page.on(".action-focus", "focus", on_focus)

    asyncio.run(engine.focus(".action-focus"))

    assert "focus" in page.query(".action-focus")["class"]
    assert page.query("#focus-form label")["style"] == "color: orange;"


def test_blur_marks_the_field(page, engine):
    def on_blur(event):
        event.page.add_class(event.target, "error")
        label = event.target.find_previous_sibling("label")
        event.page.set_attribute(label, "style", "color: red;")

    page.on(".action-blur", "blur", on_blur)

    async def scenario():
        await engine.fill(".action-blur", "About to blur")
        await engine.blur(".action-blur")

    asyncio.run(scenario())

    assert "error" in page.query(".action-blur")["class"]
    assert page.query("#blur-form label")["style"] == "color: red;"
    assert page.active_element is None


def test_clear_text_field(page, engine):
    async def scenario():
        await engine.fill(".action-clear", "Clear this text")
        before = await engine.input_value(".action-clear")
        await engine.clear(".action-clear")
        return before, await engine.input_value(".action-clear")

    assert asyncio.run(scenario()) == ("Clear this text", "")


def test_submit_form(page, engine):
    def on_submit(event):
        event.page.query(".form-result").string = "Your form has been submitted!"

    page.on(".action-form", "submit", on_submit)

    async def scenario():
        await engine.fill('.action-form [type="text"]', "HALFOFF")
        await engine.submit(".action-form")
        return await engine.text_content(".form-result")

    assert "Your form has been submitted!" in asyncio.run(scenario())
    assert page.value_of("#couponCode1") == "HALFOFF"


def test_click_buttons_canvas_and_labels(page, engine):
    page.place("#action-canvas", 300, 0, 250, 250)
    labels = engine.locator(".action-labels>.label")

    async def scenario():
        await engine.click(".action-btn")
        await engine.click("#action-canvas")
        await engine.click("#action-canvas", position=(80, 75))
        for index in range(await labels.count()):
            await labels.nth(index).click()

    asyncio.run(scenario())

    assert page.events_for(".action-btn", ["click"]) == ["click"]
    canvas_clicks = [
        event.init for event in page.events if event.type == "click" and event.target.get("id") == "action-canvas"
    ]
    assert [(init["clientX"], init["clientY"]) for init in canvas_clicks] == [(425, 125), (380, 75)]
    label_clicks = [event.target.get_text() for event in page.events if event.type == "click" and event.target.name == "li"]
    assert label_clicks == ["click", "me", "multiple"]


def test_covered_button_needs_force(page, engine):
    page.place(".action-opacity>.btn", 600, 0, 120, 40)
    page.place(".action-opacity>.cover", 590, 0, 140, 60)

    async def scenario():
        with pytest.raises(ActionTimeout) as excinfo:
            await engine.click(".action-opacity>.btn", timeout_ms=200)
        forced = await engine.click(".action-opacity>.btn", force=True)
        return excinfo.value, forced

    error, forced = asyncio.run(scenario())

    assert error.details["missing"] == ["receives_pointer_events"]
    assert "receives_pointer_events=false" in error.diagnostic()
    assert forced.state.forced is True
    assert page.events_for(".action-opacity>.btn", ["click"]) == ["click"]


def test_dblclick_reveals_input(page, engine):
    def reveal(event):
        event.page.set_style(".action-div", display="none")
        event.page.set_style(".action-input-hidden", display=None)

    page.on(".action-div", "dblclick", reveal)

    async def scenario():
        await engine.dblclick(".action-div")
        return await engine.is_visible(".action-div"), await engine.is_visible(".action-input-hidden")

    assert asyncio.run(scenario()) == (False, True)


def test_rightclick_reveals_input(page, engine):
    def reveal(event):
        event.page.set_style(".rightclick-action-div", display="none")
        event.page.set_style(".rightclick-action-input-hidden", display=None)

    page.on(".rightclick-action-div", "contextmenu", reveal)

    async def scenario():
        await engine.click(".rightclick-action-div", button="right")
        return (
            await engine.is_visible(".rightclick-action-div"),
            await engine.is_visible(".rightclick-action-input-hidden"),
        )

    assert asyncio.run(scenario()) == (False, True)
    assert page.events_for(".rightclick-action-div", ["click"]) == []


def test_check_checkboxes_and_radios(page, engine):
    enabled = engine.locator('.action-checkboxes [type="checkbox"]:not([disabled])')
    radio1 = '.action-radios [type="radio"][value="radio1"]'
    radio2 = '.action-radios [type="radio"][value="radio2"]'

    async def scenario():
        for index in range(await enabled.count()):
            await enabled.nth(index).check()
        await engine.check(radio1)
        radio1_first = await engine.is_checked(radio1)
        await engine.check(radio2)
        await engine.check('.action-multiple-checkboxes [type="checkbox"][value="checkbox1"]')
        await engine.check('.action-multiple-checkboxes [type="checkbox"][value="checkbox2"]')
        await engine.check(".action-checkboxes [disabled]", force=True)
        return radio1_first

    assert asyncio.run(scenario()) is True
    assert page.is_checked('.action-checkboxes [value="checkbox1"]')
    assert page.is_checked('.action-checkboxes [value="checkbox3"]')
    assert page.is_checked(".action-checkboxes [disabled]")
    assert not page.is_checked(radio1)
    assert page.is_checked(radio2)
    assert page.is_checked('.action-multiple-checkboxes [value="checkbox1"]')
    assert page.is_checked('.action-multiple-checkboxes [value="checkbox2"]')


def test_checkboxes_below_the_fold_are_scrolled_into_view(page, engine):
    outcome = asyncio.run(engine.check('.action-checkboxes [value="checkbox1"]'))

    assert outcome.polls == 3
    assert page.scroll_offset()[1] > 0
    box = _client_box(page, '.action-checkboxes [value="checkbox1"]')
    assert 0 <= box.y and box.bottom <= page.viewport_height


def test_uncheck_checkboxes(page, engine):
    first = engine.locator('.action-check [type="checkbox"]').first()
    checkbox1 = '.action-check [type="checkbox"][value="checkbox1"]'
    checkbox3 = '.action-check [type="checkbox"][value="checkbox3"]'

    async def scenario():
        await first.check()
        await first.uncheck()
        first_state = await first.is_checked()
        await engine.check(checkbox1)
        await engine.uncheck(checkbox1)
        await engine.check(checkbox3)
        await engine.uncheck(checkbox3)
        await engine.check(".action-check [disabled]", force=True)
        await engine.uncheck(".action-check [disabled]", force=True)
        return first_state

    assert asyncio.run(scenario()) is False
    assert not page.is_checked(checkbox1)
    assert not page.is_checked(checkbox3)
    assert not page.is_checked(".action-check [disabled]")


def test_select_single_and_multiple(page, engine):
    async def scenario():
        initial = await engine.input_value(".action-select")
        await engine.select_option(".action-select", "apples")
        by_label = await engine.input_value(".action-select")
        await engine.select_option(".action-select-multiple", ["apples", "oranges", "bananas"])
        multiple = await engine.selected_values(".action-select-multiple")
        await engine.select_option(".action-select", "fr-bananas")
        return initial, by_label, multiple, await engine.input_value(".action-select")

    initial, by_label, multiple, by_value = asyncio.run(scenario())

    assert initial == "--Select a fruit--"
    assert by_label == "fr-apples"
    assert multiple == ["fr-apples", "fr-oranges", "fr-bananas"]
    assert by_value == "fr-bananas"
    assert page.events_for(".action-select-multiple", ["change"]) == ["change"]


@pytest.mark.parametrize("container", ["#scroll-horizontal", "#scroll-vertical", "#scroll-both"])
def test_scroll_buttons_into_view(page, engine, container):
    button = f"{container} button"

    async def scenario():
        outcome = await engine.scroll_into_view(button)
        node = page.query(button)
        centre = (await page.describe(node)).box.center()
        return outcome, await page.hit_test(node, *centre)

    outcome, hit = asyncio.run(scenario())

    assert [move["depth"] for move in outcome.details["scrolled"]] == [1, -1]
    assert hit is True
    box = _client_box(page, button)
    assert 0 <= box.y and box.bottom <= page.viewport_height


def test_trigger_change_on_range(page, engine):
    def show_value(event):
        event.target.find_next_sibling("p").string = event.page.value_of(event.target)

    page.on(".trigger-input-range", "change", show_value)

    asyncio.run(engine.trigger_event(".trigger-input-range", "change", value=25))

    assert page.query(".trigger-range p").get_text() == "25"


def test_scroll_window_and_elements(page, engine):
    page.place("#scrollable-both", 600, 0, 200, 100)
    page.place("#scrollable-both .scroll-content", 600, 0, 1000, 500)
    window_max = asyncio.run(page.scroll_port(None)).max_top

    async def scenario():
        await engine.scroll_to(y="end")
        await engine.scroll_to("#scrollable-both", x="75%", y="25%")

    asyncio.run(scenario())

    assert page.scroll_offset() == (0.0, window_max)
    assert page.scroll_offset("#scrollable-both") == (600.0, 100.0)


def test_script_input_is_stored_verbatim(page, engine):
    payload = '<script>alert("XSS")</script>'

    outcome = asyncio.run(engine.fill(".action-email", payload))

    assert outcome.details["value"] == payload
    assert page.value_of(".action-email") == payload
