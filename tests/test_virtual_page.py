import asyncio

import pytest

from automation.dsl.resolution import Box
from engine.hosts import VirtualPage
from engine.hosts.base import WINDOW, HostDetachedError


def _box(page, selector):
    return asyncio.run(page.describe(page.query(selector))).box


def test_rows_reflow_when_an_element_is_hidden():
    page = VirtualPage('<p id="a">A</p><p id="b">B</p>')

    before = _box(page, "#b")
    page.set_style("#a", display="none")
    after = _box(page, "#b")

    assert before == Box(0, 24, 240, 24)
    assert after == Box(0, 0, 240, 24)
    assert _box(page, "#a") is None


def test_window_scroll_shifts_client_boxes():
    page = VirtualPage('<div id="tall"></div>', viewport=(800, 600))
    page.place("#tall", 0, 0, 100, 2000)

    asyncio.run(page.set_scroll(None, WINDOW, 0, 300))

    assert _box(page, "#tall").y == -300


def test_hit_test_prefers_higher_z_index_then_later_nodes():
    page = VirtualPage(
        '<div id="low" style="z-index: 3"></div><div id="mid"></div><div id="top"></div>'
    )
    for selector in ("#low", "#mid", "#top"):
        page.place(selector, 0, 0, 100, 100)

    async def scenario():
        return [await page.hit_test(page.query(s), 50, 50) for s in ("#low", "#mid", "#top")]

    assert asyncio.run(scenario()) == [True, False, False]


def test_hit_test_on_a_child_counts_for_the_parent():
    page = VirtualPage('<button id="go"><span id="label">Go</span></button>')
    page.place("#go", 0, 0, 100, 40)
    page.place("#label", 10, 10, 40, 20)

    assert asyncio.run(page.hit_test(page.query("#go"), 20, 20)) is True
    assert asyncio.run(page.hit_test(page.query("#go"), 500, 900)) is False


def test_disabled_control_swallows_mouse_events():
    page = VirtualPage('<button id="off" disabled>Off</button>')
    seen = []
    page.on("#off", "click", seen.append)

    asyncio.run(page.dispatch_event(page.query("#off"), "click", {}))
    asyncio.run(page.dispatch_event(page.query("#off"), "focus", {}))

    assert seen == []
    assert page.events_for("#off") == ["focus"]


def test_click_toggles_checkbox_unless_prevented():
    page = VirtualPage('<input id="a" type="checkbox"><input id="b" type="checkbox">')
    page.on("#b", "click", lambda event: event.prevent_default())

    async def scenario():
        await page.dispatch_event(page.query("#a"), "click", {"cancelable": True})
        await page.dispatch_event(page.query("#b"), "click", {"cancelable": True})

    asyncio.run(scenario())

    assert page.is_checked("#a") is True
    assert page.events_for("#a") == ["click", "input", "change"]
    assert page.is_checked("#b") is False


def test_radio_group_is_exclusive():
    page = VirtualPage(
        '<input id="r1" type="radio" name="g" checked><input id="r2" type="radio" name="g">'
        '<input id="other" type="radio" name="h" checked>'
    )

    asyncio.run(page.set_checked(page.query("#r2"), True))

    assert page.is_checked("#r1") is False
    assert page.is_checked("#r2") is True
    assert page.is_checked("#other") is True


def test_events_bubble_to_ancestors_and_await_async_listeners():
    page = VirtualPage('<div id="outer"><button id="go">Go</button></div>')
    seen = []

    async def on_outer(event):
        await asyncio.sleep(0)
        seen.append(("outer", event.type, event.target["id"]))

    page.on("#outer", "click", on_outer)
    page.on("#outer", "focus", on_outer)

    async def scenario():
        await page.dispatch_event(page.query("#go"), "click", {})
        await page.dispatch_event(page.query("#go"), "focus", {})

    asyncio.run(scenario())

    assert seen == [("outer", "click", "go")]


def test_set_scroll_clamps_and_fires_scroll():
    page = VirtualPage('<div id="box" style="overflow: auto"><div id="content"></div></div>')
    page.place("#box", 0, 0, 200, 100)
    page.place("#content", 0, 0, 500, 400)
    content = page.query("#content")

    async def scenario():
        port = await page.scroll_port(page.query("#box"))
        await page.set_scroll(content, 1, 9999, -5)
        return port

    port = asyncio.run(scenario())

    assert (port.max_left, port.max_top) == (300, 300)
    assert page.scroll_offset("#box") == (300, 0.0)
    assert page.events_for("#box") == ["scroll"]
    assert _box(page, "#content").x == -300


def test_scroll_chain_lists_containers_innermost_first():
    page = VirtualPage(
        '<div id="outer" style="overflow-y: scroll"><div><div id="inner" style="overflow: auto">'
        '<button id="go">Go</button></div></div></div>'
    )

    ports = asyncio.run(page.scroll_chain(page.query("#go")))

    assert [port.depth for port in ports] == [1, 3, WINDOW]


def test_detached_nodes():
    page = VirtualPage('<button id="go">Go</button>')
    node = page.query("#go")
    page.remove("#go")

    info = asyncio.run(page.describe(node))

    assert info.attached is False
    with pytest.raises(HostDetachedError):
        asyncio.run(page.dispatch_event(node, "click", {}))
    with pytest.raises(HostDetachedError):
        asyncio.run(page.set_value(node, "x"))


def test_select_defaults_and_option_labels():
    page = VirtualPage(
        '<select id="s"><option disabled>Pick</option><option value="a">Apple</option>'
        '<option>Banana</option></select><select id="m" multiple><option>One</option></select>'
    )

    options = asyncio.run(page.options(page.query("#s")))

    assert [(o.value, o.label, o.disabled) for o in options] == [
        ("Pick", "Pick", True),
        ("a", "Apple", False),
        ("Banana", "Banana", False),
    ]
    assert page.value_of("#s") == "a"
    assert page.selected_values("#m") == []


def test_focus_reports_the_previous_element():
    page = VirtualPage('<input id="a"><input id="b">')

    async def scenario():
        await page.focus(page.query("#a"))
        change = await page.focus(page.query("#b"))
        return change, await page.has_focus(page.query("#b"))

    change, focused = asyncio.run(scenario())

    assert change.previous is page.query("#a")
    assert change.native_events is False
    assert focused is True
