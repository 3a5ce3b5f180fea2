"""Key definitions, combo parsing and the explicit selection state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Set, Tuple

from automation.dsl.models import ElementRef

MODIFIERS: Tuple[str, ...] = ("Alt", "Control", "Meta", "Shift")

_MODIFIER_FLAGS = {
    "Alt": "altKey",
    "Control": "ctrlKey",
    "Meta": "metaKey",
    "Shift": "shiftKey",
}

_ALIASES = {
    "ctrl": "Control",
    "control": "Control",
    "cmd": "Meta",
    "command": "Meta",
    "meta": "Meta",
    "option": "Alt",
    "alt": "Alt",
    "shift": "Shift",
    "del": "Delete",
    "esc": "Escape",
    "return": "Enter",
    "space": " ",
}


@dataclass(frozen=True, slots=True)
class KeyDefinition:
    key: str
    code: str
    key_code: int
    text: str = ""

    @property
    def is_modifier(self) -> bool:
        return self.key in MODIFIERS


_NAMED: Dict[str, KeyDefinition] = {
    definition.key: definition
    for definition in (
        KeyDefinition("Backspace", "Backspace", 8),
        KeyDefinition("Tab", "Tab", 9),
        KeyDefinition("Enter", "Enter", 13, "\r"),
        KeyDefinition("Shift", "ShiftLeft", 16),
        KeyDefinition("Control", "ControlLeft", 17),
        KeyDefinition("Alt", "AltLeft", 18),
        KeyDefinition("Escape", "Escape", 27),
        KeyDefinition(" ", "Space", 32, " "),
        KeyDefinition("PageUp", "PageUp", 33),
        KeyDefinition("PageDown", "PageDown", 34),
        KeyDefinition("End", "End", 35),
        KeyDefinition("Home", "Home", 36),
        KeyDefinition("ArrowLeft", "ArrowLeft", 37),
        KeyDefinition("ArrowUp", "ArrowUp", 38),
        KeyDefinition("ArrowRight", "ArrowRight", 39),
        KeyDefinition("ArrowDown", "ArrowDown", 40),
        KeyDefinition("Insert", "Insert", 45),
        KeyDefinition("Delete", "Delete", 46),
        KeyDefinition("Meta", "MetaLeft", 91),
    )
}


def key_definition(name: str) -> KeyDefinition:
    """Look up a named key or build the definition of a single character."""

    canonical = _ALIASES.get(name.lower(), name) if len(name) > 1 else name
    if canonical in _NAMED:
        return _NAMED[canonical]
    if len(canonical) != 1:
        raise ValueError(f"Unknown key '{name}'")
    char = canonical
    if char.isalpha() and char.isascii():
        return KeyDefinition(char, f"Key{char.upper()}", ord(char.upper()), char)
    if char.isdigit() and char.isascii():
        return KeyDefinition(char, f"Digit{char}", ord(char), char)
    return KeyDefinition(char, "", ord(char), char)


def parse_combo(combo: str) -> Tuple[List[KeyDefinition], KeyDefinition]:
    """Split ``"Control+Shift+a"`` into its modifiers and the final key."""

    if combo == "+":
        return [], key_definition("+")
    parts = combo.split("+")
    if combo.endswith("++"):
        parts = parts[:-2] + ["+"]
    names = [part for part in parts if part != ""]
    if not names:
        raise ValueError(f"Empty key combination '{combo}'")
    definitions = [key_definition(name) for name in names]
    *modifiers, key = definitions
    for modifier in modifiers:
        if not modifier.is_modifier:
            raise ValueError(f"'{modifier.key}' is not a modifier in '{combo}'")
    return modifiers, key


def modifier_flags(active: Iterable[KeyDefinition]) -> Dict[str, bool]:
    pressed = {definition.key for definition in active}
    return {flag: name in pressed for name, flag in _MODIFIER_FLAGS.items()}


def keyboard_init(definition: KeyDefinition, flags: Dict[str, bool]) -> Dict[str, Any]:
    init: Dict[str, Any] = {
        "key": definition.key,
        "code": definition.code,
        "keyCode": definition.key_code,
        "which": definition.key_code,
        "bubbles": True,
        "cancelable": True,
        "composed": True,
    }
    init.update(flags)
    return init


def produces_text(key: KeyDefinition, modifiers: Iterable[KeyDefinition]) -> str:
    held: FrozenSet[str] = frozenset(m.key for m in modifiers)
    if not key.text or held & {"Control", "Meta", "Alt"}:
        return ""
    if "Shift" in held and len(key.text) == 1:
        return key.text.upper()
    return key.text


class KeyboardState:
    """Select-all selection, tracked per element reference.

    A ``Control+a`` press arms the selection for its target; the next key
    that edits that target replaces or deletes the whole value and consumes
    it. Any other action on the target disarms it. Actions on other
    references leave it untouched.
    """

    def __init__(self) -> None:
        self.armed: Set[ElementRef] = set()

    def arm(self, ref: ElementRef) -> None:
        self.armed.add(ref)

    def is_armed(self, ref: ElementRef) -> bool:
        return ref in self.armed

    def consume(self, ref: ElementRef) -> bool:
        if ref in self.armed:
            self.armed.discard(ref)
            return True
        return False

    def reset(self, ref: ElementRef) -> None:
        self.armed.discard(ref)
