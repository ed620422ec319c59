"""Strip or render Minecraft formatting codes in RCON replies."""

from __future__ import annotations

import re

from prompt_toolkit.formatted_text import FormattedText

# Matches: §x§R§R§G§G§B§B (RGB) or §X (single char code)
_MC_FORMAT_PATTERN = re.compile(r"§x(?:§[0-9A-Fa-f]){6}|§.")

_MC_COLORS: dict[str, str] = {
    "0": "#000000",
    "1": "#0000aa",
    "2": "#00aa00",
    "3": "#00aaaa",
    "4": "#aa0000",
    "5": "#aa00aa",
    "6": "#ffaa00",
    "7": "#aaaaaa",
    "8": "#555555",
    "9": "#5555ff",
    "a": "#55ff55",
    "b": "#55ffff",
    "c": "#ff5555",
    "d": "#ff55ff",
    "e": "#ffff55",
    "f": "#ffffff",
}

_MC_STYLES: dict[str, str] = {
    "l": "bold",
    "m": "strike",
    "n": "underline",
    "o": "italic",
}


def strip_formatting(text: str) -> str:
    """Remove all Minecraft formatting codes from text."""
    return _MC_FORMAT_PATTERN.sub("", text)


def to_formatted_text(text: str) -> FormattedText:
    """Convert Minecraft formatting codes into prompt_toolkit style fragments.

    A color code resets any active text styles, as it does in the game. §r
    resets everything and §k (obfuscated) is dropped.
    """
    fragments: list[tuple[str, str]] = []
    color = ""
    styles: list[str] = []
    pos = 0

    def _style() -> str:
        return " ".join(part for part in (color, *styles) if part)

    for match in _MC_FORMAT_PATTERN.finditer(text):
        if match.start() > pos:
            fragments.append((_style(), text[pos : match.start()]))
        pos = match.end()

        code = match.group(0)
        if code.startswith("§x"):
            color = "#" + code.replace("§", "")[1:].lower()
            styles = []
            continue

        char = code[1].lower()
        if char in _MC_COLORS:
            color = _MC_COLORS[char]
            styles = []
        elif char in _MC_STYLES and _MC_STYLES[char] not in styles:
            styles.append(_MC_STYLES[char])
        elif char == "r":
            color = ""
            styles = []

    if pos < len(text):
        fragments.append((_style(), text[pos:]))
    return FormattedText(fragments)


def format_response(text: str, *, color: bool = True) -> FormattedText | str:
    """Format a server reply for the console.

    Returns style fragments when color is enabled, plain text otherwise.
    """
    if color:
        return to_formatted_text(text)
    return strip_formatting(text)
