"""Themes bundled with tubedeck-tui."""
from __future__ import annotations

from typing import Mapping

from textual.theme import Theme

__all__ = [
    "CUSTOM_THEMES",
    "DEFAULT_THEME_NAME",
]

_SOLARIZED = {
    "base03": "#002b36",
    "base02": "#073642",
    "base01": "#586e75",
    "base00": "#657b83",
    "base1": "#93a1a1",
    "base2": "#eee8d5",
    "base3": "#fdf6e3",
    "yellow": "#b58900",
    "orange": "#cb4b16",
    "red": "#dc322f",
    "magenta": "#d33682",
    "violet": "#6c71c4",
    "blue": "#268bd2",
    "cyan": "#2aa198",
    "green": "#859900",
}


def _solarized(dark: bool) -> Theme:
    palette = _SOLARIZED
    return Theme(
        "solarized-dark" if dark else "solarized-light",
        primary=palette["blue"],
        secondary=palette["cyan"] if dark else palette["violet"],
        warning=palette["yellow"],
        error=palette["red"],
        success=palette["green"],
        accent=palette["magenta"] if dark else palette["orange"],
        foreground=palette["base1"] if dark else palette["base00"],
        background=palette["base03"] if dark else palette["base3"],
        surface=palette["base02"] if dark else palette["base2"],
        panel=palette["base02"] if dark else palette["base2"],
        boost=palette["base2"] if dark else palette["base01"],
        dark=dark,
    )


# Red accent so the selected row reads like the site's own player chrome.
_TUBE_DARK = Theme(
    "tube-dark",
    primary="#ff0033",
    secondary="#3ea6ff",
    warning="#f2c14e",
    error="#ff4e45",
    success="#2ba640",
    accent="#ff0033",
    foreground="#f1f1f1",
    background="#0f0f0f",
    surface="#212121",
    panel="#272727",
    dark=True,
)

_GRUVBOX_DARK = Theme(
    "gruvbox-dark",
    primary="#fe8019",
    secondary="#83a598",
    warning="#fabd2f",
    error="#fb4934",
    success="#b8bb26",
    accent="#d3869b",
    foreground="#ebdbb2",
    background="#282828",
    surface="#3c3836",
    panel="#504945",
    dark=True,
)

CUSTOM_THEMES: Mapping[str, Theme] = {
    theme.name: theme
    for theme in (_TUBE_DARK, _GRUVBOX_DARK, _solarized(True), _solarized(False))
}
"""Themes bundled with the application keyed by their names."""

DEFAULT_THEME_NAME = _TUBE_DARK.name
"""Default theme to apply when none is specified explicitly."""
