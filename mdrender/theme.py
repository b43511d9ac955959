from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from mdrender.errors import ThemeError
from mdrender.logger import get_logger

LOGGER = get_logger(__name__)

Color = Tuple[float, float, float]
FontSize = Union[float, str]

DEFAULT_THEME = "github-light"

NODE_KEYS = (
    "document",
    "heading",
    "heading1",
    "heading2",
    "heading3",
    "heading4",
    "heading5",
    "heading6",
    "paragraph",
    "list",
    "list_item",
    "code_block",
    "block_quote",
    "table",
    "table_row",
    "table_header",
    "table_cell",
    "thematic_break",
    "image",
    "text",
    "strong",
    "emphasis",
    "code_span",
    "link",
    "line_break",
)

COLOR_ALIASES = {
    "black": "#000000",
    "white": "#ffffff",
    "gray": "#808080",
    "grey": "#808080",
    "red": "#cf222e",
    "green": "#1a7f37",
    "blue": "#0969da",
    "warmyellow": "#f6e7c1",
    "warm": "#f6e7c1",
    "softyellow": "#f7e6b5",
    "softgold": "#f5d59a",
}

FONT_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(em|pt)?\s*$")
FONT_WEIGHTS = {"normal": False, "bold": True, "bolder": True, "lighter": False}
FONT_STYLES = ("normal", "italic", "oblique")
COLOR_OPTIONS = ("color", "background_color", "border_color")
LENGTH_OPTIONS = ("margin_top", "margin_bottom", "indent")


def parse_color(color_value: str) -> Color:
    """Parse ``#rgb``, ``#rrggbb`` or an alias name into 0..1 RGB components."""
    normalized_key = re.sub(r"[^a-z0-9]+", "", color_value.lower())
    if normalized_key in COLOR_ALIASES:
        color_value = COLOR_ALIASES[normalized_key]

    if not color_value.startswith("#") or len(color_value) not in (4, 7):
        raise ThemeError(f"Unsupported color value: {color_value}")
    try:
        if len(color_value) == 4:
            r = int(color_value[1] * 2, 16)
            g = int(color_value[2] * 2, 16)
            b = int(color_value[3] * 2, 16)
        else:
            r = int(color_value[1:3], 16)
            g = int(color_value[3:5], 16)
            b = int(color_value[5:7], 16)
    except ValueError as exc:
        raise ThemeError(f"Unsupported color value: {color_value}") from exc
    return (r / 255.0, g / 255.0, b / 255.0)


def parse_font_size(value: FontSize) -> FontSize:
    """Validate a font size: points as a number, ``"<n>pt"`` or ``"<n>em"``."""
    if isinstance(value, bool):
        raise ThemeError(f"Unsupported font size: {value!r}")
    if isinstance(value, (int, float)):
        if value <= 0:
            raise ThemeError(f"Font size must be positive: {value!r}")
        return float(value)
    match = FONT_SIZE_PATTERN.match(str(value))
    if not match or float(match.group(1)) <= 0:
        raise ThemeError(f"Unsupported font size: {value!r}")
    if match.group(2) == "em":
        return f"{match.group(1)}em"
    return float(match.group(1))


def resolve_font_size(value: FontSize, parent_size: float) -> float:
    if isinstance(value, str):
        return float(value[:-2]) * parent_size
    return float(value)


def split_families(value: str) -> Tuple[str, ...]:
    """``"Inter, Helvetica"`` -> ``("Inter", "Helvetica")``."""
    return tuple(part.strip().strip("'\"") for part in value.split(",") if part.strip())


def is_bold(weight: Union[str, int]) -> bool:
    if isinstance(weight, int):
        return weight >= 600
    return FONT_WEIGHTS[weight]


@dataclass(frozen=True)
class StyleRule:
    """Options a theme sets for one node type; ``None`` means inherit."""

    font_family: Optional[str] = None
    font_size: Optional[FontSize] = None
    font_weight: Optional[Union[str, int]] = None
    font_style: Optional[str] = None
    color: Optional[Color] = None
    background_color: Optional[Color] = None
    border_color: Optional[Color] = None
    margin_top: Optional[float] = None
    margin_bottom: Optional[float] = None
    line_height: Optional[float] = None
    indent: Optional[float] = None

    def merged(self, other: "StyleRule") -> "StyleRule":
        """Return a rule where every option ``other`` sets wins."""
        overrides = {
            item.name: getattr(other, item.name)
            for item in fields(other)
            if getattr(other, item.name) is not None
        }
        return replace(self, **overrides)

    @classmethod
    def from_mapping(cls, key: str, data: Mapping[str, Any]) -> "StyleRule":
        if not isinstance(data, Mapping):
            raise ThemeError(f"Style for '{key}' must be an object")
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ThemeError(f"Unknown style option(s) for '{key}': {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for name, raw in data.items():
            if raw is None:
                continue
            if name in COLOR_OPTIONS:
                values[name] = parse_color(str(raw))
            elif name == "font_size":
                values[name] = parse_font_size(raw)
            elif name == "font_family":
                if not isinstance(raw, str) or not split_families(raw):
                    raise ThemeError(f"'{key}.font_family' must be a non-empty string")
                values[name] = raw
            elif name == "font_weight":
                if isinstance(raw, int) and not isinstance(raw, bool):
                    values[name] = raw
                elif isinstance(raw, str) and raw.lower() in FONT_WEIGHTS:
                    values[name] = raw.lower()
                else:
                    raise ThemeError(f"Unsupported font weight for '{key}': {raw!r}")
            elif name == "font_style":
                if not isinstance(raw, str) or raw.lower() not in FONT_STYLES:
                    raise ThemeError(f"Unsupported font style for '{key}': {raw!r}")
                values[name] = "italic" if raw.lower() != "normal" else "normal"
            elif name == "line_height":
                values[name] = _number(key, name, raw, minimum=0.5)
            else:
                values[name] = _number(key, name, raw, minimum=0.0)
        return cls(**values)


def _number(key: str, name: str, raw: Any, minimum: float) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ThemeError(f"'{key}.{name}' must be a number, got {raw!r}")
    if raw < minimum:
        raise ThemeError(f"'{key}.{name}' must be at least {minimum}, got {raw!r}")
    return float(raw)


@dataclass(frozen=True)
class Stylesheet:
    name: str
    rules: Mapping[str, StyleRule] = field(default_factory=dict)
    page_background: Optional[Color] = None

    def rule_for(self, key: str) -> StyleRule:
        return self.rules.get(key, EMPTY_RULE)

    def with_rules(self, overrides: Mapping[str, StyleRule], name: Optional[str] = None) -> "Stylesheet":
        """Return a copy whose rules are merged with ``overrides``."""
        rules = dict(self.rules)
        for key, rule in overrides.items():
            if key not in NODE_KEYS:
                raise ThemeError(f"Unknown node type '{key}'")
            rules[key] = rules.get(key, EMPTY_RULE).merged(rule)
        return Stylesheet(name=name or self.name, rules=rules, page_background=self.page_background)


EMPTY_RULE = StyleRule()


def _rules(spec: Mapping[str, Mapping[str, Any]]) -> Dict[str, StyleRule]:
    return {key: StyleRule.from_mapping(key, value) for key, value in spec.items()}


_GITHUB_BASE: Dict[str, Dict[str, Any]] = {
    "document": {"font_family": "Helvetica", "font_size": 11, "line_height": 1.5},
    "heading": {"font_weight": "bold", "margin_top": 18, "margin_bottom": 10, "line_height": 1.25},
    "heading1": {"font_size": "2em"},
    "heading2": {"font_size": "1.5em"},
    "heading3": {"font_size": "1.25em"},
    "heading4": {"font_size": "1em"},
    "heading5": {"font_size": "0.875em"},
    "heading6": {"font_size": "0.85em"},
    "paragraph": {"margin_top": 0, "margin_bottom": 10},
    "list": {"margin_top": 0, "margin_bottom": 10, "indent": 20},
    "list_item": {"margin_top": 2},
    "code_block": {"font_family": "Courier", "font_size": "0.85em", "line_height": 1.45, "margin_bottom": 10},
    "block_quote": {"indent": 14, "margin_bottom": 10},
    "table": {"margin_bottom": 10},
    "table_header": {"font_weight": "bold"},
    "thematic_break": {"margin_top": 12, "margin_bottom": 12},
    "image": {"margin_bottom": 10},
    "code_span": {"font_family": "Courier", "font_size": "0.85em"},
}

_GITHUB_LIGHT_COLORS: Dict[str, Dict[str, Any]] = {
    "document": {"color": "#1f2328"},
    "heading2": {"border_color": "#d1d9e0"},
    "heading6": {"color": "#59636e"},
    "code_block": {"background_color": "#f6f8fa"},
    "block_quote": {"color": "#59636e", "border_color": "#d1d9e0"},
    "table": {"border_color": "#d1d9e0"},
    "table_header": {"background_color": "#f6f8fa"},
    "thematic_break": {"border_color": "#d1d9e0"},
    "link": {"color": "#0969da"},
}

_GITHUB_DARK_COLORS: Dict[str, Dict[str, Any]] = {
    "document": {"color": "#f0f6fc"},
    "heading2": {"border_color": "#3d444d"},
    "heading6": {"color": "#9198a1"},
    "code_block": {"background_color": "#151b23"},
    "block_quote": {"color": "#9198a1", "border_color": "#3d444d"},
    "table": {"border_color": "#3d444d"},
    "table_header": {"background_color": "#151b23"},
    "thematic_break": {"border_color": "#3d444d"},
    "link": {"color": "#4493f8"},
}


def _github(name: str, colors: Mapping[str, Mapping[str, Any]], background: Optional[str]) -> Stylesheet:
    base = Stylesheet(name=name, rules=_rules(_GITHUB_BASE))
    sheet = base.with_rules(_rules(colors))
    return replace(sheet, page_background=parse_color(background) if background else None)


GITHUB_LIGHT = _github("github-light", _GITHUB_LIGHT_COLORS, None)
GITHUB_DARK = _github("github-dark", _GITHUB_DARK_COLORS, "#0d1117")
# printed output has no colour scheme preference, so "auto" prints light
GITHUB_AUTO = replace(GITHUB_LIGHT, name="github-auto")

BUILTIN_THEMES: Dict[str, Stylesheet] = {
    sheet.name: sheet for sheet in (GITHUB_LIGHT, GITHUB_DARK, GITHUB_AUTO)
}


def theme_from_mapping(data: Mapping[str, Any], source: str = "<theme>") -> Stylesheet:
    if not isinstance(data, Mapping):
        raise ThemeError(f"Theme {source} must be a JSON object")
    unknown = sorted(set(data) - {"name", "extends", "page_background", "styles"})
    if unknown:
        raise ThemeError(f"Unknown theme key(s) in {source}: {', '.join(unknown)}")

    extends = data.get("extends", DEFAULT_THEME)
    if extends not in BUILTIN_THEMES:
        raise ThemeError(
            f"Theme {source} extends unknown theme '{extends}'. "
            f"Use one of {', '.join(sorted(BUILTIN_THEMES))}."
        )
    styles = data.get("styles", {})
    if not isinstance(styles, Mapping):
        raise ThemeError(f"'styles' in {source} must be an object")
    unknown_nodes = sorted(set(styles) - set(NODE_KEYS))
    if unknown_nodes:
        raise ThemeError(f"Unknown node type(s) in {source}: {', '.join(unknown_nodes)}")

    sheet = BUILTIN_THEMES[extends].with_rules(_rules(styles), name=str(data.get("name") or source))
    if "page_background" in data:
        background = data["page_background"]
        sheet = replace(sheet, page_background=parse_color(str(background)) if background else None)
    return sheet


def load_theme(spec: Union[str, Path, Stylesheet, None] = None) -> Stylesheet:
    """Return a built-in theme by name or load a JSON theme file."""
    if spec is None:
        return BUILTIN_THEMES[DEFAULT_THEME]
    if isinstance(spec, Stylesheet):
        return spec
    name = str(spec).strip()
    if name.lower() in BUILTIN_THEMES:
        return BUILTIN_THEMES[name.lower()]

    path = Path(name).expanduser()
    if path.suffix.lower() != ".json" and not path.exists():
        raise ThemeError(
            f"Unrecognized theme '{spec}'. "
            f"Use one of {', '.join(sorted(BUILTIN_THEMES))} "
            "or provide the path to a JSON theme file."
        )
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ThemeError(f"Invalid theme file {path}: {exc}") from exc
    sheet = theme_from_mapping(data, source=str(path))
    LOGGER.debug("Loaded theme '%s' from %s", sheet.name, path)
    return sheet
