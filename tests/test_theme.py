import json

import pytest

from mdrender.errors import ThemeError
from mdrender.theme import (
    BUILTIN_THEMES,
    StyleRule,
    load_theme,
    parse_color,
    parse_font_size,
    resolve_font_size,
    split_families,
    theme_from_mapping,
)


def test_builtin_themes_by_name():
    assert set(BUILTIN_THEMES) == {"github-light", "github-dark", "github-auto"}
    assert load_theme().name == "github-light"
    assert load_theme("GitHub-Dark").page_background == parse_color("#0d1117")
    assert load_theme("github-light").page_background is None


def test_auto_theme_prints_with_light_colours():
    auto = load_theme("github-auto")
    assert auto.rule_for("document") == load_theme("github-light").rule_for("document")


def test_unknown_theme_name_is_rejected():
    with pytest.raises(ThemeError, match="Unrecognized theme 'solarized'"):
        load_theme("solarized")


def test_parse_color_forms():
    assert parse_color("#fff") == (1.0, 1.0, 1.0)
    assert parse_color("#000000") == (0.0, 0.0, 0.0)
    assert parse_color("Warm Yellow") == parse_color("#f6e7c1")
    with pytest.raises(ThemeError):
        parse_color("#12")
    with pytest.raises(ThemeError):
        parse_color("#gggggg")


def test_font_sizes_in_points_and_em():
    assert parse_font_size(12) == 12.0
    assert parse_font_size("9pt") == 9.0
    assert parse_font_size("1.5em") == "1.5em"
    assert resolve_font_size("1.5em", 10.0) == 15.0
    assert resolve_font_size(8.0, 10.0) == 8.0
    for bad in (0, -3, "big", True):
        with pytest.raises(ThemeError):
            parse_font_size(bad)


def test_split_families():
    assert split_families("'Inter', Helvetica , ") == ("Inter", "Helvetica")


def test_rule_merge_keeps_unset_options():
    base = StyleRule(font_family="Helvetica", font_size=11.0)
    merged = base.merged(StyleRule(font_size="2em", font_weight="bold"))
    assert merged == StyleRule(font_family="Helvetica", font_size="2em", font_weight="bold")


def test_rule_from_mapping_rejects_unknown_options():
    with pytest.raises(ThemeError, match="Unknown style option"):
        StyleRule.from_mapping("paragraph", {"font_colour": "#000"})
    with pytest.raises(ThemeError):
        StyleRule.from_mapping("paragraph", {"margin_top": "ten"})
    with pytest.raises(ThemeError):
        StyleRule.from_mapping("paragraph", {"font_weight": "heavy"})


def test_theme_mapping_extends_builtin():
    sheet = theme_from_mapping(
        {
            "name": "custom",
            "extends": "github-dark",
            "styles": {"paragraph": {"color": "red", "font_size": "1.2em"}},
        }
    )
    assert sheet.name == "custom"
    assert sheet.rule_for("paragraph").color == parse_color("#cf222e")
    assert sheet.rule_for("paragraph").margin_bottom == 10
    assert sheet.page_background == parse_color("#0d1117")


def test_theme_mapping_rejects_unknown_nodes_and_keys():
    with pytest.raises(ThemeError, match="Unknown node type"):
        theme_from_mapping({"styles": {"sidebar": {}}})
    with pytest.raises(ThemeError, match="Unknown theme key"):
        theme_from_mapping({"colours": {}})
    with pytest.raises(ThemeError, match="extends unknown theme"):
        theme_from_mapping({"extends": "nord"})


def test_load_theme_from_json_file(tmp_path):
    path = tmp_path / "print.json"
    path.write_text(
        json.dumps({"page_background": "#ffffff", "styles": {"heading1": {"font_size": 30}}}),
        encoding="utf-8",
    )
    sheet = load_theme(str(path))
    assert sheet.name == str(path)
    assert sheet.rule_for("heading1").font_size == 30.0
    assert sheet.page_background == (1.0, 1.0, 1.0)


def test_invalid_json_theme(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ThemeError, match="Invalid theme file"):
        load_theme(path)


def test_missing_json_theme_raises_os_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_theme(tmp_path / "absent.json")
