"""
Tests for the visible-area constraint validator.
"""

import pytest

from llm_arrange.models import Display, Rect, WindowState
from llm_arrange.validator import (
    calculate_overlaps,
    symbolic_analysis,
    validate,
    visible_area,
    window_keys,
)

pytestmark = pytest.mark.unit


def _win(app, x, y, w, h, layer=0, window_id=None, **kwargs):
    return WindowState(app, window_id or app, Rect(x, y, w, h), layer, **kwargs)


def test_rect_subtract_keeps_uncovered_area():
    outer = Rect(0, 0, 100, 100)
    pieces = outer.subtract(Rect(25, 25, 50, 50))
    assert len(pieces) == 4
    assert sum(p.area for p in pieces) == pytest.approx(10000 - 2500)


def test_rect_subtract_disjoint_and_full_cover():
    rect = Rect(0, 0, 10, 10)
    assert rect.subtract(Rect(20, 20, 5, 5)) == [rect]
    assert rect.subtract(Rect(-5, -5, 50, 50)) == []


def test_empty_snapshot_is_valid():
    result = validate([])
    assert result.is_valid
    assert result.violations == ()


def test_half_covered_screen_scenario(display):
    """Full-screen A under a quarter-screen B keeps 972000px² visible."""
    windows = [
        _win("A", 0, 0, 1440, 900, layer=0),
        _win("B", 0, 0, 720, 450, layer=1),
    ]
    result = validate(windows, [display])
    assert result.is_valid
    assert result.visible_areas["A"] == pytest.approx(972000)
    assert result.visible_areas["B"] == pytest.approx(324000)


def test_non_overlapping_windows_have_no_violations():
    windows = [
        _win("A", 0, 0, 100, 100),
        _win("B", 100, 0, 200, 100),
        _win("C", 0, 100, 300, 300),
    ]
    assert validate(windows).is_valid


def test_fully_covered_window_is_violation():
    windows = [
        _win("Back", 100, 100, 400, 300, layer=0),
        _win("Front", 0, 0, 800, 600, layer=5),
    ]
    result = validate(windows)
    assert not result.is_valid
    (violation,) = result.violations
    assert violation.window_key == "Back"
    assert violation.actual_area == 0
    assert violation.required_area == 10000
    assert violation.difference == 10000


def test_equal_layers_later_window_is_in_front():
    windows = [_win("First", 0, 0, 500, 500), _win("Second", 0, 0, 500, 500)]
    assert visible_area(windows, 0) == 0
    assert visible_area(windows, 1) == pytest.approx(250000)


def test_higher_layer_beats_list_order():
    windows = [_win("Top", 0, 0, 500, 500, layer=3), _win("Bottom", 0, 0, 500, 500, layer=1)]
    assert visible_area(windows, 0) == pytest.approx(250000)
    assert visible_area(windows, 1) == 0


def test_minimized_windows_neither_occlude_nor_count():
    windows = [
        _win("Visible", 0, 0, 500, 500),
        _win("Hidden", 0, 0, 500, 500, layer=9, minimized=True),
    ]
    result = validate(windows)
    assert result.is_valid
    assert "Hidden" not in result.visible_areas
    assert result.visible_areas["Visible"] == pytest.approx(250000)
    assert visible_area(windows, 1) == 0


def test_off_screen_window_is_violation(display):
    windows = [_win("Lost", 5000, 5000, 800, 600)]
    result = validate(windows, [display])
    assert not result.is_valid
    assert result.violations[0].actual_area == 0


def test_partially_off_screen_window_is_clipped(display):
    windows = [_win("Edge", 1340, 0, 400, 900)]
    assert visible_area(windows, 0, [display]) == pytest.approx(100 * 900)


def test_windows_on_other_displays_do_not_occlude():
    displays = [Display(0, 1440, 900), Display(1, 1920, 1080, x=1440)]
    windows = [
        _win("Main", 0, 0, 800, 600),
        _win("Side", 1440, 0, 1920, 1080, layer=4, display_index=1),
    ]
    result = validate(windows, displays)
    assert result.visible_areas["Main"] == pytest.approx(480000)
    assert result.visible_areas["Side"] == pytest.approx(1920 * 1080)


def test_duplicate_apps_are_keyed_by_window_id():
    windows = [
        _win("Terminal", 0, 0, 400, 400, window_id="1"),
        _win("Terminal", 500, 0, 400, 400, window_id="2"),
        _win("Safari", 0, 500, 400, 400),
    ]
    assert window_keys(windows) == ["Terminal#1", "Terminal#2", "Safari"]
    assert set(validate(windows).visible_areas) == {"Terminal#1", "Terminal#2", "Safari"}


def test_custom_minimum_area():
    windows = [_win("Small", 0, 0, 50, 50)]
    assert not validate(windows).is_valid
    assert validate(windows, min_area=2000).is_valid


def test_overlaps_are_reported_pairwise():
    windows = [
        _win("A", 0, 0, 200, 200),
        _win("B", 100, 100, 200, 200),
        _win("C", 1000, 1000, 10, 10),
    ]
    (overlap,) = calculate_overlaps(windows)
    assert (overlap.first, overlap.second) == ("A", "B")
    assert overlap.rect == Rect(100, 100, 100, 100)
    assert overlap.symbolic == "A∩B = [100,100,100,100] = 10000px²"


def test_symbolic_analysis_reports_violations():
    windows = [
        _win("Back", 0, 0, 400, 300),
        _win("Front", 0, 0, 400, 300, layer=1),
    ]
    report = symbolic_analysis(windows)
    assert "Front[0,0,400,300,L1]" in report
    assert "Back∩Front" in report
    assert "✗ 1 constraint violations found" in report
    assert "Back: 0px² visible (need 10000px²)" in report


def test_symbolic_analysis_valid_layout():
    report = symbolic_analysis([_win("Solo", 0, 0, 400, 300)])
    assert "✓ All windows keep at least 10000px² visible" in report
    assert "- none" in report


def test_off_screen_window_without_displays_is_violation():
    result = validate([_win("Ghost", 5000, 5000, 800, 600)])
    assert not result.is_valid
    assert result.visible_areas["Ghost"] == 0
    assert result.violations[0].actual_area == 0


def test_default_display_clips_partially_off_screen_window():
    windows = [_win("Edge", 1340, 0, 400, 900)]
    assert visible_area(windows, 0) == pytest.approx(100 * 900)


def test_repeated_window_ids_get_distinct_keys():
    windows = [
        _win("Terminal", 0, 0, 400, 400, window_id="1"),
        _win("Terminal", 500, 0, 400, 400, window_id="1"),
    ]
    assert window_keys(windows) == ["Terminal#1", "Terminal#1@1"]
    areas = validate(windows).visible_areas
    assert areas == {"Terminal#1": pytest.approx(160000), "Terminal#1@1": pytest.approx(160000)}


def test_symbolic_analysis_reuses_given_result():
    windows = [_win("Solo", 0, 0, 400, 300)]
    result = validate(windows, min_area=10 ** 9)
    report = symbolic_analysis(windows, min_area=10 ** 9, result=result)
    assert "✗ 1 constraint violations found" in report
