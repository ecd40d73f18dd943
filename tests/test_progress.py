from types import SimpleNamespace

from lms.services.progress import (
    PLACEHOLDER, average, clamp_percent, label, overall_progress, percentage, round_half_up, unique_by_id,
)


def test_percentage_edges():
    assert percentage(0, 0) == 0
    assert percentage(3, 0) == 0
    assert percentage(5, 10) == 50
    assert percentage(3, 4) == 75
    assert percentage(15, 10) == 100
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67


def test_percentage_never_negative():
    assert percentage(-2, 4) == 0


def test_round_half_up_is_not_bankers_rounding():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(84.5) == 85
    assert round_half_up(84.49) == 84


def test_average():
    assert average([]) == 0
    assert average([80, 90, 70]) == 80
    assert average([83, 87]) == 85
    assert average([84, 85]) == 85
    assert average([None, 90, None]) == 90
    assert average([None]) == 0


def test_overall_progress_clamps_inputs():
    assert overall_progress(50, 100) == 75
    assert overall_progress(0, 0) == 0
    assert overall_progress(150, 100) == 100
    assert overall_progress(33, 34) == 34
    assert clamp_percent(-5) == 0


def test_unique_by_id_keeps_first_occurrence():
    a1 = SimpleNamespace(id=1, tag="first")
    a2 = SimpleNamespace(id=1, tag="second")
    b = SimpleNamespace(id=2, tag="b")
    result = unique_by_id([a1, b, a2])
    assert [item.tag for item in result] == ["first", "b"]


def test_unique_by_id_accepts_dicts_and_custom_key():
    rows = [{"id": 3}, {"id": 3}, {"id": 4}]
    assert unique_by_id(rows) == [{"id": 3}, {"id": 4}]
    assert unique_by_id(["aa", "ab", "b"], key=lambda s: s[0]) == ["aa", "b"]


def test_label_placeholder():
    assert label("Kelas 1A") == "Kelas 1A"
    assert label(None) == PLACEHOLDER
    assert label("") == PLACEHOLDER
