# -*- coding: utf-8 -*-
"""utils"""
import pytest

from corridor.utils import clamp_int, minutes_between, parse_hhmm, round_half_up


@pytest.mark.parametrize("value,expected", [(2.5, 3), (3.5, 4), (42.49, 42), (0.0, 0)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_clamp_int():
    assert clamp_int(104.6, 0, 100) == 100
    assert clamp_int(-3, 0, 100) == 0
    assert clamp_int(49.5, 0, 100) == 50


def test_parse_hhmm():
    assert parse_hhmm("10:30") == 630
    assert parse_hhmm("7:05") == 425
    assert parse_hhmm("23:59:30") == 1439


@pytest.mark.parametrize("value", ["24:00", "10:60", "1030", "", None])
def test_parse_hhmm_invalid(value):
    with pytest.raises(ValueError):
        parse_hhmm(value)


def test_minutes_between():
    assert minutes_between("10:30", "11:00") == 30
    assert minutes_between("11:00", "10:30") == 30
