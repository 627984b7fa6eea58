"""Tests for slot time parsing, country offsets and contact normalization."""

from datetime import date, datetime

import pytest

from baroni.utils.contact import normalize_contact
from baroni.utils.timezone import (
    convert_local_to_utc,
    get_country_offset,
    normalize_slot,
    normalize_time,
    parse_legacy_start,
    parse_ymd,
    slot_start_minutes,
)


def test_normalize_time_accepts_24h_and_ampm():
    assert normalize_time("9:05") == "09:05"
    assert normalize_time("23:59") == "23:59"
    assert normalize_time("9:30 AM") == "09:30"
    assert normalize_time("12:00 AM") == "00:00"
    assert normalize_time("12:15 pm") == "12:15"
    assert normalize_time("1:45 PM") == "13:45"


@pytest.mark.parametrize("bad", ["24:00", "9:60", "13:00 PM", "noon", ""])
def test_normalize_time_rejects_garbage(bad):
    with pytest.raises(ValueError):
        normalize_time(bad)


def test_normalize_slot_canonical_form():
    assert normalize_slot("9:00 AM-9:20 AM") == "09:00 - 09:20"
    assert normalize_slot(" 14:00 - 14:20 ") == "14:00 - 14:20"
    with pytest.raises(ValueError):
        normalize_slot("14:00")


def test_slot_start_minutes_handles_legacy_strings():
    assert slot_start_minutes("09:30 AM - 09:50 AM") == 570
    assert slot_start_minutes("14:00 - 14:20") == 840
    assert slot_start_minutes("whenever") is None


def test_country_offsets():
    assert get_country_offset("India") == 5.5
    assert get_country_offset("india") == 5.5
    assert get_country_offset("Mali") == 0
    assert get_country_offset("Atlantis") == 0
    assert get_country_offset(None) == 0


def test_convert_local_to_utc_applies_offset():
    assert convert_local_to_utc("2026-03-11", "10:00 - 10:20", "India") == datetime(2026, 3, 11, 4, 30)
    assert convert_local_to_utc("2026-03-11", "10:00 - 10:20", "Senegal") == datetime(2026, 3, 11, 10, 0)


def test_convert_local_to_utc_crosses_midnight_backwards():
    assert convert_local_to_utc("2026-03-11", "02:00 - 02:20", "IN") == datetime(2026, 3, 10, 20, 30)


def test_unparseable_inputs_yield_none():
    assert convert_local_to_utc("11/03/2026", "10:00 - 10:20", "Mali") is None
    assert parse_legacy_start("2026-03-11", "soon") is None


def test_parse_ymd():
    assert parse_ymd("2026-03-11") == date(2026, 3, 11)
    with pytest.raises(ValueError):
        parse_ymd("2026/03/11")


def test_normalize_contact():
    assert normalize_contact(" 223 70 00 00 02 ") == "+22370000002"
    assert normalize_contact("+22370000002") == "+22370000002"
    assert normalize_contact("   ") is None
    assert normalize_contact(None) is None
