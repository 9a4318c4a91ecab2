from datetime import date, datetime, time

import pytest

from bydbio.availability import compute_slots, parse_hhmm, to_12h, to_24h
from bydbio.errors import InvalidScheduleError

DAY = date(2030, 1, 7)
MIDNIGHT = datetime(2030, 1, 7, 0, 0)


def window(start: str, end: str) -> dict:
    return {"enabled": True, "start_time": start, "end_time": end}


def test_one_hour_window_yields_two_slots():
    assert compute_slots(DAY, window("09:00", "10:00"), set(), MIDNIGHT) == ["9:00 AM", "9:30 AM"]


def test_booked_start_is_excluded():
    assert compute_slots(DAY, window("09:00", "10:00"), {"09:00"}, MIDNIGHT) == ["9:30 AM"]


def test_past_slots_are_excluded():
    now = datetime(2030, 1, 7, 9, 15)
    assert compute_slots(DAY, window("09:00", "10:30"), set(), now) == ["9:30 AM", "10:00 AM"]


def test_slot_starting_exactly_now_is_excluded():
    now = datetime(2030, 1, 7, 9, 0)
    assert compute_slots(DAY, window("09:00", "10:00"), set(), now) == ["9:30 AM"]


def test_whole_day_in_the_past_is_empty():
    now = datetime(2030, 1, 8, 0, 0)
    assert compute_slots(DAY, window("09:00", "17:00"), set(), now) == []


def test_slot_must_end_before_window_closes():
    assert compute_slots(DAY, window("09:00", "10:15"), set(), MIDNIGHT) == ["9:00 AM", "9:30 AM"]


def test_longer_duration_drops_late_candidates():
    assert compute_slots(DAY, window("09:00", "10:00"), set(), MIDNIGHT, duration=60) == ["9:00 AM"]


def test_labels_cross_noon():
    assert compute_slots(DAY, window("11:30", "13:00"), set(), MIDNIGHT) == [
        "11:30 AM",
        "12:00 PM",
        "12:30 PM",
    ]


@pytest.mark.parametrize(
    "moment, label",
    [
        (time(0, 0), "12:00 AM"),
        (time(9, 5), "9:05 AM"),
        (time(12, 30), "12:30 PM"),
        (time(23, 30), "11:30 PM"),
    ],
)
def test_to_12h(moment, label):
    assert to_12h(moment) == label


def test_to_24h_pads_hours():
    assert to_24h(datetime(2030, 1, 7, 9, 0)) == "09:00"


def test_parse_hhmm_rejects_garbage():
    with pytest.raises(InvalidScheduleError):
        parse_hhmm("9am")


def test_inverted_window_is_rejected():
    with pytest.raises(InvalidScheduleError):
        compute_slots(DAY, window("10:00", "09:00"), set(), MIDNIGHT)
