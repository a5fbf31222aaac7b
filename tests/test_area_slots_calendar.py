"""Unit tests for location privacy, hour slots, calendars and local time."""

from datetime import datetime, timedelta, timezone

import h3
import pytest

from pickup_coord.domain import clock
from pickup_coord.domain.area import area_cell, destination_type, extract_area
from pickup_coord.domain.calendar import count_by_day, month_bounds, summarize_by_day
from pickup_coord.domain.enums import DestinationType
from pickup_coord.domain.errors import ValidationFailed
from pickup_coord.domain.slots import same_day, slot_bounds, slot_key


class TestExtractArea:
    def test_metropolitan_address(self):
        assert extract_area("서울특별시 강남구 역삼동 123-4") == "강남구 역삼동"

    def test_province_address_with_neighbourhood(self):
        assert extract_area("경기도 성남시 분당구 정자동 178-1") == "분당구 정자동"

    def test_province_address_district_only(self):
        assert extract_area("경기도 성남시 분당구") == "분당구"

    def test_unparseable_returned_as_is(self):
        assert extract_area("Gangnam Station Exit 3") == "Gangnam Station Exit 3"

    @pytest.mark.parametrize("empty", [None, ""])
    def test_empty(self, empty):
        assert extract_area(empty) == ""


class TestDestinationType:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("대치 수학학원", DestinationType.ACADEMY),
            ("Seoul English Academy", DestinationType.ACADEMY),
            ("서초고등학교", DestinationType.SCHOOL),
            ("Daechi Middle School", DestinationType.SCHOOL),
            ("우리집", DestinationType.HOME),
            ("Coex Mall", DestinationType.OTHER),
            (None, DestinationType.OTHER),
        ],
    )
    def test_keyword_classification(self, text, expected):
        assert destination_type(text) == expected


class TestAreaCell:
    def test_coarse_cell_at_configured_resolution(self):
        cell = area_cell(37.5006, 127.0364, resolution=7)
        assert h3.is_valid_cell(cell)
        assert h3.get_resolution(cell) == 7

    def test_cell_contains_the_point(self):
        cell = area_cell(37.5006, 127.0364)
        assert h3.latlng_to_cell(37.5006, 127.0364, 7) == cell


class TestSlots:
    def test_slot_key(self):
        assert slot_key(datetime(2026, 1, 7, 15, 30)) == "2026-01-07-15"

    def test_slot_bounds_half_open(self):
        start, end = slot_bounds(datetime(2026, 1, 7, 15, 59, 59))
        assert start == datetime(2026, 1, 7, 15, 0)
        assert end == datetime(2026, 1, 7, 16, 0)

    def test_same_day(self):
        assert same_day(datetime(2026, 1, 7, 0, 0), datetime(2026, 1, 7, 23, 59))
        assert not same_day(datetime(2026, 1, 7, 23, 59), datetime(2026, 1, 8, 0, 0))


class TestCalendar:
    def test_month_bounds(self):
        assert month_bounds("2026-03") == (datetime(2026, 3, 1), datetime(2026, 4, 1))

    def test_december_rolls_over(self):
        assert month_bounds("2026-12") == (datetime(2026, 12, 1), datetime(2027, 1, 1))

    @pytest.mark.parametrize("bad", ["2026-13", "2026-3", "March", ""])
    def test_bad_month(self, bad):
        with pytest.raises(ValidationFailed, match="YYYY-MM"):
            month_bounds(bad)

    def test_count_by_day(self):
        moments = [
            datetime(2026, 3, 10, 9),
            datetime(2026, 3, 10, 18),
            datetime(2026, 3, 11, 7),
        ]
        assert count_by_day(moments) == {"2026-03-10": 2, "2026-03-11": 1}

    def test_summarize_by_day(self):
        rows = [
            (datetime(2026, 3, 11, 7), "REQUESTED"),
            (datetime(2026, 3, 10, 9), "MATCHED"),
            (datetime(2026, 3, 10, 18), "CANCELLED"),
            (datetime(2026, 3, 10, 19), "MATCHED"),
        ]
        summary = summarize_by_day(rows)
        assert list(summary) == ["2026-03-10", "2026-03-11"]
        assert summary["2026-03-10"] == {"count": 3, "statuses": ["CANCELLED", "MATCHED"]}


class TestClock:
    def test_naive_input_is_already_local(self):
        moment = datetime(2026, 3, 10, 12, 0)
        assert clock.to_local(moment) == moment

    def test_aware_input_converted_to_local(self):
        utc = datetime(2026, 3, 10, 3, 0, tzinfo=timezone.utc)
        assert clock.to_local(utc) == datetime(2026, 3, 10, 12, 0)

    def test_now_is_naive(self):
        assert clock.now().tzinfo is None
        assert abs(
            clock.now() - clock.to_local(datetime.now(timezone.utc))
        ) < timedelta(minutes=1)
