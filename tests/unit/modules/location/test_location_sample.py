"""Tests for Sample validation."""

from __future__ import annotations

import math

import pytest

from moodmap.modules.Location.location_core.errors import InvalidSample, LocationStoreError
from moodmap.modules.Location.location_core.sample import Sample


class TestSampleCreate:

    def test_valid_sample(self):
        sample = Sample.create(1000, "48.5", 11)
        assert sample == Sample(1000, 48.5, 11.0)

    def test_boundaries_are_inclusive(self):
        Sample.create(0, -90, -180)
        Sample.create(0, 90, 180)
        Sample.create(2**63 - 1, 0, 0)

    @pytest.mark.parametrize(
        "timestamp, latitude, longitude",
        [
            (-1, 0.0, 0.0),
            (1.5, 0.0, 0.0),
            ("1000", 0.0, 0.0),
            (True, 0.0, 0.0),
            (1000, 90.0001, 0.0),
            (1000, 0.0, -180.5),
            (1000, math.nan, 0.0),
            (1000, 0.0, math.inf),
            (1000, "north", 0.0),
            (1000, None, 0.0),
            (2**63, 0.0, 0.0),
        ],
    )
    def test_invalid_values_raise(self, timestamp, latitude, longitude):
        with pytest.raises(InvalidSample):
            Sample.create(timestamp, latitude, longitude)

    def test_invalid_sample_is_a_value_error(self):
        with pytest.raises(ValueError):
            Sample.create(1000, 100.0, 0.0)
        assert issubclass(InvalidSample, LocationStoreError)


def test_row_and_dict_shapes():
    sample = Sample(1001, 1.5, -2.5)
    assert sample.to_row() == (1001, 1.5, -2.5)
    assert Sample.from_row((1001, 1.5, -2.5)) == sample
    assert sample.to_dict() == {
        "timestamp": 1001,
        "time_utc": "1970-01-01T00:16:41+00:00",
        "latitude": 1.5,
        "longitude": -2.5,
    }
