import math
import random

import pytest

from geo import EARTH_RADIUS_MILES, distance, within_reach
from schemas import Position


def pos(lat, lng):
    return Position(latitude=lat, longitude=lng)


def test_distance_to_self_is_zero():
    p = pos(40.7589, -73.9851)
    assert distance(p, p) == 0


def test_distance_is_symmetric():
    rng = random.Random(7)
    for _ in range(100):
        a = pos(rng.uniform(-89, 89), rng.uniform(-179, 179))
        b = pos(rng.uniform(-89, 89), rng.uniform(-179, 179))
        assert distance(a, b) == pytest.approx(distance(b, a))


def test_known_distances():
    x = pos(40.0, -73.0)
    assert distance(x, pos(40.01, -73.0)) == pytest.approx(0.69, abs=0.01)
    assert distance(x, pos(41.0, -73.0)) == pytest.approx(69.1, abs=0.2)


def test_distance_grows_with_separation():
    origin = pos(10.0, 20.0)
    previous = 0.0
    for step in range(1, 50):
        d = distance(origin, pos(10.0 + step * 0.5, 20.0))
        assert d > previous
        previous = d


def test_antipodal_points():
    assert distance(pos(0, 0), pos(0, 180)) == pytest.approx(math.pi * EARTH_RADIUS_MILES)


def test_within_reach_uses_larger_radius_inclusively():
    a = pos(40.0, -73.0)
    b = pos(40.01, -73.0)
    d = distance(a, b)
    assert within_reach(a, d, b, 0.1)
    assert within_reach(a, 0.1, b, d)
    assert not within_reach(a, d * 0.99, b, d * 0.5)
