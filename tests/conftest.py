import random

import pytest

from evo.config import NEATConfig
from evo.innovation import InnovationCounter
from fitness.track_distance import Waypoint


@pytest.fixture
def innovations():
    """A fresh counter so tests never share the process-wide registry."""
    return InnovationCounter()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def config():
    return NEATConfig()


@pytest.fixture
def square_waypoints():
    """10x10 square loop, one unit of track per unit of x/z."""
    return [Waypoint(0.0, 0.0), Waypoint(10.0, 0.0), Waypoint(10.0, 10.0), Waypoint(0.0, 10.0)]
