import pytest

from fitness.car_fitness import (
    FitnessMetrics,
    FitnessTracker,
    FitnessWeights,
    SensorReading,
    inactivity_penalty,
    score_fitness,
)
from fitness.evaluator import calculate_bonus_fitness, detect_problematic_behavior
from fitness.track_distance import TrackDistanceTracker


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def car(square_waypoints, clock):
    return FitnessTracker("car", (0.0, 0.0, 0.0), square_waypoints, clock=clock)


def test_score_floor_and_no_checkpoint_cap():
    """Without checkpoints the score stays in [0.1, 1.0]."""
    idle = FitnessMetrics()
    busy = FitnessMetrics(distance_traveled=40.0, average_speed=5.0)
    crashed = FitnessMetrics(collisions=3, backward_movement=20.0)

    assert score_fitness(idle) == pytest.approx(0.1)
    assert score_fitness(busy, sensor_bonus=8.0) == pytest.approx(1.0)
    assert score_fitness(crashed) == pytest.approx(0.1)


def test_score_terms_with_checkpoints():
    metrics = FitnessMetrics(distance_traveled=10.0, average_speed=2.0, checkpoints_reached=2, time_alive=20.0)

    # 12 + 6 + 3 + 2*180 + 4*40
    assert score_fitness(metrics, sensor_bonus=3.0) == pytest.approx(541.0)
    # lap bonus max(120 - 10, 40)
    assert score_fitness(metrics, sensor_bonus=3.0, lap_completed=True) == pytest.approx(651.0)


def test_score_caps_bonuses():
    metrics = FitnessMetrics(distance_traveled=1000.0, average_speed=100.0, checkpoints_reached=1)

    assert score_fitness(metrics, sensor_bonus=100.0) == pytest.approx(60.0 + 10.0 + 8.0 + 180.0 + 40.0)


def test_score_penalties():
    metrics = FitnessMetrics(checkpoints_reached=1, collisions=1, backward_movement=5.0)
    base = 180.0 + 40.0 - 30.0 - 6.0

    assert score_fitness(metrics) == pytest.approx(base)
    assert score_fitness(metrics, seconds_since_progress=9.0) == pytest.approx(base - 16.0)
    assert score_fitness(metrics, steering_penalty=-1.5) == pytest.approx(base - 1.5)


def test_lap_bonus_floor():
    metrics = FitnessMetrics(checkpoints_reached=1, time_alive=400.0)

    assert score_fitness(metrics, lap_completed=True) - score_fitness(metrics) == pytest.approx(40.0)


@pytest.mark.parametrize("seconds, expected", [(0.0, 0.0), (4.0, 0.0), (4.5, -1.0), (6.5, -4.0), (8.5, -8.0)])
def test_inactivity_stages(seconds, expected):
    assert inactivity_penalty(seconds) == expected


def test_more_checkpoints_never_scores_lower():
    """With everything else fixed, fitness grows with checkpoints."""
    scores = [
        score_fitness(FitnessMetrics(distance_traveled=20.0, average_speed=3.0, checkpoints_reached=n, collisions=1))
        for n in range(0, 8)
    ]

    assert scores == sorted(scores)


def test_custom_weights():
    weights = FitnessWeights(checkpoint_linear=1.0, checkpoint_quadratic=0.0, minimum_fitness=0.0)

    assert score_fitness(FitnessMetrics(checkpoints_reached=3), weights=weights) == pytest.approx(3.0)


def test_tracker_accumulates_progress(car, clock):
    clock.now += 1.0
    car.update((5.0, 0.0, 0.0), (4.0, 0.0, 0.0))

    metrics = car.fitness_metrics()
    assert metrics.distance_traveled == pytest.approx(5.0)
    assert metrics.time_alive == pytest.approx(1.0)
    assert metrics.average_speed == pytest.approx(4.0)
    assert metrics.backward_movement == 0.0


def test_tracker_counts_backward_movement(car, clock):
    car.update((5.0, 0.0, 0.0), (4.0, 0.0, 0.0))
    car.update((3.0, 0.0, 0.0), (-2.0, 0.0, 0.0))

    assert car.fitness_metrics().backward_movement == pytest.approx(2.0)


def test_speed_window_keeps_last_sixty_samples(car):
    for _ in range(60):
        car.update((0.0, 0.0, 0.0), (0.0, 0.0, 0.0))
    for _ in range(60):
        car.update((0.0, 0.0, 0.0), (3.0, 0.0, 4.0))

    assert car.fitness_metrics().average_speed == pytest.approx(5.0)


def test_start_waypoint_is_not_a_checkpoint(car):
    """Cars spawn on waypoint 0; passing it does not score."""
    car.update((0.5, 0.0, 0.0), (1.0, 0.0, 0.0))

    assert car.current_waypoint_index == 1
    assert car.fitness_metrics().checkpoints_reached == 0


def test_full_lap(car, clock):
    """Visiting every waypoint in order completes the lap."""
    for x, z in [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]:
        clock.now += 1.0
        car.update((x, 0.0, z), (1.0, 0.0, 0.0))

    assert car.is_lap_completed()
    assert car.fitness_metrics().checkpoints_reached == 3
    assert car.progress() == pytest.approx(75.0)
    assert car.waypoint_times == pytest.approx([1.0, 2.0, 3.0, 4.0])


def test_checkpoints_must_be_taken_in_order(car):
    car.update((0.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    car.update((10.0, 0.0, 10.0), (0.0, 0.0, 1.0))

    assert car.current_waypoint_index == 1
    assert car.fitness_metrics().checkpoints_reached == 0


def test_timeout_after_five_seconds_without_progress(car, clock):
    clock.now += 5.0
    assert not car.has_timeout()

    clock.now += 0.1
    assert car.has_timeout()

    car.update((5.0, 0.0, 0.0), (3.0, 0.0, 0.0))
    assert not car.has_timeout()


def test_sensor_bonus(car):
    car.update_sensor_fitness(SensorReading(1.0, 1.0, 1.0, 1.0, 1.0))
    assert car.sensor_bonus == pytest.approx(5 * 0.07 + 0.12 + 0.03)

    car.sensor_bonus = 0.0
    car.update_sensor_fitness(SensorReading(0.1, 0.5, 0.5, 0.5, 0.2))
    assert car.sensor_bonus == pytest.approx(-0.16)


def test_steering_oscillation_penalty(car):
    for _ in range(80):
        car.record_steering(1.0)
    assert car.steering_penalty == 0.0

    car.record_steering(1.0)
    assert car.steering_penalty == pytest.approx(-0.5)

    # The window holds 120 samples: the sum only drops below -80 once 101
    # negative samples are in, leaving 19 more penalties.
    for _ in range(119):
        car.record_steering(-1.0)
    assert car.steering_penalty == pytest.approx(-0.5 * 20)


def test_collisions_are_penalized(car, clock):
    car.update((0.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    car.update((10.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    before = car.calculate_fitness()

    car.record_collision()

    assert car.fitness_metrics().collisions == 1
    assert car.calculate_fitness() == pytest.approx(before - 30.0)


def test_low_speed_heading_falls_back_to_next_waypoint(car):
    """Without meaningful velocity the heading points at the next waypoint."""
    car.update((0.5, 0.0, 0.0), (0.0, 0.0, 0.0))

    result = car.update((3.0, 0.0, 0.0), (0.05, 0.0, 0.0))

    assert result.is_going_forward
    assert result.distance_delta == pytest.approx(2.5)


def test_reset_and_destroy(car, clock, square_waypoints):
    shared = car.tracker
    car.update((5.0, 0.0, 0.0), (3.0, 0.0, 0.0))
    car.record_collision()

    car.reset((0.0, 0.0, 0.0))
    assert car.fitness_metrics() == FitnessMetrics()
    assert car.current_waypoint_index == 0

    car.destroy()
    assert shared.car_state("car") is None


def test_shared_track_tracker(square_waypoints, clock):
    shared = TrackDistanceTracker(square_waypoints)
    first = FitnessTracker("a", (0.0, 0.0, 0.0), square_waypoints, tracker=shared, clock=clock)
    second = FitnessTracker("b", (5.0, 0.0, 0.0), square_waypoints, tracker=shared, clock=clock)

    first.update((2.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    second.update((9.0, 0.0, 0.0), (1.0, 0.0, 0.0))

    assert first.fitness_metrics().distance_traveled == pytest.approx(2.0)
    assert second.fitness_metrics().distance_traveled == pytest.approx(4.0)


def test_problem_detection():
    metrics = FitnessMetrics(collisions=6, average_speed=0.2, backward_movement=11.0, time_alive=2.0)

    assert detect_problematic_behavior(metrics) == [
        "Too many collisions",
        "Too slow",
        "Too much backward movement",
        "Dies too quickly",
    ]
    assert detect_problematic_behavior(FitnessMetrics(average_speed=4.0, time_alive=10.0)) == []


def test_bonus_fitness():
    clean = FitnessMetrics(checkpoints_reached=5, average_speed=5.0, time_alive=31.0)
    messy = FitnessMetrics(checkpoints_reached=5, average_speed=7.0, time_alive=31.0, collisions=1)

    assert calculate_bonus_fitness(clean) == pytest.approx(4.5)
    assert calculate_bonus_fitness(messy) == 0.0
