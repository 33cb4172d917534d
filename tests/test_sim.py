import json
import math
from pathlib import Path

import pytest

from evo.config import NEATConfig
from evo.genome import ConnectionGene, Genome, NodeGene, NodeType
from evo.network import Controls
from evo.population import Population
from fitness.car_fitness import SensorReading
from fitness.track_distance import Waypoint
from sim.car import CarState, SimpleCarModel
from sim.controller import NEATCarController
from sim.env import RaceEnv, SimClock
from sim.sensors import RaySensors, corridor_walls, ray_distance
from sim.track_io import ellipse_track, load_track, parse_track

OVAL = Path(__file__).resolve().parent.parent / "data" / "tracks" / "oval.json"


def _constant_genome(weight=0.0, genome_id="constant"):
    nodes = [NodeGene(i, NodeType.INPUT, 0) for i in range(6)]
    nodes += [NodeGene(6, NodeType.OUTPUT, 1), NodeGene(7, NodeType.OUTPUT, 1)]
    genes = [ConnectionGene(1, 2, 6, weight), ConnectionGene(2, 0, 7, 0.0)]
    return Genome(id=genome_id, node_genes=nodes, connection_genes=genes)


def test_load_shipped_oval_track():
    track = load_track(OVAL)

    assert track.name == "oval"
    assert track.width == 12.0
    assert len(track.waypoints) == 16
    assert track.waypoints == ellipse_track().waypoints


def test_parse_shorthand_track():
    track = parse_track([[0, 0], [10, 0], [10, 10]], name="tri")

    assert track.name == "tri"
    assert track.waypoints[1] == Waypoint(10.0, 0.0, 5.0)
    assert track.start_position() == (0.0, 0.0, 0.0)
    assert track.start_heading() == pytest.approx(math.pi / 2)


@pytest.mark.parametrize(
    "payload, message",
    [
        ([[0, 0]], "at least two waypoints"),
        ([[0, 0, 1], [1, 1]], "two coordinates"),
        ({"waypoints": [{"x": 0}, {"x": 1, "z": 1}]}, "missing 'z'"),
        ({"waypoints": [[0, 0], [1, 1]], "width": -2}, "width must be positive"),
        ({"waypoints": [[0, "a"], [1, 1]]}, "must be a number"),
        ("oval", "must be a list"),
    ],
)
def test_parse_track_errors(payload, message):
    with pytest.raises(ValueError, match=message):
        parse_track(payload)


def test_car_accelerates_along_heading():
    model = SimpleCarModel()

    state = model.step(CarState((0.0, 0.0, 0.0), 0.0), Controls(throttle=1.0, steering=0.0), 1.0)

    assert state.speed == pytest.approx(2.5)
    assert state.position == pytest.approx((0.0, 0.0, 2.5))
    assert state.velocity() == pytest.approx((0.0, 0.0, 2.5))


def test_car_top_speed_brake_and_reverse():
    model = SimpleCarModel()

    assert model.step(CarState((0, 0, 0), 0.0, 9.5), Controls(1.0, 0.0), 1.0).speed == 10.0
    assert model.step(CarState((0, 0, 0), 0.0, 5.0), Controls(-1.0, 0.0), 1.0).speed == pytest.approx(1.0)
    assert model.step(CarState((0, 0, 0), 0.0, 0.0), Controls(-1.0, 0.0), 1.0).speed == pytest.approx(-2.5)
    assert model.step(CarState((0, 0, 0), 0.0, -5.5), Controls(-1.0, 0.0), 1.0).speed == pytest.approx(-6.0)


def test_car_coasts_to_a_stop():
    model = SimpleCarModel()

    assert model.step(CarState((0, 0, 0), 0.0, 5.0), Controls(0.0, 0.0), 1.0).speed == pytest.approx(3.8)
    assert model.step(CarState((0, 0, 0), 0.0, 0.6), Controls(0.05, 0.0), 0.1).speed == 0.0


def test_car_steering_scales_with_speed():
    model = SimpleCarModel()

    slow = model.step(CarState((0, 0, 0), 0.0, 0.5), Controls(0.0, 1.0), 0.1)
    fast = model.step(CarState((0, 0, 0), 0.0, 5.0), Controls(0.0, 1.0), 0.1)
    reverse = model.step(CarState((0, 0, 0), 0.0, -5.0), Controls(0.0, 1.0), 0.1)

    assert slow.rotation == 0.0
    assert fast.rotation == pytest.approx(0.25)
    assert reverse.rotation == pytest.approx(-0.25)


def test_ray_distance_hits_and_misses():
    wall = ((5.0, -10.0), (5.0, 10.0))

    assert ray_distance((0.0, 0.0), (1.0, 0.0), wall) == pytest.approx(5.0)
    assert ray_distance((0.0, 0.0), (-1.0, 0.0), wall) is None
    assert ray_distance((0.0, 0.0), (0.0, 1.0), wall) is None
    assert ray_distance((0.0, 20.0), (1.0, 0.0), wall) is None


def test_sensors_in_straight_corridor():
    walls = [((-5.0, -100.0), (-5.0, 100.0)), ((5.0, -100.0), (5.0, 100.0))]
    sensors = RaySensors(walls, max_range=20.0, angles_deg=(-90.0, -45.0, 0.0, 45.0, 90.0))

    reading = sensors.read(CarState((0.0, 0.0, 0.0), 0.0))

    assert reading.center == 1.0
    assert reading.left == pytest.approx(0.25)
    assert reading.right == pytest.approx(0.25)
    assert reading.left_center == pytest.approx(5.0 * math.sqrt(2) / 20.0)
    assert reading.right_center == pytest.approx(reading.left_center)


def test_sensors_report_right_side_for_positive_angles():
    walls = [((3.0, -100.0), (3.0, 100.0))]
    sensors = RaySensors(walls, max_range=20.0, angles_deg=(-90.0, -45.0, 0.0, 45.0, 90.0))

    reading = sensors.read(CarState((0.0, 0.0, 0.0), 0.0))

    assert reading.right == pytest.approx(0.15)
    assert reading.left == 1.0


def test_corridor_walls_surround_track():
    track = ellipse_track()
    walls = corridor_walls(track.waypoints, track.width)

    assert len(walls) == 2 * len(track.waypoints)
    sensors = RaySensors(walls)
    reading = sensors.read(CarState(track.start_position(), track.start_heading()))
    assert all(0.0 < value <= 1.0 for value in reading.as_list())
    assert reading.left < 1.0 or reading.right < 1.0


def test_controller_inputs_normalize_speed():
    controller = NEATCarController(_constant_genome(), max_speed=10.0)

    inputs = controller.inputs(SensorReading(0.1, 0.2, 0.3, 0.4, 0.5), 25.0)

    assert inputs == [0.1, 0.2, 0.3, 0.4, 0.5, 1.0]
    assert controller.inputs(SensorReading(), -3.0)[-1] == 0.0
    assert controller.car_id == "constant"


def test_sim_clock():
    clock = SimClock()
    clock.advance(0.5)
    clock.advance(0.25)

    assert clock() == pytest.approx(0.75)


def test_run_generation_scores_every_car(innovations):
    population = Population(NEATConfig(population_size=4), seed=8, innovations=innovations)
    env = RaceEnv(ellipse_track(), max_steps=60)

    fitness = env.run_generation(population)

    assert set(fitness) == {genome.id for genome in population.genomes}
    assert all(value >= 0.1 for value in fitness.values())
    assert env.track_tracker.car_state(population.genomes[0].id) is None
    population.evolve(fitness)
    assert population.generation == 1


def test_idle_car_times_out():
    env = RaceEnv(ellipse_track(), max_steps=400, dt=0.05)

    result = env.run_genomes([_constant_genome()])[0]

    assert result.reason == "timeout"
    assert result.steps < 400
    assert result.fitness <= 1.0
    assert result.metrics.checkpoints_reached == 0


def test_car_leaving_corridor_is_retired():
    env = RaceEnv(ellipse_track(), max_steps=10)
    run = env._start_run(_constant_genome())
    run.state = CarState((0.0, 0.0, 0.0), 0.0)

    env._step_car(run)

    assert not run.active
    assert run.reason == "collision"
    assert run.tracker.fitness_metrics().collisions == 1


def test_trace_is_written(tmp_path):
    env = RaceEnv(ellipse_track(), max_steps=20)
    trace_path = tmp_path / "traces" / "car.jsonl"

    result = env.run_genomes([_constant_genome(weight=3.0)], trace_path=str(trace_path))[0]

    lines = [json.loads(line) for line in trace_path.read_text(encoding="utf-8").splitlines()]
    assert lines[0]["meta"] == "racing-neat.trace.v1"
    assert lines[0]["car_id"] == "constant"
    assert len(lines[0]["track"]["waypoints"]) == 16
    assert len(lines) - 1 == result.steps
    assert set(lines[1]) >= {"time", "position", "rotation", "speed", "sensors", "controls"}
    assert lines[1]["time"] == pytest.approx(0.05)


def test_env_rejects_bad_settings():
    with pytest.raises(ValueError):
        RaceEnv(ellipse_track(), max_steps=0)
    with pytest.raises(ValueError):
        RaceEnv(ellipse_track(), dt=0.0)
