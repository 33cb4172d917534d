import math
from dataclasses import dataclass
from typing import Tuple

from evo.network import Controls


@dataclass
class CarState:
    """Kinematic car on the ``x``/``z`` ground plane.

    ``rotation`` is the yaw in radians; the car faces
    ``(sin(rotation), 0, cos(rotation))``. ``speed`` is signed forward speed.
    """

    position: Tuple[float, float, float]
    rotation: float
    speed: float = 0.0

    def forward(self) -> Tuple[float, float, float]:
        return (math.sin(self.rotation), 0.0, math.cos(self.rotation))

    def velocity(self) -> Tuple[float, float, float]:
        fx, _, fz = self.forward()
        return (fx * self.speed, 0.0, fz * self.speed)


class SimpleCarModel:
    """Throttle/steering point-mass car.

    Throttle accelerates up to ``max_speed``; negative throttle brakes while
    moving forward and reverses (at most ``reverse_fraction`` of top speed)
    once stopped. Without throttle the car coasts down and snaps to zero below
    ``stop_speed``. Steering only bites above ``min_turn_speed`` and scales
    with speed.
    """

    def __init__(
        self,
        max_speed: float = 10.0,
        acceleration: float = 2.5,
        deceleration: float = 4.0,
        turn_speed: float = 5.0,
        min_turn_speed: float = 1.0,
        reverse_fraction: float = 0.6,
        coast_fraction: float = 0.3,
        stop_speed: float = 0.5,
        deadzone: float = 0.1,
    ) -> None:
        self.max_speed = max_speed
        self.acceleration = acceleration
        self.deceleration = deceleration
        self.turn_speed = turn_speed
        self.min_turn_speed = min_turn_speed
        self.reverse_fraction = reverse_fraction
        self.coast_fraction = coast_fraction
        self.stop_speed = stop_speed
        self.deadzone = deadzone

    def _target_speed(self, speed: float, throttle: float, dt: float) -> float:
        if abs(throttle) > self.deadzone:
            if throttle > 0:
                return min(speed + self.acceleration * throttle * dt, self.max_speed)
            if speed > 0:
                return max(speed + self.deceleration * throttle * dt, 0.0)
            return max(speed + self.acceleration * throttle * dt, -self.max_speed * self.reverse_fraction)

        drag = self.deceleration * self.coast_fraction
        target = speed - drag * dt if speed > 0 else speed + drag * dt
        if abs(target) < self.stop_speed:
            return 0.0
        return target

    def _angular_velocity(self, speed: float, steering: float) -> float:
        if abs(steering) <= self.deadzone or abs(speed) <= self.min_turn_speed:
            return 0.0
        speed_factor = min(abs(speed) / 10.0, 1.0)
        angular = steering * self.turn_speed * speed_factor
        # Steering flips when reversing.
        return -angular if speed < 0 else angular

    def step(self, state: CarState, controls: Controls, dt: float) -> CarState:
        """Advance the car by ``dt`` seconds.

        Args:
            state: Current car state.
            controls: Throttle and steering, each in ``[-1, 1]``.
            dt: Time step in seconds.

        Returns:
            The updated car state.
        """

        throttle = max(-1.0, min(1.0, float(controls.throttle)))
        steering = max(-1.0, min(1.0, float(controls.steering)))

        speed = self._target_speed(state.speed, throttle, dt)
        rotation = state.rotation + self._angular_velocity(state.speed, steering) * dt
        dx = math.sin(rotation) * speed * dt
        dz = math.cos(rotation) * speed * dt
        x, y, z = state.position
        return CarState(position=(x + dx, y, z + dz), rotation=rotation, speed=speed)
