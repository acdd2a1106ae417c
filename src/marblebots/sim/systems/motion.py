from __future__ import annotations

import math
from typing import Sequence

from pygame.math import Vector2

from ..core.agent import Agent
from ..core.config import MotionConfig
from ..utils.math2d import TWO_PI, clamp_magnitude, mod, unsigned_min


def integrate(agent: Agent, dt: float, motion: MotionConfig) -> None:
    agent.heading = mod(agent.heading, TWO_PI)

    if agent.remaining_rotation is None and agent.remaining_forward is None and agent.committed is not None:
        agent.remaining_rotation = agent.committed.rotation
        agent.remaining_forward = agent.committed.forward
        agent.last_delta = agent.committed
        agent.committed = None

    rotation = agent.remaining_rotation or 0.0
    forward = agent.remaining_forward or 0.0
    epsilon = motion.epsilon

    if abs(rotation) > epsilon:
        step = unsigned_min(rotation, motion.max_rotational_speed * dt)
        agent.heading += step
        agent.remaining_rotation = rotation - step
        agent.is_moving = True
    elif abs(forward) > epsilon:
        step = clamp_magnitude(forward, motion.min_linear_speed * dt, motion.max_linear_speed * dt)
        agent.position.x += step * math.cos(agent.heading)
        agent.position.y += step * math.sin(agent.heading)
        agent.remaining_forward = forward - step
        agent.is_moving = True
    else:
        agent.remaining_rotation = None
        agent.remaining_forward = None
        agent.is_moving = False


def resolve_collisions(swarm: Sequence[Agent], robot_radius: float) -> int:
    """Push overlapping pairs apart to exactly two radii, keeping each pair's midpoint.

    Pairs are visited once each in index order; returns how many were moved.
    """
    min_distance = 2.0 * robot_radius
    if min_distance <= 0.0:
        return 0
    separated = 0
    count = len(swarm)
    for i in range(count):
        first = swarm[i]
        for j in range(i + 1, count):
            second = swarm[j]
            offset = second.position - first.position
            distance = offset.length()
            if distance >= min_distance:
                continue
            if distance > 0.0:
                direction = offset / distance
            else:
                direction = Vector2(1.0, 0.0)
            midpoint = (first.position + second.position) * 0.5
            half = direction * robot_radius
            first.position = midpoint - half
            second.position = midpoint + half
            separated += 1
    return separated
