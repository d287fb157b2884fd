"""Stateless ray math for gaze calculations."""
from __future__ import annotations

from typing import NamedTuple

import numpy as np

from ..errors import GeometryDegenerateError
from ..models import GazeRay, HeadPose

ORIGIN = np.zeros(3)

# Returned for parallel rays, where no unique pair of closest points exists.
ZERO_FALLBACK = (ORIGIN, ORIGIN)


class ClosestPoints(NamedTuple):
    on_ray1: np.ndarray
    on_ray2: np.ndarray
    parallel: bool

    @property
    def distance(self) -> float:
        return float(np.linalg.norm(self.on_ray1 - self.on_ray2))

    @property
    def midpoint(self) -> np.ndarray:
        return midpoint(self.on_ray1, self.on_ray2)


def closest_points_on_two_rays(
    ray1: GazeRay,
    ray2: GazeRay,
    fallback: tuple[np.ndarray, np.ndarray] = ZERO_FALLBACK,
    strict: bool = False,
) -> ClosestPoints:
    """Find the point on each ray at which the other ray is closest.

    The rays are treated as infinite lines. If the determinant of the 2x2
    system is exactly zero the rays are parallel; the ``fallback`` pair is
    returned with ``parallel=True``, or ``GeometryDegenerateError`` is raised
    when ``strict`` is set.
    """
    d1, d2 = ray1.direction, ray2.direction
    a = float(np.dot(d1, d1))
    b = float(np.dot(d1, d2))
    e = float(np.dot(d2, d2))
    det = a * e - b * b

    if det == 0.0:
        if strict:
            raise GeometryDegenerateError(fallback)
        return ClosestPoints(np.array(fallback[0], dtype=float), np.array(fallback[1], dtype=float), True)

    r = ray1.origin - ray2.origin
    c = float(np.dot(d1, r))
    f = float(np.dot(d2, r))

    s = (b * f - c * e) / det
    t = (a * f - c * b) / det

    return ClosestPoints(ray1.origin + d1 * s, ray2.origin + d2 * t, False)


def midpoint(p1: np.ndarray, p2: np.ndarray) -> np.ndarray:
    return (np.asarray(p1, dtype=float) + np.asarray(p2, dtype=float)) * 0.5


def normalize(v) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    norm = np.linalg.norm(v)
    if norm == 0.0:
        return v
    return v / norm


def head_basis(pose: HeadPose) -> np.ndarray:
    """3x3 matrix whose columns are the head's right, up and forward axes.

    Uses the scene's left-handed convention (x right, y up, z forward).
    """
    forward = normalize(pose.forward)
    right = normalize(np.cross(pose.up, forward))
    up = np.cross(forward, right)
    return np.column_stack((right, up, forward))


def transform_point(pose: HeadPose, local_point) -> np.ndarray:
    return pose.position + head_basis(pose) @ np.asarray(local_point, dtype=float)


def transform_direction(pose: HeadPose, local_direction) -> np.ndarray:
    return head_basis(pose) @ np.asarray(local_direction, dtype=float)


def transform_ray(pose: HeadPose, ray: GazeRay) -> GazeRay:
    """Moves a head-local ray into scene space."""
    return GazeRay(transform_point(pose, ray.origin), transform_direction(pose, ray.direction))


def look_at_rotation(eye, target, up) -> np.ndarray:
    """Rotation (columns right, up, forward) of an object at ``eye`` facing ``target``."""
    position = np.asarray(eye, dtype=float)
    return head_basis(HeadPose(position, np.asarray(target, dtype=float) - position, np.asarray(up, dtype=float)))
