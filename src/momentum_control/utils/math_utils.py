#!/usr/bin/env python3
"""
Mathematical utilities for robotics
Normalization and tangent bases for contact geometry
"""

import numpy as np
from typing import Tuple


def normalize(v: np.ndarray) -> np.ndarray:
    """Return v scaled to unit length"""
    norm = np.linalg.norm(v)
    if norm == 0.0:
        raise ValueError("Cannot normalize a zero vector")
    return v / norm


def tangent_basis(normal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute two unit vectors spanning the plane orthogonal to a normal

    Args:
        normal: Unit normal vector

    Returns:
        Tuple (t1, t2) with t1 x t2 = normal
    """
    # Cross with the axis least aligned with the normal
    axis = np.zeros(3)
    axis[np.argmin(np.abs(normal))] = 1.0
    t1 = normalize(np.cross(normal, axis))
    t2 = np.cross(normal, t1)
    return t1, t2
