"""Utility modules for momentum-based control"""

from .math_utils import normalize, tangent_basis

from .spatial import (
    CartesianFrame, Point3D, FreeVector3D, Transform3D, Twist,
    SpatialAcceleration, Wrench, GeometricJacobian, PointJacobian,
    MomentumMatrix, framecheck
)

from .robot_model import Mechanism, MechanismState, KinematicPath, build_sample_biped

__all__ = [
    'normalize', 'tangent_basis',
    'CartesianFrame', 'Point3D', 'FreeVector3D', 'Transform3D', 'Twist',
    'SpatialAcceleration', 'Wrench', 'GeometricJacobian', 'PointJacobian',
    'MomentumMatrix', 'framecheck',
    'Mechanism', 'MechanismState', 'KinematicPath', 'build_sample_biped'
]
