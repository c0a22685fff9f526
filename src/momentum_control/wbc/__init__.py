"""
Whole-Body Control modules for floating-base robots
Momentum-based control with weighted task composition
"""

from .whole_body_controller import (
    MomentumBasedController,
    ControllerConfig,
    ControllerResult,
    ControllerState
)
from .task import (
    MotionTask,
    TaskType,
    TaskGains,
    SpatialAccelerationTask,
    AngularAccelerationTask,
    LinearAccelerationTask,
    PointAccelerationTask,
    JointAccelerationTask,
    MomentumRateTask,
    LinearMomentumRateTask
)
from .constraints import ContactSettings
from .qp import QPModel, QPSettings, AffineExpression

__all__ = [
    'MomentumBasedController',
    'ControllerConfig',
    'ControllerResult',
    'ControllerState',
    'MotionTask',
    'TaskType',
    'TaskGains',
    'SpatialAccelerationTask',
    'AngularAccelerationTask',
    'LinearAccelerationTask',
    'PointAccelerationTask',
    'JointAccelerationTask',
    'MomentumRateTask',
    'LinearMomentumRateTask',
    'ContactSettings',
    'QPModel',
    'QPSettings',
    'AffineExpression'
]
