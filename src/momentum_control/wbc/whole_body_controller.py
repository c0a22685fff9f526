#!/usr/bin/env python3
"""
Momentum-Based Whole-Body Controller
Weighted task-space QP over joint accelerations and contact forces

The optimization problem:
    min  sum_i w_i * ||J_i * vdot + b_i||^2 + vdot' R vdot + sum_c w_c ||rho_c||^2
    s.t. J_i * vdot + b_i = 0                   for tasks with infinite weight
         M_u * vdot + h_u = sum_c (J_c' B_c)_u rho_c   (unactuated rows)
         rho_c >= 0 (enabled contacts), rho_c = 0 (disabled contacts)

Decision variables: x = [vdot, rho_1, ..., rho_C]
"""

import logging
import math
import time
import numpy as np
import yaml
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .constraints import ContactSettings
from .qp import QPModel, QPSettings
from .task import MotionTask, JointAccelerationTask, check_weight
from ..exceptions import ConfigurationError
from ..utils.robot_model import Mechanism, MechanismState
from ..utils.spatial import CartesianFrame, FreeVector3D, Point3D, Wrench

logger = logging.getLogger(__name__)


@dataclass
class ControllerConfig:
    """Momentum-based controller configuration"""
    dt: float = 0.0                              # Sample interval, 0 solves on every call
    acceleration_regularization: float = 1e-8    # Ridge weight on vdot
    num_basis_vectors: int = 4                   # Friction cone edges per contact
    contact_weight: float = 1e-6                 # Default weight on basis coefficients
    qp: QPSettings = field(default_factory=QPSettings)

    def __post_init__(self):
        if self.dt < 0.0:
            raise ConfigurationError(f"Sample interval must be nonnegative, got {self.dt}")
        if self.num_basis_vectors < 3:
            raise ConfigurationError(
                f"A friction cone needs at least 3 basis vectors, got {self.num_basis_vectors}"
            )
        if self.acceleration_regularization < 0.0 or self.contact_weight < 0.0:
            raise ConfigurationError("Regularization weights must be nonnegative")

    @classmethod
    def from_yaml(cls, config_path: str) -> 'ControllerConfig':
        """Load configuration from YAML"""
        with open(config_path, 'r') as f:
            cfg = yaml.safe_load(f) or {}

        ctrl_cfg = cfg.get('controller', {})
        qp_cfg = cfg.get('qp', {})
        defaults = QPSettings()

        return cls(
            dt=float(ctrl_cfg.get('dt', 0.0)),
            acceleration_regularization=float(ctrl_cfg.get('acceleration_regularization', 1e-8)),
            num_basis_vectors=int(ctrl_cfg.get('num_basis_vectors', 4)),
            contact_weight=float(ctrl_cfg.get('contact_weight', 1e-6)),
            qp=QPSettings(
                eps_abs=float(qp_cfg.get('eps_abs', defaults.eps_abs)),
                eps_rel=float(qp_cfg.get('eps_rel', defaults.eps_rel)),
                max_iter=int(qp_cfg.get('max_iter', defaults.max_iter)),
                polish=bool(qp_cfg.get('polish', defaults.polish)),
                verbose=bool(qp_cfg.get('verbose', defaults.verbose)),
                warm_start=bool(qp_cfg.get('warm_start', defaults.warm_start))
            )
        )


@dataclass
class ControllerResult:
    """Controller solution result"""
    joint_torques: np.ndarray           # Actuated coordinates only
    generalized_forces: np.ndarray      # All nv coordinates
    joint_accelerations: np.ndarray
    contact_forces: List[FreeVector3D]  # World frame, one per contact
    solve_time_ms: float
    status: str


class MomentumBasedController:
    """
    Whole-body controller tracking weighted motion tasks subject to the
    floating-base dynamics and linearized friction cones.

    The QP structure (tasks and contact points) is fixed when first solved;
    later ticks only refresh coefficients. Adding a task rebuilds the
    structure on the next solve; reset() keeps it and only disables the
    tasks and contacts until they are given new targets. Contact points can
    only be added before the first solve.
    """

    def __init__(
        self,
        mechanism: Mechanism,
        config: ControllerConfig = None
    ):
        """
        Initialize controller

        Args:
            mechanism: Mechanism to control
            config: Controller configuration
        """
        self.mechanism = mechanism
        self.config = config or ControllerConfig()
        self.nv = mechanism.nv

        self.tasks: List[MotionTask] = []
        self.contacts: List[ContactSettings] = []
        self._regularization = np.full(self.nv, self.config.acceleration_regularization)

        # QP and its row/column layout, built on the first solve
        self._qp: Optional[QPModel] = None
        self._task_rows: List[slice] = []
        self._contact_cols: List[slice] = []
        self._cone_rows: List[slice] = []
        self._dynamics_rows = slice(0, 0)

        self.result: Optional[ControllerResult] = None

        # Statistics
        self.solve_count = 0
        self.total_solve_time = 0.0

    @property
    def centroidal_frame(self) -> CartesianFrame:
        return self.mechanism.centroidal_frame

    @property
    def num_unknowns(self) -> int:
        return self.nv + sum(c.num_basis_vectors for c in self.contacts)

    def add_contact(
        self,
        body: int,
        point: Point3D,
        num_basis_vectors: Optional[int] = None,
        name: Optional[str] = None
    ) -> ContactSettings:
        """Add a candidate contact point (disabled until set)"""
        if self._qp is not None:
            raise ConfigurationError("Contacts cannot be added once the QP has been built")

        contact = ContactSettings(
            self.mechanism, body, point,
            num_basis_vectors=num_basis_vectors or self.config.num_basis_vectors,
            name=name
        )
        contact.weight = self.config.contact_weight
        self.contacts.append(contact)
        return contact

    def add_mechanism_contacts(self) -> Dict[int, List[ContactSettings]]:
        """Add a contact for every contact point of the mechanism, grouped per body"""
        contacts = {}
        for body, points in self.mechanism.contact_points.items():
            contacts[body] = [
                self.add_contact(body, point, name=f"{self.mechanism.body_name(body)}_{i}")
                for i, point in enumerate(points)
            ]
        return contacts

    def contact_settings(self, body: int) -> List[ContactSettings]:
        return [c for c in self.contacts if c.body == body]

    def add_task(self, task: MotionTask, weight: Optional[float] = None) -> MotionTask:
        """
        Add a task to the controller

        Args:
            task: Motion task
            weight: Task weight (keeps the task's weight if None)

        Returns:
            The task, for chaining
        """
        if weight is not None:
            task.weight = check_weight(weight)
        self.tasks.append(task)
        try:
            self._check_hard_tasks()
        except ConfigurationError:
            self.tasks.pop()
            raise
        self._qp = None
        return task

    def add_mechanism_joint_accel_tasks(self, weight: float = 1.0) -> Dict[int, JointAccelerationTask]:
        """Add one joint acceleration task per joint"""
        return {
            joint: self.add_task(JointAccelerationTask(self.mechanism, joint, weight=weight))
            for joint in self.mechanism.joints
        }

    def regularize(self, weight: float, joint: Optional[int] = None):
        """
        Set the ridge weight on joint accelerations

        Args:
            weight: Nonnegative weight
            joint: Joint to regularize (all joints if None)
        """
        if weight < 0.0:
            raise ConfigurationError(f"Regularization weight must be nonnegative, got {weight}")
        if joint is None:
            self._regularization[:] = weight
        else:
            self._regularization[self.mechanism.velocity_range(joint)] = weight

    def reset(self):
        """
        Clear the per-tick parameterization

        Every task and contact is disabled, while the tasks, the contacts and
        the QP layout are kept. MotionTask.set_desired and ContactSettings.set
        enable them again.
        """
        for task in self.tasks:
            task.disable()
        for contact in self.contacts:
            contact.disable()
        self.result = None

    def _check_hard_tasks(self):
        hard = sum(t.dim for t in self.tasks if t.enabled and t.is_hard)
        if hard > self.nv:
            raise ConfigurationError(
                f"Hard tasks impose {hard} constraints on {self.nv} joint accelerations"
            )

    def _build(self):
        """Fix the row and column layout of the QP"""
        unactuated = self.mechanism.unactuated_range
        row = unactuated.stop - unactuated.start
        self._dynamics_rows = slice(0, row)

        self._task_rows = []
        for task in self.tasks:
            self._task_rows.append(slice(row, row + task.dim))
            row += task.dim

        col = self.nv
        self._contact_cols = []
        self._cone_rows = []
        for contact in self.contacts:
            k = contact.num_basis_vectors
            self._contact_cols.append(slice(col, col + k))
            self._cone_rows.append(slice(row, row + k))
            col += k
            row += k

        self._qp = QPModel(col, row, self.config.qp)
        logger.debug(
            "Built QP with %d unknowns, %d constraint rows, %d tasks, %d contacts",
            col, row, len(self.tasks), len(self.contacts)
        )

    def solve(self, state: MechanismState) -> ControllerResult:
        """
        Solve the whole-body QP for the current state

        Args:
            state: Current mechanism state

        Returns:
            ControllerResult with joint torques and solution info

        Raises:
            ConfigurationError: if the hard tasks over-determine vdot
            SolveFailure: if the QP has no solution
        """
        start_time = time.time()

        self._check_hard_tasks()
        if self._qp is None:
            self._build()
        qp = self._qp
        qp.clear()

        vdot_cols = slice(0, self.nv)

        # Task costs and hard task constraints
        for task, rows in zip(self.tasks, self._task_rows):
            if not task.enabled:
                continue
            error = task.build_error(state)
            if task.is_hard:
                qp.set_equality(rows, error, vdot_cols)
            else:
                qp.add_quadratic_cost(error, task.weight, vdot_cols)

        qp.add_diagonal_cost(self._regularization, vdot_cols)

        # Friction cones: rho >= 0 when enabled, pinned to zero otherwise
        for contact, cols, rows in zip(self.contacts, self._contact_cols, self._cone_rows):
            k = contact.num_basis_vectors
            qp.A[rows, cols] = np.eye(k)
            if contact.enabled:
                contact.update(state)
                qp.set_bounds(rows, 0.0, np.inf)
                if contact.weight > 0.0:
                    qp.add_diagonal_cost(np.full(k, contact.weight), cols)
            else:
                qp.set_bounds(rows, 0.0, 0.0)

        # Dynamics of the unactuated coordinates
        unactuated = self.mechanism.unactuated_range
        rows = self._dynamics_rows
        if rows.stop > rows.start:
            h = state.dynamics_bias()
            qp.A[rows, vdot_cols] = state.mass_matrix()[unactuated, :]
            for contact, cols in zip(self.contacts, self._contact_cols):
                if contact.enabled:
                    qp.A[rows, cols] = -(contact.jacobian.T @ contact.basis_world)[unactuated, :]
            qp.set_bounds(rows, -h[unactuated], -h[unactuated])

        x = qp.solve()

        # Extract solution
        vdot = x[vdot_cols]
        wrenches: Dict[int, Wrench] = {}
        forces = []
        world = self.mechanism.world_frame
        for contact, cols in zip(self.contacts, self._contact_cols):
            if contact.enabled:
                rho = x[cols]
                wrench = contact.world_wrench(state, rho)
                wrenches[contact.body] = wrenches.get(contact.body, Wrench.zero(world)) + wrench
                forces.append(FreeVector3D(world, wrench.linear))
            else:
                forces.append(FreeVector3D.zero(world))

        tau = state.inverse_dynamics(vdot, wrenches)

        solve_time = (time.time() - start_time) * 1000
        self.solve_count += 1
        self.total_solve_time += solve_time

        self.result = ControllerResult(
            joint_torques=tau[unactuated.stop:],
            generalized_forces=tau,
            joint_accelerations=vdot,
            contact_forces=forces,
            solve_time_ms=solve_time,
            status=qp.status
        )
        return self.result

    def control(self, t: float, controller_state: 'ControllerState') -> np.ndarray:
        """
        Torque command at time t, solved at most once per sample interval

        Args:
            t: Current time
            controller_state: Sample-and-hold state holding the mechanism state

        Returns:
            Copy of the held joint torques for the actuated coordinates
        """
        if controller_state.needs_update(t, self.config.dt):
            result = self.solve(controller_state.mechanism_state)
            controller_state.hold(t, self.config.dt, result.joint_torques)
        return controller_state.torques.copy()

    def get_statistics(self) -> Dict:
        """Get solver statistics"""
        return {
            'solve_count': self.solve_count,
            'total_solve_time_ms': self.total_solve_time,
            'avg_solve_time_ms': (
                self.total_solve_time / self.solve_count
                if self.solve_count > 0 else 0.0
            )
        }


class ControllerState:
    """
    Sample-and-hold cache for a controller running at a fixed rate

    A new torque command is computed when time enters a new sample epoch
    floor(t / dt); within an epoch the last command is returned unchanged,
    whatever happened to the mechanism state or the task targets meanwhile.
    """

    # Absorbs round-off when t is an exact multiple of dt
    EPOCH_TOLERANCE = 1e-9

    def __init__(self, mechanism_state: MechanismState):
        self.mechanism_state = mechanism_state
        self.torques: Optional[np.ndarray] = None
        self.last_solve_time: Optional[float] = None
        self._epoch: Optional[int] = None

    def _epoch_of(self, t: float, dt: float) -> int:
        return math.floor(t / dt + self.EPOCH_TOLERANCE)

    def needs_update(self, t: float, dt: float) -> bool:
        if self.torques is None or dt == 0.0:
            return True
        return self._epoch_of(t, dt) != self._epoch

    def hold(self, t: float, dt: float, torques: np.ndarray):
        """Cache a new command computed at time t"""
        self.torques = np.array(torques, dtype=float)
        self.last_solve_time = t
        self._epoch = self._epoch_of(t, dt) if dt > 0.0 else None

    def reset(self):
        self.torques = None
        self.last_solve_time = None
        self._epoch = None
