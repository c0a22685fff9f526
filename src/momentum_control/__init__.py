"""
Momentum Control
================

Momentum-based whole-body control for floating-base robots: weighted
task-space objectives, linearized friction cones and the floating-base
dynamics combined into one QP per control tick.
"""

__version__ = "0.1.0"
