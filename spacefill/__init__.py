"""
spacefill — Maximal Empty Disk Solvers over 2D Signed Distance Fields
=====================================================================

Space-filling by repeated placement: find the point of the unit square
farthest from everything placed so far, put a new shape there, repeat.
The package provides the distance-field representations and the queries
that make each step cheap.

Implemented features
--------------------
- Primitive shapes: Circle, Box, Segment, Bezier, Polygon, NGon, Star,
  Ring, Cross, Moon, arbitrary callables, and the inverted domain boundary
- Boolean operations and transforms: union, subtract, intersect,
  translate, scale, rotate
- :class:`Argmax2D`: Z-order grid with a max-reduction pyramid, exact
  global maximum up to the grid resolution
- :class:`ADF`: adaptive quadtree of primitive buckets with redundancy
  elimination, exact sampling at any resolution
- :class:`GradientAscent`: local maximum search over any field
- Pluggable accelerators for the grid kernels (numpy, thread pool)

Quick start
-----------

Global maximum on a grid::

    from spacefill import Argmax2D, BoundaryRect, Circle

    field = Argmax2D(resolution=256)
    field.insert(BoundaryRect())
    for _ in range(100):
        best = field.argmax()
        field.insert(Circle(0.5 * best.magnitude).translate(*best.point))

Local maxima on an adaptive field::

    import numpy as np
    from spacefill import ADF, BoundaryRect, Circle, GradientAscent

    field  = ADF(max_depth=8)
    field.insert(BoundaryRect())
    ascent = GradientAscent(field)
    rng    = np.random.default_rng(0)
    for _ in range(100):
        best = ascent.find_local_max(rng)
        if best is None:
            break
        field.insert(Circle(0.5 * best.magnitude).translate(*best.point))
"""

import logging

from .accelerator import Accelerator, NumpyAccelerator, ThreadPoolAccelerator
from .adf import ADF, Bucket
from .argmax2d import Argmax2D
from .elimination import EliminationConfig, eliminate, is_redundant
from .errors import CapacityExceeded, ConfigurationError, SpaceFillError
from .field import DistanceField, Field, MaximaResult, domain_empirical, influence_domain
from .geometry import (
    # Base class
    Primitive,

    # Shapes
    Circle,
    Box,
    Segment,
    Bezier,
    Polygon,
    NGon,
    Star,
    Ring,
    Cross,
    Moon,
    FunctionPrimitive,
    BoundaryRect,

    # Regions
    Rect,
    UNIT,
)
from .gradient_ascent import AscentResult, GradientAscent, LineSearchConfig
from .quadtree import Quadtree
from .sdf_lib import FAR

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Shapes
    "Primitive",
    "Circle",
    "Box",
    "Segment",
    "Bezier",
    "Polygon",
    "NGon",
    "Star",
    "Ring",
    "Cross",
    "Moon",
    "FunctionPrimitive",
    "BoundaryRect",
    "Rect",
    "UNIT",
    "FAR",

    # Fields
    "Field",
    "DistanceField",
    "MaximaResult",
    "domain_empirical",
    "influence_domain",

    # Grid solver
    "Argmax2D",
    "Accelerator",
    "NumpyAccelerator",
    "ThreadPoolAccelerator",

    # Adaptive solver
    "ADF",
    "Bucket",
    "Quadtree",
    "EliminationConfig",
    "eliminate",
    "is_redundant",

    # Optimizer
    "GradientAscent",
    "LineSearchConfig",
    "AscentResult",

    # Errors
    "SpaceFillError",
    "ConfigurationError",
    "CapacityExceeded",
]
