"""Gradient ascent towards local maxima of a distance field.

A true signed distance field has unit gradient almost everywhere, so only
the direction of the finite-difference gradient is used.  The step length
decays geometrically, ``step_k = D * y**k``, and the run stops once it
falls below ``tolerance``.

Maxima of a min-union field sit on creases where the gradient flips.  A
step that overshoots a crease is retried along it, in the direction of the
summed unit gradients from both sides, before being rejected.

Works on any object with a ``sample(point) -> float`` method:
:class:`~spacefill.Argmax2D`, :class:`~spacefill.ADF` or
:class:`~spacefill.DistanceField`.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .errors import ConfigurationError
from .geometry import Rect, UNIT

log = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]


@dataclass(frozen=True)
class LineSearchConfig:
    """Step schedule of :class:`GradientAscent`.

    Attributes
    ----------
    initial_step:
        First step length ``D``.
    decay:
        Geometric decay ``y`` of the step length, in ``(0, 1)``.
    tolerance:
        The run has converged once the step length drops below this.
    max_iterations:
        Hard cap on steps; reaching it yields a non-converged result.
    epsilon:
        Half-width of the central differences.
    max_attempts:
        Random seeds tried by :meth:`GradientAscent.find_local_max`.
    """

    initial_step: float = 0.25
    decay: float = 0.85
    tolerance: float = 1e-5
    max_iterations: int = 256
    epsilon: float = 1e-6
    max_attempts: int = 100

    def __post_init__(self) -> None:
        if not 0.0 < self.decay < 1.0:
            raise ConfigurationError(f"decay must lie in (0, 1), got {self.decay}")
        for name in ("initial_step", "tolerance", "epsilon"):
            if not getattr(self, name) > 0.0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("max_iterations", "max_attempts"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")


class AscentResult(NamedTuple):
    point: _Array
    magnitude: float
    converged: bool
    iterations: int


class GradientAscent:
    """Local maximum search over *field*.

    Parameters
    ----------
    field:
        Anything with ``sample(point) -> float``.  It must not be mutated
        while a search is running.
    config:
        Step schedule; see :class:`LineSearchConfig`.
    bounds:
        Iterates are clipped to this closed rectangle.
    """

    def __init__(
        self,
        field,
        config: LineSearchConfig = LineSearchConfig(),
        bounds: Rect = UNIT,
    ) -> None:
        self.field = field
        self.config = config
        self.bounds = bounds
        self._lo = np.array([bounds.x0, bounds.y0])
        self._hi = np.array([bounds.x1, bounds.y1])

    def gradient(self, point: Sequence[float]) -> _Array:
        """Central-difference gradient of the field at *point*."""
        p = np.asarray(point, dtype=float)
        eps = self.config.epsilon
        g = np.empty(2)
        for axis in range(2):
            d = np.zeros(2)
            d[axis] = eps
            g[axis] = (self.field.sample(p + d) - self.field.sample(p - d)) / (2.0 * eps)
        return g

    def _along_crease(
        self, p: _Array, u: _Array, overshoot: _Array, step: float
    ) -> Tuple[_Array, float]:
        """Retry a step that crossed a crease of the min-union field.

        The unit gradients on both sides of the crease are averaged; their
        sum is tangent to the crease, along which both pieces still grow.
        Returns the new candidate and its value, ``-inf`` when there is no
        such direction.
        """
        g = self.gradient(overshoot)
        norm = float(np.hypot(g[0], g[1]))
        if not norm > 0.0:
            return overshoot, -np.inf
        d = u + g / norm
        dnorm = float(np.hypot(d[0], d[1]))
        if not dnorm > 1e-12:
            return overshoot, -np.inf
        candidate = np.clip(p + step * d / dnorm, self._lo, self._hi)
        return candidate, self.field.sample(candidate)

    def _run(self, seed: Sequence[float], trajectory: Optional[List[_Array]]) -> AscentResult:
        cfg = self.config
        p = np.clip(np.asarray(seed, dtype=float)[:2], self._lo, self._hi)
        value = self.field.sample(p)
        step = cfg.initial_step
        if trajectory is not None:
            trajectory.append(p.copy())

        for k in range(cfg.max_iterations):
            if step < cfg.tolerance:
                log.debug("ascent converged after %d steps at %s (%.6g)", k, p, value)
                return AscentResult(p, value, True, k)
            g = self.gradient(p)
            norm = float(np.hypot(g[0], g[1]))
            if not norm > 0.0:
                log.debug("ascent stopped at stationary point %s after %d steps", p, k)
                return AscentResult(p, value, True, k)
            candidate = np.clip(p + step * g / norm, self._lo, self._hi)
            new_value = self.field.sample(candidate)
            if new_value < value:
                candidate, new_value = self._along_crease(p, g / norm, candidate, step)
            if new_value >= value:
                p, value = candidate, new_value
                if trajectory is not None:
                    trajectory.append(p.copy())
            step *= cfg.decay

        converged = step < cfg.tolerance
        if not converged:
            log.debug("ascent hit the iteration cap at %s (%.6g)", p, value)
        return AscentResult(p, value, converged, cfg.max_iterations)

    def ascend(self, seed: Sequence[float]) -> AscentResult:
        """Climb from *seed* to a local maximum.

        Returns
        -------
        AscentResult
            Final point and its field value.  ``converged`` is False when
            the iteration cap was hit first; the point is still the best one
            visited.
        """
        return self._run(seed, None)

    def trajectory(self, seed: Sequence[float]) -> List[_Array]:
        """Accepted iterates of :meth:`ascend` from *seed*, seed first."""
        points: List[_Array] = []
        self._run(seed, points)
        return points

    def ascend_many(
        self, seeds: Sequence[Sequence[float]], max_workers: Optional[int] = None
    ) -> List[AscentResult]:
        """Independent ascents from every seed, in seed order.

        Runs on a thread pool unless *max_workers* is 1.
        """
        if max_workers == 1:
            return [self.ascend(s) for s in seeds]
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self.ascend, seeds))

    def find_local_max(
        self, rng: np.random.Generator, min_distance: Optional[float] = None
    ) -> Optional[AscentResult]:
        """Ascend from random seeds until a maximum above *min_distance* is found.

        *min_distance* defaults to ``config.epsilon``.  Seeds are drawn
        uniformly from the bounds.  Returns ``None`` after
        ``config.max_attempts`` failures.
        """
        threshold = self.config.epsilon if min_distance is None else min_distance
        for attempt in range(self.config.max_attempts):
            seed = rng.uniform(self._lo, self._hi)
            result = self.ascend(seed)
            if result.magnitude > threshold:
                log.debug("local max %.6g found on attempt %d", result.magnitude, attempt + 1)
                return result
        log.debug("no local max above %.6g in %d attempts", threshold, self.config.max_attempts)
        return None
