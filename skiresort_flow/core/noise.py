"""PerlinNoise - Smooth, deterministic 2D gradient noise.

Drives the lateral drift of skiers: sampling along one axis (run progress)
with the agent id folded into the other axis gives each agent its own smooth,
reproducible wiggle across the trail width.
"""

import numpy as np

_GRADIENTS = np.array(
    [(1.0, 1.0), (-1.0, 1.0), (1.0, -1.0), (-1.0, -1.0), (1.0, 0.0), (-1.0, 0.0), (0.0, 1.0), (0.0, -1.0)]
)

# Classic 2D Perlin noise peaks at sqrt(0.5); rescale to [-1, 1]
_AMPLITUDE = float(np.sqrt(2.0))


def _fade(t: float) -> float:
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def _lerp(a: float, b: float, t: float) -> float:
    return a + t * (b - a)


class PerlinNoise:
    """Seeded 2D Perlin noise with a 256-entry permutation table.

    Example:
        noise = PerlinNoise(seed=0)
        drift = noise.value(x=progress * 0.05, y=agent_id * 137.31)  # in [-1, 1]
    """

    def __init__(self, seed: int = 0) -> None:
        rng = np.random.default_rng(seed)
        perm = rng.permutation(256)
        self._perm = np.concatenate([perm, perm])

    def _gradient(self, ix: int, iy: int) -> np.ndarray:
        h = self._perm[self._perm[ix & 255] + (iy & 255)]
        return _GRADIENTS[h & 7]

    def value(self, x: float, y: float) -> float:
        """Noise at (x, y).

        Args:
            x: First coordinate
            y: Second coordinate

        Returns:
            Smooth value in [-1, 1]; exactly 0 at integer lattice points.
        """
        x0 = int(np.floor(x))
        y0 = int(np.floor(y))
        fx = x - x0
        fy = y - y0

        n00 = float(np.dot(self._gradient(x0, y0), (fx, fy)))
        n10 = float(np.dot(self._gradient(x0 + 1, y0), (fx - 1.0, fy)))
        n01 = float(np.dot(self._gradient(x0, y0 + 1), (fx, fy - 1.0)))
        n11 = float(np.dot(self._gradient(x0 + 1, y0 + 1), (fx - 1.0, fy - 1.0)))

        u = _fade(fx)
        v = _fade(fy)
        result = _lerp(_lerp(n00, n10, u), _lerp(n01, n11, u), v) * _AMPLITUDE
        return min(max(result, -1.0), 1.0)
