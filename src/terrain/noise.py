"""
Coherent noise for terrain sculpting.

Vectorised gradient (Perlin) noise over numpy arrays:
- 2-D noise with 8 gradient directions
- 3-D improved noise with the 12 cube-edge gradients
- fractal (multi-octave) sums with per-octave seeded offsets

Values depend only on the sample position and the seed, never on the order
in which samples are evaluated.
"""

import numpy as np

_GRAD2 = np.array([
    [1, 1], [-1, 1], [1, -1], [-1, -1],
    [1, 0], [-1, 0], [0, 1], [0, -1],
], dtype=np.float64)

_GRAD3 = np.array([
    [1, 1, 0], [-1, 1, 0], [1, -1, 0], [-1, -1, 0],
    [1, 0, 1], [-1, 0, 1], [1, 0, -1], [-1, 0, -1],
    [0, 1, 1], [0, -1, 1], [0, 1, -1], [0, -1, -1],
    [1, 1, 0], [0, -1, 1], [-1, 1, 0], [0, -1, -1],
], dtype=np.float64)

OFFSET_RANGE = 10000.0


def fade(t: np.ndarray) -> np.ndarray:
    """Quintic smootherstep 6t^5 - 15t^4 + 10t^3."""
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def lerp(a: np.ndarray, b: np.ndarray, t: np.ndarray) -> np.ndarray:
    return a + t * (b - a)


class PerlinNoise:
    """
    Seeded Perlin noise on a 256-periodic lattice.

    Args:
        seed: Non-negative integer seed for the permutation table
    """

    def __init__(self, seed: int):
        self.seed = int(seed)
        rng = np.random.default_rng(self.seed)
        p = rng.permutation(256)
        self.perm = np.concatenate([p, p]).astype(np.int64)

    def _grad2(self, h: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        g = _GRAD2[h & 7]
        return g[..., 0] * x + g[..., 1] * y

    def _grad3(self, h: np.ndarray, x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
        g = _GRAD3[h & 15]
        return g[..., 0] * x + g[..., 1] * y + g[..., 2] * z

    def noise2(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """2-D noise, roughly in [-1, 1]."""
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        perm = self.perm

        x0 = np.floor(x)
        y0 = np.floor(y)
        xf = x - x0
        yf = y - y0
        xi = x0.astype(np.int64) & 255
        yi = y0.astype(np.int64) & 255

        aa = perm[xi + perm[yi]]
        ab = perm[xi + perm[yi + 1]]
        ba = perm[xi + 1 + perm[yi]]
        bb = perm[xi + 1 + perm[yi + 1]]

        u = fade(xf)
        v = fade(yf)

        x1 = lerp(self._grad2(aa, xf, yf), self._grad2(ba, xf - 1.0, yf), u)
        x2 = lerp(self._grad2(ab, xf, yf - 1.0), self._grad2(bb, xf - 1.0, yf - 1.0), u)
        return lerp(x1, x2, v)

    def noise3(self, x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
        """3-D improved noise, roughly in [-1, 1]."""
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        z = np.asarray(z, dtype=np.float64)
        perm = self.perm

        x0 = np.floor(x)
        y0 = np.floor(y)
        z0 = np.floor(z)
        xf = x - x0
        yf = y - y0
        zf = z - z0
        xi = x0.astype(np.int64) & 255
        yi = y0.astype(np.int64) & 255
        zi = z0.astype(np.int64) & 255

        u = fade(xf)
        v = fade(yf)
        w = fade(zf)

        a = perm[xi] + yi
        aa = perm[a] + zi
        ab = perm[a + 1] + zi
        b = perm[xi + 1] + yi
        ba = perm[b] + zi
        bb = perm[b + 1] + zi

        return lerp(
            lerp(
                lerp(self._grad3(perm[aa], xf, yf, zf), self._grad3(perm[ba], xf - 1, yf, zf), u),
                lerp(self._grad3(perm[ab], xf, yf - 1, zf), self._grad3(perm[bb], xf - 1, yf - 1, zf), u),
                v,
            ),
            lerp(
                lerp(self._grad3(perm[aa + 1], xf, yf, zf - 1), self._grad3(perm[ba + 1], xf - 1, yf, zf - 1), u),
                lerp(self._grad3(perm[ab + 1], xf, yf - 1, zf - 1), self._grad3(perm[bb + 1], xf - 1, yf - 1, zf - 1), u),
                v,
            ),
            w,
        )


def fractal_noise(
    coords: np.ndarray,
    seed: int,
    base_frequency: float,
    octaves: int,
    persistence: float,
    lacunarity: float
) -> np.ndarray:
    """
    Multi-octave noise normalised by the total absolute amplitude.

    Args:
        coords: (N, 2) or (N, 3) sample positions
        seed: Non-negative seed
        base_frequency: Frequency of the first octave
        octaves: Number of layers (>= 1)
        persistence: Amplitude multiplier per octave
        lacunarity: Frequency multiplier per octave

    Returns:
        (N,) values in [-1, 1]
    """
    coords = np.asarray(coords, dtype=np.float64)
    dims = coords.shape[1]
    if dims not in (2, 3):
        raise ValueError(f"Noise needs 2-D or 3-D coordinates, got {dims}")

    perlin = PerlinNoise(seed)
    rng = np.random.default_rng(seed)
    offsets = rng.uniform(-OFFSET_RANGE, OFFSET_RANGE, size=(octaves, dims))

    total = np.zeros(len(coords))
    amplitude = 1.0
    frequency = base_frequency
    max_value = 0.0

    for octave in range(octaves):
        p = coords * frequency + offsets[octave]
        if dims == 2:
            sample = perlin.noise2(p[:, 0], p[:, 1])
        else:
            sample = perlin.noise3(p[:, 0], p[:, 1], p[:, 2])

        total += sample * amplitude
        max_value += abs(amplitude)

        amplitude *= persistence
        frequency *= lacunarity

    if max_value == 0.0:
        return np.zeros(len(coords))
    return np.clip(total / max_value, -1.0, 1.0)
