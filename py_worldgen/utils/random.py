"""
Seeded random stream helpers.

Each pipeline stage derives its own generator from the world seed and a stage
suffix. Nothing here keeps module-level state: callers hold the returned
instances and pass them where randomness is needed.
"""

from typing import Optional

from opensimplex import OpenSimplex

from ..core.alea_prng import AleaPRNG


def stream_seed(seed: str, stream: Optional[str] = None) -> str:
    """Build the seed string for a named stream, e.g. ``"world-1-temp"``."""
    if not stream:
        return str(seed)
    return f"{seed}-{stream}"


def create_prng(seed: str, stream: Optional[str] = None) -> AleaPRNG:
    """
    Create an Alea generator for a stage stream.

    Args:
        seed: World seed
        stream: Stage suffix (``"temp"``, ``"rivers"``...); omitted for the bare seed

    Returns:
        Fresh AleaPRNG instance
    """
    return AleaPRNG(stream_seed(seed, stream))


def noise_from_stream(prng: AleaPRNG) -> OpenSimplex:
    """Seed a 2D simplex noise source with one draw from ``prng``."""
    return OpenSimplex(seed=int(prng.random() * 0x7FFFFFFF))
