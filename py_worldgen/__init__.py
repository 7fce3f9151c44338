"""
Procedural world generation: climate, biomes, regions, rivers and settlements.
"""

__version__ = "0.1.0"
