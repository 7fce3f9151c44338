"""
Core world generation functionality.
"""

from .alea_prng import AleaPRNG
from .biomes import BiomeClassifier, BiomeMap, BiomeType, generate_biome_map
from .climate import Climate, ClimateMap, ClimateOptions, generate_climate_map
from .errors import GridShapeError, InvalidDimensionsError, WorldgenError
from .heightmap import HeightmapGenerator, HeightmapOptions, generate_heightmap
from .hydrology import (
    River,
    RiverNetworkBuilder,
    RiverOptions,
    RiverSystem,
    TraceOutcome,
    generate_rivers,
)
from .regions import Region, RegionMap, RegionOptions, RegionPartitioner, generate_regions
from .settlements import (
    SettlementOptions,
    SettlementPlacer,
    StructureLocation,
    StructurePlacement,
    StructureType,
    place_structures,
)
from .types import Point
from .world import (
    GeneratedWorld,
    WorldGenerator,
    WorldGenOptions,
    generate_world,
    quick_world,
)

__all__ = ['AleaPRNG', 'BiomeClassifier', 'BiomeMap', 'BiomeType', 'generate_biome_map',
           'Climate', 'ClimateMap', 'ClimateOptions', 'generate_climate_map',
           'GridShapeError', 'InvalidDimensionsError', 'WorldgenError',
           'HeightmapGenerator', 'HeightmapOptions', 'generate_heightmap',
           'River', 'RiverNetworkBuilder', 'RiverOptions', 'RiverSystem', 'TraceOutcome',
           'generate_rivers', 'Region', 'RegionMap', 'RegionOptions', 'RegionPartitioner',
           'generate_regions', 'SettlementOptions', 'SettlementPlacer', 'StructureLocation',
           'StructurePlacement', 'StructureType', 'place_structures', 'Point',
           'GeneratedWorld', 'WorldGenerator', 'WorldGenOptions', 'generate_world',
           'quick_world']
