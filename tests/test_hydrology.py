"""Tests for the river network builder."""

import pytest
import numpy as np

from py_worldgen.core.grid import calculate_ocean_distance
from py_worldgen.core.hydrology import (
    NO_FLOW,
    RiverNetworkBuilder,
    RiverOptions,
    TraceOutcome,
    calculate_flow_accumulation,
    calculate_flow_direction,
    carve_spillways,
    ensure_sea_outlets,
    generate_rivers,
    rasterize_rivers,
)
from py_worldgen.core.types import Point
from py_worldgen.utils.random import create_prng


class TestSeaOutlets:
    """Test the no-ocean safety valve."""

    def test_lowers_lowest_edge_cell(self):
        width, height = 10, 10
        elevation = np.full(width * height, 50, dtype=np.uint8)
        elevation[9 * width + 4] = 30  # Bottom edge
        elevation[5 * width + 5] = 25  # Interior cells are never chosen
        before = elevation.copy()

        lowered = ensure_sea_outlets(elevation, 20, width, height)

        assert lowered == 9 * width + 4
        assert elevation[lowered] == 19
        assert int(np.count_nonzero(elevation != before)) == 1

    def test_first_minimum_wins(self):
        elevation = np.full(16, 50, dtype=np.uint8)

        lowered = ensure_sea_outlets(elevation, 20, 4, 4)

        assert lowered == 0
        assert elevation[0] == 19

    def test_existing_ocean_untouched(self):
        elevation = np.full(16, 50, dtype=np.uint8)
        elevation[6] = 5
        before = elevation.copy()

        assert ensure_sea_outlets(elevation, 20, 4, 4) is None
        assert np.array_equal(elevation, before)


class TestDrainage:
    """Test carving, flow direction and accumulation."""

    @pytest.fixture
    def ramp(self):
        """60x60 map: ocean in the first column, land rising eastward."""
        width, height = 60, 60
        elevation = np.zeros(width * height, dtype=np.uint8)
        for y in range(height):
            for x in range(width):
                elevation[y * width + x] = 5 if x == 0 else 20 + x
        return width, height, elevation

    def test_carve_lowers_downstream_neighbor(self):
        heights = [0, 30, 25]
        distance = calculate_ocean_distance(np.array(heights, dtype=np.uint8), 20, 3, 1).tolist()

        carved = carve_spillways(heights, distance, 20, 3, 1)

        assert carved == 1
        assert heights == [0, 25, 25]

    def test_flow_accumulation_chain(self):
        heights = [0, 21, 22]
        distance = [0, 1, 2]
        direction = [NO_FLOW, 0, 1]

        flow = calculate_flow_accumulation(heights, distance, [100.0] * 3, 20, direction)

        assert flow.dtype == np.float32
        assert flow.tolist() == [200.0, 200.0, 100.0]

    def test_every_land_cell_drains_downhill(self, ramp):
        """After carving, each land cell flows lower, or level and closer to the sea."""
        width, height, elevation = ramp
        heights = elevation.tolist()
        distance = calculate_ocean_distance(elevation, 20, width, height).tolist()
        carve_spillways(heights, distance, 20, width, height)

        direction = calculate_flow_direction(
            heights, distance, 20, width, height, create_prng("drain", "rivers")
        )

        for idx, target in enumerate(direction):
            if heights[idx] < 20:
                assert target == NO_FLOW
                continue
            assert target != NO_FLOW
            x, y = idx % width, idx // width
            tx, ty = target % width, target // width
            assert max(abs(x - tx), abs(y - ty)) == 1
            assert heights[target] < heights[idx] or (
                heights[target] == heights[idx] and distance[target] < distance[idx]
            )


class TestRiverNetworkBuilder:
    """Test full river generation."""

    @pytest.fixture
    def ramp(self):
        width, height = 60, 60
        elevation = np.zeros(width * height, dtype=np.uint8)
        for y in range(height):
            for x in range(width):
                elevation[y * width + x] = 5 if x == 0 else 20 + x
        return width, height, elevation

    def test_rivers_generated(self, ramp):
        width, height, elevation = ramp
        system = generate_rivers("river-ramp", width, height, elevation)

        assert len(system.rivers) > 0
        assert system.flow_map.shape == (height, width)
        assert system.sources >= len(system.rivers)

    def test_paths_are_eight_connected(self, ramp):
        width, height, elevation = ramp
        system = generate_rivers("river-adjacent", width, height, elevation)

        for river in system.rivers:
            for a, b in zip(river.path, river.path[1:]):
                assert max(abs(a.x - b.x), abs(a.y - b.y)) == 1

    def test_rivers_reach_the_sea(self, ramp):
        width, height, elevation = ramp
        system = generate_rivers("river-mouth", width, height, elevation)

        for river in system.rivers:
            assert river.outcome == TraceOutcome.OCEAN
            assert elevation[river.mouth.to_index(width)] < 20
            assert elevation[river.source.to_index(width)] >= 20

    def test_flux_non_decreasing(self, ramp):
        width, height, elevation = ramp
        system = generate_rivers("river-flux", width, height, elevation)

        for river in system.rivers:
            assert len(river.flux) == len(river.path)
            for upstream, downstream in zip(river.flux, river.flux[1:]):
                assert downstream >= upstream
            assert all(0 <= value <= 10000 for value in river.flux)

    def test_minimum_length(self, ramp):
        width, height, elevation = ramp
        system = generate_rivers("river-length", width, height, elevation)

        for river in system.rivers:
            assert river.length >= 25

    def test_long_minimum_discards_everything(self, ramp):
        width, height, elevation = ramp
        builder = RiverNetworkBuilder(RiverOptions(min_river_length=1000))
        system = builder.generate("river-none", width, height, elevation)

        assert system.rivers == []
        assert system.discarded_fragments == sum(system.outcomes.values())
        assert system.discarded_fragments > 0

    def test_deterministic(self, ramp):
        width, height, elevation = ramp
        first = generate_rivers("river-same", width, height, elevation)
        second = generate_rivers("river-same", width, height, elevation)

        assert [r.path for r in first.rivers] == [r.path for r in second.rivers]
        assert np.array_equal(first.flow_map, second.flow_map)

    def test_input_not_modified(self):
        width, height = 30, 30
        elevation = np.full(width * height, 60, dtype=np.uint8)
        before = elevation.copy()

        system = generate_rivers("no-ocean", width, height, elevation)

        assert np.array_equal(elevation, before)
        assert system.aborted_traces == 0

    def test_precipitation_scales_flow(self, ramp):
        width, height, elevation = ramp
        dry = generate_rivers("rain", width, height, elevation, np.full(width * height, 10.0))
        wet = generate_rivers("rain", width, height, elevation, np.full(width * height, 100.0))

        assert wet.flow_map.sum() > dry.flow_map.sum()

    def test_rasterize(self, ramp):
        width, height, elevation = ramp
        system = generate_rivers("river-raster", width, height, elevation)
        river_map = rasterize_rivers(system.rivers, width, height)

        assert river_map.dtype == np.uint8
        cells = {p.to_index(width) for river in system.rivers for p in river.path}
        assert set(np.flatnonzero(river_map).tolist()) == cells


class TestConfluences:
    """Test confluence tracking on a hand-built drainage graph."""

    @pytest.fixture
    def junction(self):
        """
        5x3 grid, bottom row ocean. Two tributaries meet at (2, 1):

            0 -> 1 -> 7 <- 3 <- 4
                      |
                      12 (ocean)

        Cells 5 and 6 both drain into the first source, cell 0.
        """
        width, height = 5, 3
        heights = [60, 50, 90, 45, 55, 90, 90, 30, 90, 90] + [0] * 5
        direction = [NO_FLOW] * (width * height)
        direction[0] = 1
        direction[1] = 7
        direction[4] = 3
        direction[3] = 7
        direction[7] = 12
        direction[5] = 0
        direction[6] = 0

        flow = np.full(width * height, 100.0, dtype=np.float32)
        flow[10:] = 0.0
        flow[[0, 1, 3, 4]] = 1000.0
        flow[7] = 2100.0
        return width, height, heights, direction, flow

    def test_junction_recorded_on_both_rivers(self, junction):
        width, height, heights, direction, flow = junction
        builder = RiverNetworkBuilder(RiverOptions(min_river_length=1))

        system = builder.build_network(heights, direction, flow, width, height)

        assert len(system.rivers) == 2
        first, second = system.rivers
        assert [p.to_index(width) for p in first.path] == [0, 1, 7, 12]
        assert [p.to_index(width) for p in second.path] == [4, 3, 7, 12]
        assert first.confluences == [Point(x=2, y=1)]
        assert second.confluences == [Point(x=2, y=1)]
        assert system.outcomes == {TraceOutcome.OCEAN.value: 2}

    def test_source_never_listed(self, junction):
        """Cell 0 has two inflows but starts its river, so it is not a confluence."""
        width, height, heights, direction, flow = junction
        builder = RiverNetworkBuilder(RiverOptions(min_river_length=1))

        system = builder.build_network(heights, direction, flow, width, height)

        first = system.rivers[0]
        assert first.source == Point(x=0, y=0)
        assert first.source not in first.confluences

    def test_generated_sources_never_listed(self):
        width, height = 60, 60
        elevation = np.zeros(width * height, dtype=np.uint8)
        for y in range(height):
            for x in range(width):
                elevation[y * width + x] = 5 if x == 0 else 20 + x

        system = generate_rivers("river-confluence", width, height, elevation)

        for river in system.rivers:
            assert river.source not in river.confluences
            assert set(river.confluences) <= set(river.path[1:])


class TestTrace:
    """Test how a single trace ends."""

    def trace(self, heights, direction, max_steps=None, trace_id=1, marks=None):
        size = len(heights)
        visited = [False] * size
        marks = marks if marks is not None else [0] * size
        path, outcome = RiverNetworkBuilder._trace(
            0,
            heights,
            direction,
            20,
            visited,
            marks,
            trace_id,
            max_steps if max_steps is not None else size,
        )
        return path, outcome, visited

    def test_reaches_ocean(self):
        path, outcome, visited = self.trace([30, 30, 0], [1, 2, NO_FLOW])

        assert outcome == TraceOutcome.OCEAN
        assert path == [0, 1, 2]
        assert visited == [True, True, True]

    def test_cycle_stops_before_revisit(self):
        path, outcome, _ = self.trace([30] * 4, [1, 2, 1, NO_FLOW])

        assert outcome == TraceOutcome.CYCLE
        assert path == [0, 1, 2]

    def test_dead_end_is_a_sink(self):
        path, outcome, _ = self.trace([30] * 3, [1, 2, NO_FLOW])

        assert outcome == TraceOutcome.SINK
        assert path == [0, 1, 2]

    def test_step_limit(self):
        path, outcome, _ = self.trace([30] * 6, [1, 2, 3, 4, 5, NO_FLOW], max_steps=3)

        assert outcome == TraceOutcome.STEP_LIMIT
        assert path == [0, 1, 2, 3]

    def test_earlier_trace_marks_do_not_stop_a_river(self):
        """Cells entered by trace 1 are shared, not a cycle, for trace 2."""
        marks = [0, 1, 1, 0]

        path, outcome, _ = self.trace(
            [30, 30, 30, 0], [1, 2, 3, NO_FLOW], trace_id=2, marks=marks
        )

        assert outcome == TraceOutcome.OCEAN
        assert path == [0, 1, 2, 3]
        assert marks == [2, 2, 2, 2]

    def test_outcomes_counted_in_system(self):
        """A 2-cycle and a dead end each count once; both are too short to keep."""
        width, height = 6, 1
        heights = [60, 50, 40, 70, 65, 0]
        direction = [1, 2, NO_FLOW, 4, 3, NO_FLOW]
        flow = np.array([1000.0] * 5 + [0.0], dtype=np.float32)

        system = RiverNetworkBuilder().build_network(heights, direction, flow, width, height)

        assert system.outcomes == {
            TraceOutcome.CYCLE.value: 1,
            TraceOutcome.SINK.value: 1,
        }
        assert system.aborted_traces == 1
        assert system.discarded_fragments == 2
        assert system.rivers == []
