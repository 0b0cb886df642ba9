"""Tests for topoindex.grid module."""

import math
from unittest.mock import patch

import numpy as np
import pytest

from topoindex.errors import InvalidOrderingError, ResourceExhaustionError
from topoindex.grid import (
    FineGrid,
    MapGeometry,
    allocate_scratch_grids,
    build_visitation_order,
    validate_visitation_order,
)


class TestMapGeometry:
    """Tests for MapGeometry."""

    def test_derived_values(self):
        geometry = MapGeometry(nrows=4, ncols=5, cellsize=30.0)
        assert geometry.shape == (4, 5)
        assert geometry.diagonal == pytest.approx(30.0 * math.sqrt(2.0))
        assert geometry.cell_area == pytest.approx(900.0)

    def test_yllcorner_from_coarse_grid(self):
        geometry = MapGeometry(
            nrows=10,
            ncols=10,
            cellsize=10.0,
            xorig=500000.0,
            yorig=600150.0,
            coarse_nrows=1,
            coarse_cellsize=150.0,
        )
        assert geometry.yllcorner == pytest.approx(600000.0)

    def test_yllcorner_defaults_to_fine_grid(self):
        geometry = MapGeometry(nrows=3, ncols=2, cellsize=10.0, yorig=100.0)
        assert geometry.yllcorner == pytest.approx(70.0)

    def test_from_metadata(self):
        metadata = {
            "ncols": 3,
            "nrows": 2,
            "xllcorner": 500000.0,
            "yllcorner": 600000.0,
            "cellsize": 5.0,
        }
        geometry = MapGeometry.from_metadata(metadata)
        assert geometry.shape == (2, 3)
        assert geometry.xorig == 500000.0
        assert geometry.yorig == pytest.approx(600010.0)
        assert geometry.yllcorner == pytest.approx(600000.0)

    @pytest.mark.parametrize("cellsize", [0.0, -1.0])
    def test_invalid_cellsize(self, cellsize):
        with pytest.raises(ValueError):
            MapGeometry(nrows=1, ncols=1, cellsize=cellsize)

    def test_empty_grid_rejected(self):
        with pytest.raises(ValueError):
            MapGeometry(nrows=0, ncols=3, cellsize=1.0)


class TestFineGrid:
    """Tests for FineGrid."""

    def test_output_starts_nan(self):
        grid = FineGrid(mask=np.ones((2, 2), dtype=bool), dem=np.zeros((2, 2)))
        assert grid.topo_index.shape == (2, 2)
        assert np.isnan(grid.topo_index).all()

    def test_n_valid(self):
        grid = FineGrid(mask=[[True, False], [True, True]], dem=np.zeros((2, 2)))
        assert grid.n_valid == 3

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            FineGrid(mask=np.ones((2, 3), dtype=bool), dem=np.zeros((2, 2)))

    def test_not_2d(self):
        with pytest.raises(ValueError):
            FineGrid(mask=np.ones(4, dtype=bool), dem=np.zeros(4))


class TestAllocateScratchGrids:
    """Tests for allocate_scratch_grids."""

    def test_zeroed_grids(self):
        with allocate_scratch_grids((3, 4)) as scratch:
            for grid in (scratch.area, scratch.tanbeta, scratch.contour_length):
                assert grid.shape == (3, 4)
                assert grid.dtype == np.float64
                assert not grid.any()

    def test_grids_are_distinct(self):
        with allocate_scratch_grids((2, 2)) as scratch:
            scratch.area[0, 0] = 1.0
            assert scratch.tanbeta[0, 0] == 0.0
            assert scratch.contour_length[0, 0] == 0.0

    def test_released_after_block(self):
        with allocate_scratch_grids((2, 2)) as scratch:
            assert not scratch.released
        assert scratch.released

    def test_released_on_error(self):
        with pytest.raises(RuntimeError):
            with allocate_scratch_grids((2, 2)) as scratch:
                raise RuntimeError("boom")
        assert scratch.released

    @pytest.mark.parametrize("fail_at", [0, 1, 2])
    def test_allocation_failure(self, fail_at):
        effects = [np.zeros((2, 2)) for _ in range(fail_at)] + [MemoryError()]
        with patch("topoindex.grid._allocate_grid", side_effect=effects):
            with pytest.raises(ResourceExhaustionError) as exc_info:
                with allocate_scratch_grids((2, 2)):
                    pytest.fail("block must not run")
        assert isinstance(exc_info.value.__cause__, MemoryError)


class TestBuildVisitationOrder:
    """Tests for build_visitation_order."""

    def test_descending_elevation(self):
        dem = np.array([[1.0, 5.0], [3.0, 2.0]])
        order = build_visitation_order(dem, np.ones((2, 2), dtype=bool))
        assert order.tolist() == [[0, 1], [1, 0], [1, 1], [0, 0]]

    def test_ties_keep_row_major_order(self):
        dem = np.full((2, 2), 7.0)
        order = build_visitation_order(dem, np.ones((2, 2), dtype=bool))
        assert order.tolist() == [[0, 0], [0, 1], [1, 0], [1, 1]]

    def test_only_basin_cells(self):
        dem = np.array([[1.0, 99.0], [3.0, 2.0]])
        mask = np.array([[True, False], [True, True]])
        order = build_visitation_order(dem, mask)
        assert len(order) == 3
        assert [0, 1] not in order.tolist()

    def test_empty_basin(self):
        order = build_visitation_order(np.zeros((2, 2)), np.zeros((2, 2), dtype=bool))
        assert order.shape == (0, 2)


class TestValidateVisitationOrder:
    """Tests for validate_visitation_order."""

    @pytest.fixture
    def grid(self):
        return FineGrid(
            mask=np.array([[True, True], [True, False]]),
            dem=np.array([[3.0, 2.0], [1.0, 0.0]]),
        )

    def test_valid_order(self, grid):
        validate_visitation_order(np.array([[0, 0], [0, 1], [1, 0]]), grid)

    def test_equal_elevations_accepted(self):
        grid = FineGrid(mask=np.ones((1, 2), dtype=bool), dem=np.full((1, 2), 4.0))
        validate_visitation_order(np.array([[0, 1], [0, 0]]), grid)

    def test_empty_list_for_empty_basin(self):
        grid = FineGrid(mask=np.zeros((2, 2), dtype=bool), dem=np.zeros((2, 2)))
        validate_visitation_order([], grid)

    def test_empty_list_for_nonempty_basin(self, grid):
        with pytest.raises(InvalidOrderingError, match="covers"):
            validate_visitation_order([], grid)

    def test_wrong_shape(self, grid):
        with pytest.raises(InvalidOrderingError):
            validate_visitation_order(np.array([0, 0, 1]), grid)

    def test_float_coordinates(self, grid):
        with pytest.raises(InvalidOrderingError):
            validate_visitation_order(np.array([[0.0, 0.0]]), grid)

    def test_outside_grid(self, grid):
        with pytest.raises(InvalidOrderingError, match="outside the grid"):
            validate_visitation_order(np.array([[0, 0], [0, 2], [1, 0]]), grid)

    def test_outside_basin(self, grid):
        with pytest.raises(InvalidOrderingError, match="outside the basin"):
            validate_visitation_order(np.array([[0, 0], [0, 1], [1, 1]]), grid)

    def test_duplicate(self, grid):
        with pytest.raises(InvalidOrderingError, match="more than once"):
            validate_visitation_order(np.array([[0, 0], [0, 1], [0, 1]]), grid)

    def test_missing_cell(self, grid):
        with pytest.raises(InvalidOrderingError, match="covers"):
            validate_visitation_order(np.array([[0, 0], [0, 1]]), grid)

    def test_rising_elevation(self, grid):
        with pytest.raises(InvalidOrderingError, match="rises"):
            validate_visitation_order(np.array([[0, 1], [0, 0], [1, 0]]), grid)
