"""
Shared test fixtures for pytest.

Provides small hand-checkable grids (ramps, pits, flat plains) for the
topographic index tests.
"""

import numpy as np
import pytest

from topoindex.config import Settings
from topoindex.grid import FineGrid, MapGeometry, build_visitation_order


def make_grid(dem, mask=None, cellsize: float = 30.0):
    """Build (geometry, grid, order) for a DEM given as nested lists."""
    dem = np.asarray(dem, dtype=np.float64)
    if mask is None:
        mask = np.ones(dem.shape, dtype=bool)
    nrows, ncols = dem.shape
    geometry = MapGeometry(nrows=nrows, ncols=ncols, cellsize=cellsize)
    grid = FineGrid(mask=np.asarray(mask, dtype=bool), dem=dem)
    order = build_visitation_order(grid.dem, grid.mask)
    return geometry, grid, order


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def ramp():
    """
    1x3 strip falling east, 10 m cells.

        20 -> 10 -> 0
    """
    return make_grid([[20.0, 10.0, 0.0]], cellsize=10.0)


@pytest.fixture
def pit():
    """3x3 grid, 30 m cells: a 0 m cell surrounded by 10 m cells."""
    dem = np.full((3, 3), 10.0)
    dem[1, 1] = 0.0
    return make_grid(dem)


@pytest.fixture
def random_surface():
    """20x20 random surface, fully inside the basin."""
    rng = np.random.default_rng(42)
    return make_grid(rng.random((20, 20)) * 100.0)


@pytest.fixture
def grid_factory():
    """Factory building (geometry, grid, order) from a DEM and optional mask."""
    return make_grid
