"""
Fine-grid data model, scratch grid allocation and visitation order.

The fine grid is owned by the caller. Scratch grids (accumulated area,
accumulated gradient, accumulated contour length) belong to a single
computation: they are allocated zeroed, used, and released on every
exit path.
"""

import logging
import math
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np

from topoindex.errors import InvalidOrderingError, ResourceExhaustionError

logger = logging.getLogger(__name__)

SCRATCH_GRID_NAMES = ("area", "tanbeta", "contour_length")


@dataclass
class MapGeometry:
    """
    Geometry of the fine (mass wasting resolution) grid.

    Attributes
    ----------
    nrows : int
        Number of fine-grid rows
    ncols : int
        Number of fine-grid columns
    cellsize : float
        Fine cell size in meters (same in X and Y)
    xorig : float
        X coordinate of the grid's western edge
    yorig : float
        Y coordinate of the grid's northern edge
    coarse_nrows : int | None
        Rows of the coarse hydrologic grid (defaults to nrows)
    coarse_cellsize : float | None
        Coarse cell size in meters (defaults to cellsize)
    """

    nrows: int
    ncols: int
    cellsize: float
    xorig: float = 0.0
    yorig: float = 0.0
    coarse_nrows: int | None = None
    coarse_cellsize: float | None = None

    def __post_init__(self):
        if self.nrows <= 0 or self.ncols <= 0:
            raise ValueError(
                f"Grid must have at least one cell, got {self.nrows}x{self.ncols}"
            )
        if not self.cellsize > 0:
            raise ValueError(f"Cell size must be positive, got {self.cellsize}")

    @classmethod
    def from_metadata(cls, metadata: dict) -> "MapGeometry":
        """
        Build geometry from a raster metadata dict.

        The coarse grid is taken to coincide with the fine grid.

        Parameters
        ----------
        metadata : dict
            Grid metadata with ncols, nrows, xllcorner, yllcorner, cellsize
        """
        nrows = int(metadata["nrows"])
        cellsize = float(metadata["cellsize"])
        return cls(
            nrows=nrows,
            ncols=int(metadata["ncols"]),
            cellsize=cellsize,
            xorig=float(metadata["xllcorner"]),
            yorig=float(metadata["yllcorner"]) + nrows * cellsize,
        )

    @property
    def shape(self) -> tuple[int, int]:
        return (self.nrows, self.ncols)

    @property
    def diagonal(self) -> float:
        return self.cellsize * math.sqrt(2.0)

    @property
    def cell_area(self) -> float:
        return self.cellsize * self.cellsize

    @property
    def yllcorner(self) -> float:
        """Lower-left Y of the coarse grid, as written by the ASCII export."""
        coarse_nrows = self.nrows if self.coarse_nrows is None else self.coarse_nrows
        coarse_cellsize = (
            self.cellsize if self.coarse_cellsize is None else self.coarse_cellsize
        )
        return self.yorig - coarse_nrows * coarse_cellsize


@dataclass
class FineGrid:
    """
    Cell records of the fine grid.

    Attributes
    ----------
    mask : np.ndarray
        True where the cell lies inside the modelled basin
    dem : np.ndarray
        Elevation [m]
    topo_index : np.ndarray
        Output topographic index; NaN until computed, never written
        for cells outside the basin
    """

    mask: np.ndarray
    dem: np.ndarray
    topo_index: np.ndarray | None = None

    def __post_init__(self):
        self.mask = np.asarray(self.mask, dtype=bool)
        self.dem = np.asarray(self.dem, dtype=np.float64)
        if self.mask.ndim != 2 or self.dem.ndim != 2:
            raise ValueError("mask and dem must be 2-D arrays")
        if self.mask.shape != self.dem.shape:
            raise ValueError(
                f"mask shape {self.mask.shape} doesn't match "
                f"dem shape {self.dem.shape}"
            )
        if self.topo_index is None:
            self.topo_index = np.full(self.dem.shape, np.nan, dtype=np.float64)
        elif self.topo_index.shape != self.dem.shape:
            raise ValueError(
                f"topo_index shape {self.topo_index.shape} doesn't match "
                f"dem shape {self.dem.shape}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return self.dem.shape

    @property
    def n_valid(self) -> int:
        return int(np.count_nonzero(self.mask))


@dataclass
class ScratchGrids:
    """Working grids of one topographic index computation."""

    area: np.ndarray | None
    tanbeta: np.ndarray | None
    contour_length: np.ndarray | None

    @property
    def released(self) -> bool:
        return all(getattr(self, name) is None for name in SCRATCH_GRID_NAMES)

    def release(self) -> None:
        self.area = None
        self.tanbeta = None
        self.contour_length = None


def _allocate_grid(shape: tuple[int, int]) -> np.ndarray:
    return np.zeros(shape, dtype=np.float64)


@contextmanager
def allocate_scratch_grids(shape: tuple[int, int]) -> Iterator[ScratchGrids]:
    """
    Allocate the three zeroed scratch grids for the duration of a block.

    Grids are released when the block exits, whether normally or by an
    exception.

    Parameters
    ----------
    shape : tuple[int, int]
        (nrows, ncols) of the fine grid

    Yields
    ------
    ScratchGrids
        area, tanbeta and contour_length grids

    Raises
    ------
    ResourceExhaustionError
        If any grid cannot be allocated; grids allocated before the
        failure are released first
    """
    allocated = []
    try:
        for _name in SCRATCH_GRID_NAMES:
            allocated.append(_allocate_grid(shape))
    except MemoryError as e:
        failed = SCRATCH_GRID_NAMES[len(allocated)]
        allocated.clear()
        raise ResourceExhaustionError(
            f"Cannot allocate {failed} scratch grid of shape {shape}"
        ) from e

    scratch = ScratchGrids(*allocated)
    allocated.clear()
    logger.debug(f"Allocated scratch grids {shape[0]}x{shape[1]}")
    try:
        yield scratch
    finally:
        scratch.release()
        logger.debug("Released scratch grids")


def build_visitation_order(dem: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """
    Sort the basin cells by descending elevation.

    Equal elevations keep row-major order, so the result is
    deterministic.

    Parameters
    ----------
    dem : np.ndarray
        Elevation array
    mask : np.ndarray
        True for basin cells

    Returns
    -------
    np.ndarray
        (n, 2) int64 array of (row, col), highest cell first
    """
    rows, cols = np.nonzero(mask)
    elev = np.asarray(dem, dtype=np.float64)[rows, cols]
    idx = np.argsort(-elev, kind="stable")
    return np.column_stack((rows[idx], cols[idx])).astype(np.int64)


def validate_visitation_order(order: np.ndarray, grid: FineGrid) -> None:
    """
    Check that the order visits every basin cell once, highest first.

    Parameters
    ----------
    order : np.ndarray
        (n, 2) array of (row, col)
    grid : FineGrid
        Fine grid the order was built for

    Raises
    ------
    InvalidOrderingError
        If the order has the wrong shape, leaves the grid or basin,
        repeats or misses a cell, or climbs in elevation
    """
    order = np.asarray(order)
    if order.size == 0:
        order = np.empty((0, 2), dtype=np.int64)
    if order.ndim != 2 or order.shape[1] != 2:
        raise InvalidOrderingError(
            f"Visitation order must have shape (n, 2), got {order.shape}"
        )
    if order.size and not np.issubdtype(order.dtype, np.integer):
        raise InvalidOrderingError(
            f"Visitation order must hold integer coordinates, got {order.dtype}"
        )

    nrows, ncols = grid.shape
    rows = order[:, 0]
    cols = order[:, 1]

    outside = (rows < 0) | (rows >= nrows) | (cols < 0) | (cols >= ncols)
    if np.any(outside):
        k = int(np.argmax(outside))
        raise InvalidOrderingError(
            f"Visitation order entry {k} ({rows[k]}, {cols[k]}) is outside the grid"
        )

    in_basin = grid.mask[rows, cols]
    if not np.all(in_basin):
        k = int(np.argmin(in_basin))
        raise InvalidOrderingError(
            f"Visitation order entry {k} ({rows[k]}, {cols[k]}) "
            f"is outside the basin"
        )

    flat_idx = rows.astype(np.int64) * ncols + cols
    if np.unique(flat_idx).size != flat_idx.size:
        raise InvalidOrderingError("Visitation order visits a cell more than once")

    if flat_idx.size != grid.n_valid:
        raise InvalidOrderingError(
            f"Visitation order covers {flat_idx.size:,} cells, "
            f"basin has {grid.n_valid:,}"
        )

    rising = np.diff(grid.dem[rows, cols]) > 0
    if np.any(rising):
        k = int(np.argmax(rising)) + 1
        raise InvalidOrderingError(
            f"Elevation rises at visitation order entry {k} "
            f"({rows[k]}, {cols[k]})"
        )
