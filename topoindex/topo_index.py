"""
Topographic index for redistributing soil moisture onto the fine grid.

TI = ln(a / tan(beta)) from TOPMODEL (Beven & Kirkby 1979), computed with
the multiple-flow-direction scheme of Wolock & McCabe (1995):

- cells are visited once, highest first, so a cell's upslope area is
  complete when it is reached
- tan(beta) is the contour-weighted sum of slopes to lower neighbours
  (0.4 of the cell size for diagonals, 0.6 for orthogonal neighbours)
- upslope area is split between lower neighbours in proportion to
  their weighted slope
- cells without a lower neighbour get a minimum gradient derived from
  the vertical resolution of the DEM

Uses numba @njit for the elevation-ordered pass; the final log-ratio is
vectorized with numpy.

References
----------
Beven K.J. and M.J. Kirkby, 1979, A physically based, variable
contributing area model of basin hydrology, Hydrol Sci Bull 24, 43-69.

Wolock D.M. and G.J. McCabe Jr., 1995, Comparison of single and multiple
flow direction algorithms for computing topographic parameters in
TOPMODEL, Water Resources Research, 31 (5), 1315-1324.
"""

import logging
import math
from dataclasses import dataclass

import numba
import numpy as np

from topoindex.config import Settings, get_settings
from topoindex.constants import N_DIRECTIONS
from topoindex.errors import UnsupportedConfigurationError
from topoindex.grid import (
    FineGrid,
    MapGeometry,
    allocate_scratch_grids,
    validate_visitation_order,
)
from topoindex.neighbors import build_neighbor_table, neighbor_arrays, neighbor_cell

logger = logging.getLogger(__name__)


@dataclass
class TopoIndexResult:
    """
    Outcome of one topographic index computation.

    Attributes
    ----------
    topo_index : np.ndarray
        ln(a / tan(beta)) for basin cells, NaN elsewhere
    n_cells : int
        Number of cells visited
    n_flat : int
        Number of cells without a lower neighbour (flat-area fallback)
    area : np.ndarray | None
        Accumulated upslope area [m2], only with keep_scratch=True
    tanbeta : np.ndarray | None
        Accumulated contour-weighted gradient, only with keep_scratch=True
    contour_length : np.ndarray | None
        Accumulated contour length [m], only with keep_scratch=True
    """

    topo_index: np.ndarray
    n_cells: int
    n_flat: int
    area: np.ndarray | None = None
    tanbeta: np.ndarray | None = None
    contour_length: np.ndarray | None = None


def flat_area_tanbeta(
    cellsize: float,
    vertical_resolution: float,
    n_directions: int = N_DIRECTIONS,
) -> float:
    """
    Minimum gradient for a cell with no lower neighbour.

    A flat or pit cell drains in every direction at half the vertical
    resolution of the DEM over the distance to each neighbour centre.

    Parameters
    ----------
    cellsize : float
        Cell size in meters
    vertical_resolution : float
        Vertical resolution of the DEM in meters
    n_directions : int
        Number of flow directions (half diagonal, half orthogonal)

    Returns
    -------
    float
        Gradient total for the cell
    """
    diagonal = cellsize * math.sqrt(2.0)
    half = n_directions // 2
    return half * ((0.5 * vertical_resolution) / diagonal) + half * (
        (0.5 * vertical_resolution) / cellsize
    )


@numba.njit(cache=True)
def _propagate(
    dem: np.ndarray,
    mask: np.ndarray,
    order_rows: np.ndarray,
    order_cols: np.ndarray,
    drow: np.ndarray,
    dcol: np.ndarray,
    weight: np.ndarray,
    distance: np.ndarray,
    cellsize: float,
    flat_tanbeta: float,
    area: np.ndarray,
    tanbeta: np.ndarray,
    contour_length: np.ndarray,
) -> int:
    """
    Route upslope area down the grid in visitation order.

    Mutates area, tanbeta and contour_length in place.
    Returns the number of cells that took the flat-area fallback.
    """
    n_dirs = drow.shape[0]
    present = np.zeros(n_dirs, dtype=np.bool_)
    nelev = np.zeros(n_dirs, dtype=np.float64)
    delta_a = np.zeros(n_dirs, dtype=np.float64)
    n_flat = 0

    for k in range(order_rows.shape[0]):
        r = order_rows[k]
        c = order_cols[k]
        celev = dem[r, c]

        # Gather; missing neighbours are level with the cell
        for n in range(n_dirs):
            nr, nc = neighbor_cell(mask, r, c, drow[n], dcol[n])
            if nr >= 0:
                present[n] = True
                nelev[n] = dem[nr, nc]
            else:
                present[n] = False
                nelev[n] = celev

        not_lower = 0
        for n in range(n_dirs):
            delta_a[n] = 0.0
            if present[n] and nelev[n] < celev:
                length = weight[n] * cellsize
                slope = (celev - nelev[n]) / distance[n]
                contour_length[r, c] += length
                tanbeta[r, c] += slope * length
                delta_a[n] = area[r, c] * slope * length
            else:
                not_lower += 1

        if not_lower == n_dirs:
            tanbeta[r, c] = flat_tanbeta
            n_flat += 1
            continue

        # Distribute
        for n in range(n_dirs):
            if present[n] and nelev[n] < celev:
                area[r + drow[n], c + dcol[n]] += delta_a[n] / tanbeta[r, c]

    return n_flat


def finalize_topo_index(
    area: np.ndarray,
    tanbeta: np.ndarray,
    mask: np.ndarray,
) -> np.ndarray:
    """
    Compute ln(area / tanbeta) for every basin cell.

    Parameters
    ----------
    area : np.ndarray
        Accumulated upslope area [m2]
    tanbeta : np.ndarray
        Accumulated contour-weighted gradient
    mask : np.ndarray
        True for basin cells

    Returns
    -------
    np.ndarray
        Topographic index (float64, NaN outside the basin)
    """
    topo_index = np.full(mask.shape, np.nan, dtype=np.float64)
    topo_index[mask] = np.log(area[mask] / tanbeta[mask])
    return topo_index


def calc_topo_index(
    geometry: MapGeometry,
    grid: FineGrid,
    order: np.ndarray,
    vertical_resolution: float | None = None,
    n_directions: int | None = None,
    validate_order: bool | None = None,
    keep_scratch: bool = False,
    settings: Settings | None = None,
) -> TopoIndexResult:
    """
    Calculate the topographic index of every basin cell of the fine grid.

    Writes grid.topo_index for basin cells; cells outside the basin are
    left untouched. Arguments left as None are taken from settings.

    Parameters
    ----------
    geometry : MapGeometry
        Fine-grid geometry
    grid : FineGrid
        Basin mask and DEM; receives the output
    order : np.ndarray
        (n, 2) array of (row, col) of every basin cell, highest first
    vertical_resolution : float, optional
        Vertical resolution of the DEM [m] for the flat-area fallback
    n_directions : int, optional
        Number of flow directions; must be 8
    validate_order : bool, optional
        Check the visitation order before routing
    keep_scratch : bool
        Return copies of the area, tanbeta and contour length grids
    settings : Settings, optional
        Settings to use instead of get_settings()

    Returns
    -------
    TopoIndexResult
        Output index and routing statistics

    Raises
    ------
    UnsupportedConfigurationError
        If n_directions is not 8 or vertical_resolution is not positive
    InvalidOrderingError
        If validation is enabled and the order is invalid
    ResourceExhaustionError
        If the scratch grids cannot be allocated
    ValueError
        If the grid shape does not match the geometry
    """
    if settings is None:
        settings = get_settings()
    if n_directions is None:
        n_directions = settings.neighbor_directions
    if vertical_resolution is None:
        vertical_resolution = settings.vertical_resolution
    if validate_order is None:
        validate_order = settings.validate_order

    table = build_neighbor_table(geometry.cellsize, n_directions)
    if not vertical_resolution > 0:
        raise UnsupportedConfigurationError(
            f"Vertical resolution must be positive, got {vertical_resolution}"
        )
    if grid.shape != geometry.shape:
        raise ValueError(
            f"Grid shape {grid.shape} doesn't match geometry {geometry.shape}"
        )

    if validate_order:
        validate_visitation_order(order, grid)
    order = np.asarray(order, dtype=np.int64).reshape(-1, 2)
    order_rows = np.ascontiguousarray(order[:, 0])
    order_cols = np.ascontiguousarray(order[:, 1])

    logger.info(
        f"Computing topographic index ({geometry.nrows}x{geometry.ncols}, "
        f"{len(order):,} cells, cellsize {geometry.cellsize} m)..."
    )

    drow, dcol, weight, distance = neighbor_arrays(table)
    flat_tanbeta = flat_area_tanbeta(
        geometry.cellsize, vertical_resolution, n_directions
    )
    dem = np.ascontiguousarray(grid.dem, dtype=np.float64)
    mask = np.ascontiguousarray(grid.mask, dtype=np.bool_)

    with allocate_scratch_grids(geometry.shape) as scratch:
        # Every cell starts with its own footprint
        scratch.area[order_rows, order_cols] = geometry.cell_area

        n_flat = _propagate(
            dem,
            mask,
            order_rows,
            order_cols,
            drow,
            dcol,
            weight,
            distance,
            float(geometry.cellsize),
            flat_tanbeta,
            scratch.area,
            scratch.tanbeta,
            scratch.contour_length,
        )

        topo_index = finalize_topo_index(scratch.area, scratch.tanbeta, mask)
        grid.topo_index[mask] = topo_index[mask]

        result = TopoIndexResult(
            topo_index=topo_index,
            n_cells=len(order),
            n_flat=int(n_flat),
        )
        if keep_scratch:
            result.area = scratch.area.copy()
            result.tanbeta = scratch.tanbeta.copy()
            result.contour_length = scratch.contour_length.copy()

    valid = topo_index[mask]
    if len(valid) > 0:
        logger.info(
            f"Topographic index computed (range: {valid.min():.2f} - "
            f"{valid.max():.2f}, flat cells: {result.n_flat:,})"
        )
    else:
        logger.info("Topographic index computed (no basin cells)")

    return result
