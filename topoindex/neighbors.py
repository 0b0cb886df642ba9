r"""
Neighbour geometry for 8-direction multiple-flow-direction routing.

One direction table (offset, diagonal tag, contour weight, travel
distance) is shared by the gather and distribute steps of the
propagator.

    NW ---- N ---- NE
    |  \    |    /  |
    W ----- * ----- E
    |  /    |    \  |
    SW ---- S ---- SE

Row offsets follow ASCII GRID order: row 0 is the northern edge.
"""

import math
from dataclasses import dataclass

import numba
import numpy as np

from topoindex.constants import (
    DIAGONAL_CONTOUR_WEIGHT,
    N_DIRECTIONS,
    ORTHOGONAL_CONTOUR_WEIGHT,
)
from topoindex.errors import UnsupportedConfigurationError

# Compass order, (row_offset, col_offset)
DIRECTION_OFFSETS = {
    "N": (-1, 0),
    "NE": (-1, 1),
    "E": (0, 1),
    "SE": (1, 1),
    "S": (1, 0),
    "SW": (1, -1),
    "W": (0, -1),
    "NW": (-1, -1),
}


@dataclass(frozen=True)
class NeighborDirection:
    """
    One entry of the direction table.

    Attributes
    ----------
    name : str
        Compass name (N, NE, ...)
    drow : int
        Row offset
    dcol : int
        Column offset
    diagonal : bool
        Whether the neighbour shares only a corner with the cell
    weight : float
        Contour-weight fraction (0.4 diagonal, 0.6 orthogonal)
    distance : float
        Travel distance between cell centres [m]
    """

    name: str
    drow: int
    dcol: int
    diagonal: bool
    weight: float
    distance: float


def build_neighbor_table(
    cellsize: float,
    n_directions: int = N_DIRECTIONS,
) -> tuple[NeighborDirection, ...]:
    """
    Build the direction table for a grid with square cells.

    Parameters
    ----------
    cellsize : float
        Cell size in meters (same in X and Y)
    n_directions : int
        Configured number of flow directions

    Returns
    -------
    tuple[NeighborDirection, ...]
        8 directions in compass order

    Raises
    ------
    UnsupportedConfigurationError
        If n_directions is not 8
    """
    if n_directions != N_DIRECTIONS:
        raise UnsupportedConfigurationError(
            f"Only {N_DIRECTIONS}-direction routing is supported, "
            f"got {n_directions} directions"
        )

    diagonal_distance = cellsize * math.sqrt(2.0)
    table = []
    for name, (drow, dcol) in DIRECTION_OFFSETS.items():
        diagonal = drow != 0 and dcol != 0
        table.append(
            NeighborDirection(
                name=name,
                drow=drow,
                dcol=dcol,
                diagonal=diagonal,
                weight=(
                    DIAGONAL_CONTOUR_WEIGHT if diagonal else ORTHOGONAL_CONTOUR_WEIGHT
                ),
                distance=diagonal_distance if diagonal else float(cellsize),
            )
        )
    return tuple(table)


def neighbor_arrays(
    table: tuple[NeighborDirection, ...],
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Unpack the direction table into arrays for the numba kernel.

    Returns
    -------
    tuple
        (drow, dcol, weight, distance)
    """
    drow = np.array([d.drow for d in table], dtype=np.int64)
    dcol = np.array([d.dcol for d in table], dtype=np.int64)
    weight = np.array([d.weight for d in table], dtype=np.float64)
    distance = np.array([d.distance for d in table], dtype=np.float64)
    return drow, dcol, weight, distance


@numba.njit(cache=True)
def neighbor_cell(
    mask: np.ndarray,
    row: int,
    col: int,
    drow: int,
    dcol: int,
) -> tuple[int, int]:
    """
    Cell at (row + drow, col + dcol), or (-1, -1) if it is missing.

    A neighbour is missing when it lies outside the grid or outside the
    modelled basin. Called from the propagator kernel.
    """
    nrows, ncols = mask.shape
    nr = row + drow
    nc = col + dcol
    if 0 <= nr < nrows and 0 <= nc < ncols and mask[nr, nc]:
        return nr, nc
    return -1, -1


def lookup_neighbor(
    mask: np.ndarray,
    row: int,
    col: int,
    direction: NeighborDirection,
) -> tuple[int, int] | None:
    """
    Get the neighbour of (row, col) in the given direction.

    Returns None when the neighbour lies outside the grid or outside
    the modelled basin.
    """
    nr, nc = neighbor_cell(
        np.asarray(mask, dtype=np.bool_), row, col, direction.drow, direction.dcol
    )
    if nr < 0:
        return None
    return (int(nr), int(nc))
