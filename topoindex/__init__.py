"""
Topographic index (ln(a / tan beta)) for soil moisture redistribution.
"""

from topoindex.errors import (
    InvalidOrderingError,
    ResourceExhaustionError,
    TopoIndexError,
    UnsupportedConfigurationError,
)
from topoindex.grid import (
    FineGrid,
    MapGeometry,
    build_visitation_order,
    validate_visitation_order,
)
from topoindex.topo_index import TopoIndexResult, calc_topo_index

__all__ = [
    "FineGrid",
    "InvalidOrderingError",
    "MapGeometry",
    "ResourceExhaustionError",
    "TopoIndexError",
    "TopoIndexResult",
    "UnsupportedConfigurationError",
    "build_visitation_order",
    "calc_topo_index",
    "validate_visitation_order",
]
