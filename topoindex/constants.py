"""
Project-wide constants.

Centralizes the numeric constants of the multiple-flow-direction
topographic index (Wolock & McCabe 1995 contour weighting).
"""

# Neighbourhood
N_DIRECTIONS = 8

# Fraction of the cell perimeter attributed to a flow direction.
# A diagonal and an orthogonal weight sum to 1.0.
DIAGONAL_CONTOUR_WEIGHT = 0.4
ORTHOGONAL_CONTOUR_WEIGHT = 0.6

# Vertical resolution of the DEM [m], used by the flat-area fallback
DEFAULT_VERTICAL_RESOLUTION = 1.0

# Diagnostic ASCII export
EXPORT_NODATA_VALUE = 0
EXPORT_PLACEHOLDER = "0. "
DEFAULT_EXPORT_PATH = "logtanbeta.asc"

# Raster defaults
DEFAULT_NODATA = -9999.0
DEFAULT_CRS = "EPSG:2180"
