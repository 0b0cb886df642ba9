"""
Command-line scripts for the topographic index.

This package contains:
- compute_topo_index: Compute ln(a / tan beta) for a DEM and write
  GeoTIFF / ASCII GRID outputs
"""
