"""
Script to compute the topographic index of a DEM.

Reads an ASCII GRID DEM file (or any raster readable by rasterio), sorts
the basin cells by descending elevation, computes the multiple-flow-
direction topographic index ln(a / tan beta), and writes the result.

Cells holding the DEM nodata value lie outside the basin.

Usage
-----
    python -m scripts.compute_topo_index --help
    python -m scripts.compute_topo_index --input ../data/dem/basin.asc

Examples
--------
    # Compute and save the index as GeoTIFF
    python -m scripts.compute_topo_index \\
        --input ../data/dem/basin.asc \\
        --output ../data/dem/basin_topo_index.tif

    # Also write the ln(1/tanbeta) diagnostic grid
    python -m scripts.compute_topo_index \\
        --input ../data/dem/basin.asc \\
        --export-asc logtanbeta.asc

    # DEM with 0.1 m vertical resolution
    python -m scripts.compute_topo_index \\
        --input ../data/dem/basin.tif \\
        --vertical-resolution 0.1
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from topoindex.config import get_settings
from topoindex.errors import TopoIndexError
from topoindex.grid import build_visitation_order
from topoindex.raster_io import (
    EXPORT_FIELDS,
    grid_from_raster,
    read_dem,
    save_raster_geotiff,
    write_topo_index_ascii,
)
from topoindex.topo_index import calc_topo_index

logger = logging.getLogger(__name__)


def compute_topo_index(
    input_path: Path,
    output_path: Path | None = None,
    export_path: Path | None = None,
    export_field: str | None = None,
    vertical_resolution: float | None = None,
    validate_order: bool | None = None,
) -> dict:
    """
    Compute the topographic index of a DEM file.

    Parameters
    ----------
    input_path : Path
        Path to input raster file (.asc, .vrt, or .tif)
    output_path : Path, optional
        GeoTIFF path for the topographic index
    export_path : Path, optional
        Path of the diagnostic ASCII grid; defaults to the configured
        export path when export is enabled in settings
    export_field : str, optional
        Field written to the diagnostic grid
    vertical_resolution : float, optional
        Vertical resolution of the DEM [m]
    validate_order : bool, optional
        Check the visitation order before routing

    Returns
    -------
    dict
        Processing statistics: ncols, nrows, cellsize, total_cells,
        valid_cells, flat_cells, ti_min, ti_max, ti_mean
    """
    settings = get_settings()
    stats = {}

    if export_path is None and settings.export_enabled:
        export_path = Path(settings.export_path)
    if export_field is None:
        export_field = settings.export_field
    if export_path is not None and export_field not in EXPORT_FIELDS:
        raise ValueError(
            f"Unknown export field: {export_field} (expected one of {EXPORT_FIELDS})"
        )

    # 1. Read DEM
    dem, metadata = read_dem(input_path)
    geometry, grid = grid_from_raster(dem, metadata)

    stats["ncols"] = geometry.ncols
    stats["nrows"] = geometry.nrows
    stats["cellsize"] = geometry.cellsize
    stats["total_cells"] = geometry.nrows * geometry.ncols
    stats["valid_cells"] = grid.n_valid

    # 2. Visitation order
    order = build_visitation_order(grid.dem, grid.mask)

    # 3. Topographic index
    result = calc_topo_index(
        geometry,
        grid,
        order,
        vertical_resolution=vertical_resolution,
        validate_order=validate_order,
        keep_scratch=export_path is not None,
        settings=settings,
    )
    stats["flat_cells"] = result.n_flat

    valid = grid.topo_index[grid.mask]
    if len(valid) > 0:
        stats["ti_min"] = float(valid.min())
        stats["ti_max"] = float(valid.max())
        stats["ti_mean"] = float(valid.mean())

    # 4. Outputs
    if output_path is not None:
        save_raster_geotiff(
            grid.topo_index,
            metadata,
            output_path,
            dtype="float32",
            crs=metadata.get("crs") or settings.output_crs,
        )
    if export_path is not None:
        write_topo_index_ascii(export_path, geometry, grid, result, field=export_field)

    return stats


def main(argv: list[str] | None = None):
    """Main entry point for topographic index script."""
    parser = argparse.ArgumentParser(
        description="Compute the MFD topographic index ln(a / tan beta) of a DEM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--input",
        "-i",
        type=str,
        required=True,
        help="Path to input DEM (.asc, .vrt, .tif)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Output GeoTIFF for the topographic index",
    )
    parser.add_argument(
        "--export-asc",
        type=str,
        default=None,
        help="Write the diagnostic ASCII grid to this path",
    )
    parser.add_argument(
        "--export-field",
        choices=EXPORT_FIELDS,
        default=None,
        help="Field of the diagnostic ASCII grid (default: log_inv_tanbeta)",
    )
    parser.add_argument(
        "--vertical-resolution",
        type=float,
        default=None,
        help="Vertical resolution of the DEM in meters (default: 1.0)",
    )
    parser.add_argument(
        "--no-validate-order",
        action="store_true",
        help="Skip the visitation order check",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else None
    export_path = Path(args.export_asc) if args.export_asc else None

    logger.info("=" * 60)
    logger.info("Topographic Index Script")
    logger.info("=" * 60)
    logger.info(f"Input: {input_path}")
    if output_path:
        logger.info(f"Output: {output_path}")
    if export_path:
        logger.info(f"Diagnostic grid: {export_path}")
    logger.info("=" * 60)

    start_time = time.time()

    try:
        stats = compute_topo_index(
            input_path,
            output_path=output_path,
            export_path=export_path,
            export_field=args.export_field,
            vertical_resolution=args.vertical_resolution,
            validate_order=False if args.no_validate_order else None,
        )
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except TopoIndexError as e:
        logger.error(f"Topographic index failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Processing failed: {e}")
        raise

    elapsed = time.time() - start_time

    logger.info("=" * 60)
    logger.info("Processing complete!")
    logger.info(f"  Grid size: {stats['ncols']} x {stats['nrows']}")
    logger.info(f"  Cell size: {stats['cellsize']} m")
    logger.info(f"  Total cells: {stats['total_cells']:,}")
    logger.info(f"  Valid cells: {stats['valid_cells']:,}")
    logger.info(f"  Flat cells: {stats['flat_cells']:,}")
    if "ti_mean" in stats:
        logger.info(
            f"  Topographic index: {stats['ti_min']:.2f} - {stats['ti_max']:.2f} "
            f"(mean {stats['ti_mean']:.2f})"
        )
    logger.info(f"  Time elapsed: {elapsed:.1f}s")
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
