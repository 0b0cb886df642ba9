"""
Raster I/O for the topographic index.

Reads DEMs from ASCII GRID (.asc) or any rasterio-supported format,
writes the index as GeoTIFF, and writes the diagnostic ASCII grid
(logtanbeta.asc) of the mass wasting resolution map.
"""

import logging
from pathlib import Path

import numpy as np

from topoindex.constants import (
    DEFAULT_CRS,
    DEFAULT_NODATA,
    EXPORT_NODATA_VALUE,
    EXPORT_PLACEHOLDER,
)
from topoindex.grid import FineGrid, MapGeometry
from topoindex.topo_index import TopoIndexResult

logger = logging.getLogger(__name__)

EXPORT_FIELDS = ("log_inv_tanbeta", "topo_index", "log_area")

ASCII_HEADER_LINES = 6


def read_raster(filepath: Path) -> tuple[np.ndarray, dict]:
    """
    Read raster file (ASC, VRT, or GeoTIFF) using rasterio.

    Parameters
    ----------
    filepath : Path
        Path to raster file

    Returns
    -------
    tuple
        (data array, metadata dict with ncols, nrows, xllcorner,
        yllcorner, cellsize, nodata_value, crs, transform)

    Raises
    ------
    FileNotFoundError
        If file does not exist
    ValueError
        If the raster cells are not square
    """
    import rasterio

    if not filepath.exists():
        raise FileNotFoundError(f"Raster file not found: {filepath}")

    logger.info(f"Reading raster: {filepath}")

    with rasterio.open(filepath) as src:
        data = src.read(1)
        xres, yres = src.res
        if not np.isclose(xres, yres):
            raise ValueError(
                f"Raster cells must be square, got {xres} x {yres} in {filepath}"
            )
        metadata = {
            "ncols": src.width,
            "nrows": src.height,
            "xllcorner": src.bounds.left,
            "yllcorner": src.bounds.bottom,
            "cellsize": float(xres),
            "nodata_value": src.nodata if src.nodata is not None else DEFAULT_NODATA,
            "crs": str(src.crs) if src.crs else None,
            "transform": src.transform,
        }

    logger.info(f"Read raster: {metadata['nrows']}x{metadata['ncols']} cells")
    logger.info(f"Cell size: {metadata['cellsize']} m")

    return data, metadata


def read_ascii_grid(filepath: Path) -> tuple[np.ndarray, dict]:
    """
    Read ARC/INFO ASCII GRID file.

    Supports both corner (xllcorner/yllcorner) and center (xllcenter/yllcenter)
    coordinate formats. Center coordinates are converted to corner.

    Parameters
    ----------
    filepath : Path
        Path to .asc file

    Returns
    -------
    tuple
        (data array, metadata dict with ncols, nrows, xllcorner,
        yllcorner, cellsize, nodata_value)

    Raises
    ------
    FileNotFoundError
        If file does not exist
    ValueError
        If file format is invalid
    """
    if not filepath.exists():
        raise FileNotFoundError(f"DEM file not found: {filepath}")

    metadata = {}
    with open(filepath) as f:
        for _i in range(ASCII_HEADER_LINES):
            parts = f.readline().split()
            if len(parts) < 2:
                continue
            key = parts[0].lower()
            if key in ("ncols", "nrows"):
                metadata[key] = int(parts[1])
            elif key in (
                "xllcorner",
                "yllcorner",
                "xllcenter",
                "yllcenter",
                "cellsize",
                "nodata_value",
            ):
                metadata[key] = float(parts[1])

    half_cell = metadata.get("cellsize", 0) / 2
    if "xllcenter" in metadata and "xllcorner" not in metadata:
        metadata["xllcorner"] = metadata.pop("xllcenter") - half_cell
    if "yllcenter" in metadata and "yllcorner" not in metadata:
        metadata["yllcorner"] = metadata.pop("yllcenter") - half_cell

    for key in ("ncols", "nrows", "xllcorner", "yllcorner", "cellsize"):
        if key not in metadata:
            raise ValueError(f"Missing required header field: {key}")
    metadata.setdefault("nodata_value", DEFAULT_NODATA)

    data = np.loadtxt(filepath, skiprows=ASCII_HEADER_LINES, ndmin=2)
    if data.shape != (metadata["nrows"], metadata["ncols"]):
        raise ValueError(
            f"Data shape {data.shape} doesn't match header "
            f"({metadata['nrows']}, {metadata['ncols']})"
        )

    logger.info(f"Read DEM: {metadata['nrows']}x{metadata['ncols']} cells")
    logger.info(f"Cell size: {metadata['cellsize']} m")

    return data, metadata


def read_dem(filepath: Path) -> tuple[np.ndarray, dict]:
    """Read a DEM, using the ASCII parser for .asc and rasterio otherwise."""
    if filepath.suffix.lower() == ".asc":
        return read_ascii_grid(filepath)
    return read_raster(filepath)


def grid_from_raster(
    data: np.ndarray,
    metadata: dict,
) -> tuple[MapGeometry, FineGrid]:
    """
    Build fine-grid geometry and cell records from a DEM raster.

    Cells holding the nodata value (or a non-finite value) lie outside
    the basin.
    """
    dem = np.asarray(data, dtype=np.float64)
    mask = np.isfinite(dem) & (dem != metadata["nodata_value"])
    geometry = MapGeometry.from_metadata(metadata)
    grid = FineGrid(mask=mask, dem=np.where(mask, dem, 0.0))

    logger.info(f"Basin cells: {grid.n_valid:,} of {dem.size:,}")
    return geometry, grid


def save_raster_geotiff(
    data: np.ndarray,
    metadata: dict,
    output_path: Path,
    nodata: float = DEFAULT_NODATA,
    dtype: str = "float32",
    crs: str | None = None,
) -> None:
    """
    Save numpy array as a single-band GeoTIFF.

    Uses the original transform from the input raster if available to
    ensure alignment with the source DEM. NaN cells are written as nodata.

    Parameters
    ----------
    data : np.ndarray
        Raster data array
    metadata : dict
        Grid metadata with transform (preferred) or xllcorner, yllcorner, cellsize
    output_path : Path
        Output GeoTIFF path
    nodata : float
        NoData value
    dtype : str
        Output data type ('float32', 'float64')
    crs : str, optional
        Output CRS; defaults to the input CRS, then to EPSG:2180
    """
    import rasterio
    from rasterio.transform import from_bounds

    nrows, ncols = data.shape

    transform = metadata.get("transform")
    if transform is None:
        cellsize = metadata["cellsize"]
        xll = metadata["xllcorner"]
        yll = metadata["yllcorner"]
        transform = from_bounds(
            xll, yll, xll + ncols * cellsize, yll + nrows * cellsize, ncols, nrows
        )

    if crs is None:
        crs = metadata.get("crs") or DEFAULT_CRS

    dtype_map = {
        "float32": (np.float32, rasterio.float32),
        "float64": (np.float64, rasterio.float64),
    }
    np_dtype, rio_dtype = dtype_map.get(dtype, (np.float32, rasterio.float32))

    out_data = np.where(np.isnan(data), nodata, data).astype(np_dtype)

    with rasterio.open(
        output_path,
        "w",
        driver="GTiff",
        height=nrows,
        width=ncols,
        count=1,
        dtype=rio_dtype,
        crs=crs,
        transform=transform,
        nodata=nodata,
        compress="lzw",
    ) as dst:
        dst.write(out_data, 1)

    logger.info(f"Saved: {output_path} ({output_path.stat().st_size / 1024:.1f} KB)")


def _export_values(
    field: str, grid: FineGrid, result: TopoIndexResult
) -> np.ndarray:
    if field == "topo_index":
        return grid.topo_index
    if field == "log_inv_tanbeta":
        if result.tanbeta is None:
            raise ValueError("log_inv_tanbeta export needs keep_scratch=True")
        with np.errstate(divide="ignore"):
            return np.log(1.0 / result.tanbeta)
    if field == "log_area":
        if result.area is None:
            raise ValueError("log_area export needs keep_scratch=True")
        with np.errstate(divide="ignore"):
            return np.log(result.area)
    raise ValueError(f"Unknown export field: {field} (expected one of {EXPORT_FIELDS})")


def write_topo_index_ascii(
    output_path: Path,
    geometry: MapGeometry,
    grid: FineGrid,
    result: TopoIndexResult,
    field: str = "log_inv_tanbeta",
    append: bool = False,
) -> None:
    """
    Write a diagnostic ASCII GRID of the mass wasting resolution map.

    Cells outside the basin are written as "0." (NODATA_value 0).

    Parameters
    ----------
    output_path : Path
        Output .asc path
    geometry : MapGeometry
        Fine-grid geometry; yllcorner is taken from the coarse grid
    grid : FineGrid
        Basin mask and computed topographic index
    result : TopoIndexResult
        Result of calc_topo_index (with keep_scratch=True for
        log_inv_tanbeta and log_area)
    field : str
        log_inv_tanbeta (ln(1/tanbeta)), topo_index or log_area
    append : bool
        Append to an existing file instead of overwriting it

    Raises
    ------
    ValueError
        If the field is unknown or needs scratch grids the result lacks
    """
    values = _export_values(field, grid, result)

    with open(output_path, "a" if append else "w") as fo:
        fo.write(f"ncols {geometry.ncols:11d}\n")
        fo.write(f"nrows {geometry.nrows:11d}\n")
        fo.write(f"xllcorner {geometry.xorig:.1f}\n")
        fo.write(f"yllcorner {geometry.yllcorner:.1f}\n")
        fo.write(f"cellsize {geometry.cellsize:.0f}\n")
        fo.write(f"NODATA_value {EXPORT_NODATA_VALUE:d}\n")

        for row in range(geometry.nrows):
            line = "".join(
                f"{values[row, col]:2.3f} " if grid.mask[row, col]
                else EXPORT_PLACEHOLDER
                for col in range(geometry.ncols)
            )
            fo.write(line + "\n")

    logger.info(f"Saved {field} ASCII grid: {output_path}")
