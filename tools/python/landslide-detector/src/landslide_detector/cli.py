"""
Landslide Detector — CLI Entry Points
======================================
Installed as the ``landslide-detector`` and ``landslide-confidence``
commands via ``pyproject.toml``.

Usage:
    landslide-detector --pre-ndvi pre.tif --post-ndvi post.tif --post-ndwi ndwi.tif \\
        --slope slope.tif --dem dem.tif --output output/landslides.gpkg --min-area 500

    landslide-confidence -i landslides.gpkg -o scored.gpkg \\
        -s slope.tif -d dem.tif -r rdndvi.tif --extra
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from landslide_detector.config import DetectorConfig
from landslide_detector.pipeline import ConfidenceTool, DetectionInputs, LandslideDetector
from shared.python.exceptions import LandslideDetectorError

_EXISTING_FILE = click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path)
_OUTPUT_FILE = click.Path(file_okay=True, dir_okay=False, path_type=Path)


@click.command(
    name="landslide-detector",
    help="Detect landslides from pre/post-event vegetation indices and write "
         "scored polygons to a GeoPackage.",
)
@click.option("--pre-ndvi", required=True, type=_EXISTING_FILE, help="Pre-event NDVI raster.")
@click.option("--post-ndvi", required=True, type=_EXISTING_FILE, help="Post-event NDVI raster.")
@click.option("--post-ndwi", required=True, type=_EXISTING_FILE, help="Post-event NDWI raster.")
@click.option("--slope", required=True, type=_EXISTING_FILE, help="Slope raster (degrees).")
@click.option("--dem", required=True, type=_EXISTING_FILE, help="Digital elevation model.")
@click.option(
    "--output", "-o", "output_path",
    required=True,
    type=_OUTPUT_FILE,
    help="Output GeoPackage; must not exist yet.",
)
@click.option(
    "--aoi",
    type=_EXISTING_FILE,
    default=None,
    help="Area of interest: 0/1 raster or polygon layer.",
)
@click.option(
    "--artificial",
    type=_EXISTING_FILE,
    default=None,
    help="Artificial surface raster (1 = artificial).",
)
@click.option("--pre-scale", type=float, default=None, help="Pre-event NDVI scale factor.")
@click.option("--post-scale", type=float, default=None, help="Post-event NDVI scale factor.")
@click.option("--ndwi-scale", type=float, default=None, help="NDWI scale factor.")
@click.option("--kernel", "-k", default=3, show_default=True, help="Odd focal window size.")
@click.option(
    "--min-area", "-a",
    default=0.0,
    show_default=True,
    help="Minimum landslide area in CRS units squared; 0 disables sieve cleanup.",
)
@click.option(
    "--rdndvi-threshold",
    default=0.2,
    show_default=True,
    help="RdNDVI value a pixel must exceed to count as vegetation loss.",
)
@click.option("--ndvi-threshold", default=0.3, show_default=True, help="Focal low-NDVI bound.")
@click.option("--coverage", default=0.3, show_default=True, help="Focal coverage threshold.")
@click.option("--extra", is_flag=True, default=False, help="Export extra zonal statistics.")
@click.option(
    "--keep-intermediate",
    is_flag=True,
    default=False,
    help="Also write every intermediate mask as a GeoTIFF next to the output.",
)
@click.option(
    "--on-empty-zone",
    type=click.Choice(["drop", "raise"]),
    default="drop",
    show_default=True,
    help="What to do with polygons that have no valid pixels under a raster.",
)
@click.option("--workers", "-w", default=1, show_default=True, help="Tile worker threads.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def main(
    pre_ndvi: Path,
    post_ndvi: Path,
    post_ndwi: Path,
    slope: Path,
    dem: Path,
    output_path: Path,
    aoi: Path | None,
    artificial: Path | None,
    pre_scale: float | None,
    post_scale: float | None,
    ndwi_scale: float | None,
    kernel: int,
    min_area: float,
    rdndvi_threshold: float,
    ndvi_threshold: float,
    coverage: float,
    extra: bool,
    keep_intermediate: bool,
    on_empty_zone: str,
    workers: int,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into LandslideDetector."""
    try:
        config = DetectorConfig(
            kernel_size=kernel,
            ndvi_threshold=ndvi_threshold,
            coverage_threshold=coverage,
            rdndvi_threshold=rdndvi_threshold,
            min_area=min_area,
            workers=workers,
            extra_fields=extra,
            empty_zone_policy=on_empty_zone,  # type: ignore[arg-type]
        )
        inputs = DetectionInputs(
            pre_ndvi=pre_ndvi,
            post_ndvi=post_ndvi,
            post_ndwi=post_ndwi,
            slope=slope,
            dem=dem,
            aoi=aoi,
            artificial=artificial,
            pre_scale=pre_scale,
            post_scale=post_scale,
            ndwi_scale=ndwi_scale,
        )
        tool = LandslideDetector(
            inputs,
            output_path,
            config,
            keep_intermediate=keep_intermediate,
            verbose=verbose,
        )
        tool.run()
    except LandslideDetectorError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    result = tool.result
    click.echo(f"\nLandslides written to: {output_path}")
    if result is not None:
        click.echo(f"  {result.summary()}")
        for dropped in result.dropped:
            click.echo(f"  dropped {dropped.feature_id!r}: {dropped.reason}")


@click.command(
    name="landslide-confidence",
    help="Compute zonal statistics and confidence values for landslide polygons.",
)
@click.option(
    "--input", "-i", "input_path",
    required=True,
    type=_EXISTING_FILE,
    help="Input landslide polygon layer.",
)
@click.option(
    "--output", "-o", "output_path",
    required=True,
    type=_OUTPUT_FILE,
    help="Output GeoPackage; must not exist yet.",
)
@click.option("--slope", "-s", required=True, type=_EXISTING_FILE, help="Slope raster (degrees).")
@click.option("--dem", "-d", required=True, type=_EXISTING_FILE, help="Digital elevation model.")
@click.option("--rdndvi", "-r", required=True, type=_EXISTING_FILE, help="RdNDVI raster.")
@click.option("--layer", default=None, help="Input layer name; first layer if omitted.")
@click.option("--extra", "-e", is_flag=True, default=False, help="Export extra zonal statistics.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def confidence_main(
    input_path: Path,
    output_path: Path,
    slope: Path,
    dem: Path,
    rdndvi: Path,
    layer: str | None,
    extra: bool,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into ConfidenceTool."""
    try:
        tool = ConfidenceTool(
            input_path,
            output_path,
            slope,
            dem,
            rdndvi,
            DetectorConfig(extra_fields=extra),
            input_layer=layer,
            verbose=verbose,
        )
        tool.run()
    except LandslideDetectorError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    scored = tool.scored
    click.echo(f"\nScored polygons written to: {output_path}")
    click.echo(f"  {0 if scored is None else len(scored)} polygon(s), {len(tool.dropped)} dropped")


if __name__ == "__main__":
    main()
