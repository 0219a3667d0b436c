"""
Landslide Detector — Detection Pipeline
========================================
Runs the change-detection stages in order and scores the result.

Stages::

    pre/post NDVI ──► RdNDVI ──► change mask ──► slope mask ─┐
    inputs ──► validity ∧ AOI (extent)                      ├─► detection
    post NDWI ──► water mask                                │
    artificial surfaces ──► buffered exclusion (optional) ──┘
    pre NDVI ──► focal low-vegetation mask ─┐
    detection ──────────────────────────────┴─► cleanup ──► polygons ──► confidence

Every stage returns a new named grid kept on :class:`DetectionResult`;
nothing is overwritten between stages.

Classes:
    DetectionInputs     Paths to the input rasters (and optional AOI).
    DetectionResult     All intermediate grids, polygons and drop reports.
    LandslideDetector   File-driven detection tool (inherits GeoTool).
    ConfidenceTool      File-driven scoring of an existing polygon layer.

Functions:
    detect              In-memory pipeline on aligned grids.

Usage::

    from pathlib import Path
    from landslide_detector.pipeline import DetectionInputs, LandslideDetector

    tool = LandslideDetector(
        DetectionInputs(
            pre_ndvi=Path("PreEvent_NDVI.tif"),
            post_ndvi=Path("PostEvent_NDVI.tif"),
            post_ndwi=Path("PostEvent_NDWI.tif"),
            slope=Path("slope.tif"),
            dem=Path("dem.tif"),
        ),
        output_path=Path("output/landslides.gpkg"),
    )
    tool.run()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import geopandas as gpd

from landslide_detector.change_index import compute_rdndvi_index, encode_rdndvi
from landslide_detector.cleanup import CleanupPolicy
from landslide_detector.confidence import ConfidenceScorer, DroppedPolygon
from landslide_detector.config import DetectorConfig
from landslide_detector.focal import focal_mask
from landslide_detector.grid import RasterGrid, assert_aligned
from landslide_detector.io import (
    RASTER_EXTENSIONS,
    VECTOR_EXTENSIONS,
    list_layers,
    rasterize_aoi,
    read_header,
    read_polygons,
    read_raster,
    write_polygons,
    write_raster,
)
from landslide_detector.masks import (
    and_combine,
    apply_extent,
    artificial_mask,
    is_set,
    slope_mask,
    threshold_mask,
    validity_mask,
    water_mask,
)
from landslide_detector.vectorize import DEFAULT_LAYER, polygonize
from shared.python.base_tool import GeoTool
from shared.python.validators import Validators

logger = logging.getLogger("landslide_detector.pipeline")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class DetectionInputs:
    """Input files of one detection run.

    All rasters must already share extent, pixel size and CRS.

    Attributes:
        pre_ndvi: Pre-event NDVI raster.
        post_ndvi: Post-event NDVI raster.
        post_ndwi: Post-event NDWI raster.
        slope: Slope raster in degrees.
        dem: Digital elevation model.
        aoi: Optional area of interest, either a 0/1 raster or a polygon
            layer.
        artificial: Optional artificial surface raster (1 = artificial).
        pre_scale: Scale of the pre-event NDVI; stored scale if ``None``.
        post_scale: Scale of the post-event NDVI; stored scale if ``None``.
        ndwi_scale: Scale of the NDWI raster; stored scale if ``None``.
    """

    pre_ndvi: Path
    post_ndvi: Path
    post_ndwi: Path
    slope: Path
    dem: Path
    aoi: Path | None = None
    artificial: Path | None = None
    pre_scale: float | None = None
    post_scale: float | None = None
    ndwi_scale: float | None = None

    def rasters(self) -> dict[str, Path]:
        """Named raster inputs that take part in pixel-wise algebra."""
        named = {
            "pre_ndvi": self.pre_ndvi,
            "post_ndvi": self.post_ndvi,
            "post_ndwi": self.post_ndwi,
            "slope": self.slope,
            "dem": self.dem,
        }
        if self.artificial is not None:
            named["artificial"] = self.artificial
        if self.aoi is not None and Path(self.aoi).suffix.lower() in RASTER_EXTENSIONS:
            named["aoi"] = self.aoi
        return {k: Path(v) for k, v in named.items()}


@dataclass
class DetectionResult:
    """Every intermediate of one detection run.

    Attributes:
        rdndvi: Encoded RdNDVI change raster.
        index: Unrounded RdNDVI index the change mask and scores read.
        extent: Processing extent (input validity ∧ AOI).
        water: Water exclusion mask.
        artificial: Artificial surface exclusion mask, ``None`` if skipped.
        change: RdNDVI-above-threshold mask.
        slope: Slope ∧ change mask.
        detection: Raw detection mask before cleanup.
        focal: Low-vegetation context mask.
        final: Final landslide mask.
        polygons: Scored landslide polygons.
        dropped: Polygons excluded from scoring, with reasons.
        cleanup: Cleanup variant that produced :attr:`final`.
    """

    rdndvi: RasterGrid
    index: RasterGrid
    extent: RasterGrid
    water: RasterGrid
    artificial: RasterGrid | None
    change: RasterGrid
    slope: RasterGrid
    detection: RasterGrid
    focal: RasterGrid
    final: RasterGrid
    polygons: gpd.GeoDataFrame
    dropped: list[DroppedPolygon] = field(default_factory=list)
    cleanup: CleanupPolicy | None = None

    def masks(self) -> dict[str, RasterGrid]:
        """Named intermediate grids, in stage order."""
        layers = {
            "rdndvi": self.rdndvi,
            "extent": self.extent,
            "water_mask": self.water,
            "artificial_mask": self.artificial,
            "change_mask": self.change,
            "slope_mask": self.slope,
            "detection_mask": self.detection,
            "focal_mask": self.focal,
            "landslide_mask": self.final,
        }
        return {k: v for k, v in layers.items() if v is not None}

    def summary(self) -> str:
        return (
            f"{int(is_set(self.detection).sum()):,} detected pixel(s), "
            f"{int(is_set(self.final).sum()):,} after cleanup, "
            f"{len(self.polygons):,} polygon(s) scored, "
            f"{len(self.dropped):,} dropped"
        )


# ---------------------------------------------------------------------------
# In-memory pipeline
# ---------------------------------------------------------------------------


def detect(
    pre_ndvi: RasterGrid,
    post_ndvi: RasterGrid,
    post_ndwi: RasterGrid,
    slope: RasterGrid,
    dem: RasterGrid,
    config: DetectorConfig | None = None,
    *,
    aoi: RasterGrid | None = None,
    artificial: RasterGrid | None = None,
) -> DetectionResult:
    """Detect and score landslides on aligned in-memory grids.

    Args:
        pre_ndvi: Pre-event NDVI.
        post_ndvi: Post-event NDVI.
        post_ndwi: Post-event NDWI.
        slope: Slope in degrees.
        dem: Elevation.
        config: Parameters; defaults to :class:`DetectorConfig`.
        aoi: Optional 0/1 area-of-interest mask.
        artificial: Optional artificial surface raster (1 = artificial).

    Raises:
        GridAlignmentError: If the grids do not share one geometry.
        ZonalStatisticsError: Under the ``"raise"`` empty-zone policy.
    """
    config = config or DetectorConfig()
    grids = [pre_ndvi, post_ndvi, post_ndwi, slope, dem]
    grids += [g for g in (aoi, artificial) if g is not None]
    assert_aligned(*grids)

    policy = config.cleanup_policy(pre_ndvi.pixel_area)
    logger.info("Cleanup policy: %s", policy)

    index = compute_rdndvi_index(
        pre_ndvi, post_ndvi, block_size=config.block_size, workers=config.workers
    )
    rdndvi = encode_rdndvi(index)

    extent = validity_mask(pre_ndvi, post_ndvi, post_ndwi, name="extent")
    if aoi is not None:
        extent = and_combine(extent, aoi, name="extent")

    water = water_mask(post_ndwi, config.water_threshold)
    exclusions = [water]
    artificial_excl = None
    if artificial is not None:
        artificial_excl = artificial_mask(artificial, config.artificial_buffer_factor)
        if artificial_excl is not None:
            exclusions.append(artificial_excl)

    # Thresholds and zonal means read the unrounded index, in formula units.
    change = threshold_mask(
        index, config.rdndvi_threshold, name="change_mask", use_scale=False
    )
    steep = slope_mask(slope, change, config.slope_threshold)

    detection = and_combine(steep, extent, *exclusions, name="detection_mask")
    detection = apply_extent(detection, extent)
    logger.info("Detection mask: %d pixel(s).", int(is_set(detection).sum()))

    focal = focal_mask(
        pre_ndvi,
        ndvi_threshold=config.ndvi_threshold,
        coverage_threshold=config.coverage_threshold,
        kernel_size=config.kernel_size,
    )
    final = policy.apply(detection, focal)

    polygons = polygonize(final)
    scorer = ConfidenceScorer(
        slope,
        dem,
        index,
        weights=config.weights,
        extra_fields=config.extra_fields,
        empty_zone_policy=config.empty_zone_policy,
    )
    table = scorer.collect(polygons)
    scored = scorer.score(table)

    return DetectionResult(
        rdndvi=rdndvi,
        index=index,
        extent=extent,
        water=water,
        artificial=artificial_excl,
        change=change,
        slope=steep,
        detection=detection,
        focal=focal,
        final=final,
        polygons=scored,
        dropped=table.dropped,
        cleanup=policy,
    )


# ---------------------------------------------------------------------------
# File-driven tool
# ---------------------------------------------------------------------------


class LandslideDetector(GeoTool):
    """Detect landslides from input rasters and write scored polygons.

    Inherits the Template Method pipeline from :class:`~shared.python.GeoTool`.

    Args:
        inputs: A :class:`DetectionInputs` instance.
        output_path: Destination GeoPackage (must not exist yet).
        config: A :class:`DetectorConfig`; defaults apply when ``None``.
        layer_name: Name of the output polygon layer.
        keep_intermediate: Also write every intermediate grid as a GeoTIFF
            next to the output, named ``<output stem>_<layer>.tif``.
        verbose: Enable DEBUG-level logging.
    """

    def __init__(
        self,
        inputs: DetectionInputs,
        output_path: Path,
        config: DetectorConfig | None = None,
        *,
        layer_name: str = DEFAULT_LAYER,
        keep_intermediate: bool = False,
        verbose: bool = False,
    ) -> None:
        super().__init__(Path(inputs.post_ndvi), Path(output_path), verbose=verbose)
        self.inputs = inputs
        self.config = config or DetectorConfig()
        self.layer_name = layer_name
        self.keep_intermediate = keep_intermediate
        self._result: DetectionResult | None = None

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Check files, output location and grid alignment without reading pixels.

        Raises:
            InputValidationError: If an input file is missing or has an
                unsupported extension.
            OutputWriteError: If the output exists or cannot be created.
            GridAlignmentError: If the input rasters are not aligned.
        """
        rasters = self.inputs.rasters()
        for path in rasters.values():
            Validators.assert_file_exists(path)
            Validators.assert_supported_extension(path, RASTER_EXTENSIONS)
        if self.inputs.aoi is not None:
            Validators.assert_file_exists(Path(self.inputs.aoi))
            Validators.assert_supported_extension(
                Path(self.inputs.aoi), RASTER_EXTENSIONS + VECTOR_EXTENSIONS
            )

        Validators.assert_supported_extension(self.output_path, [".gpkg"])
        Validators.assert_output_absent(self.output_path)
        Validators.assert_output_dir_writable(self.output_path)

        assert_aligned(*(read_header(path, name=name) for name, path in rasters.items()))
        logger.debug("Inputs validated: %d aligned raster(s).", len(rasters))

    def process(self) -> None:
        """Read the rasters, run :func:`detect`, and write the outputs."""
        inputs = self.inputs
        pre = read_raster(inputs.pre_ndvi, scale=inputs.pre_scale, name="pre_ndvi")
        post = read_raster(inputs.post_ndvi, scale=inputs.post_scale, name="post_ndvi")
        ndwi = read_raster(inputs.post_ndwi, scale=inputs.ndwi_scale, name="post_ndwi")
        slope = read_raster(inputs.slope, name="slope")
        dem = read_raster(inputs.dem, name="dem")
        artificial = (
            read_raster(inputs.artificial, name="artificial")
            if inputs.artificial is not None
            else None
        )
        aoi = self._load_aoi(pre)

        result = detect(pre, post, ndwi, slope, dem, self.config, aoi=aoi, artificial=artificial)
        self._result = result

        write_polygons(result.polygons, self.output_path, self.layer_name)
        if self.keep_intermediate:
            self._write_intermediate(result)
        logger.info("Summary: %s", result.summary())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _load_aoi(self, reference: RasterGrid) -> RasterGrid | None:
        path = self.inputs.aoi
        if path is None:
            return None
        path = Path(path)
        if path.suffix.lower() in RASTER_EXTENSIONS:
            return read_raster(path, name="aoi")
        return rasterize_aoi(read_polygons(path), reference)

    def _write_intermediate(self, result: DetectionResult) -> None:
        stem = self.output_path.with_suffix("")
        for name, grid in result.masks().items():
            write_raster(grid, Path(f"{stem}_{name}.tif"))

    @property
    def result(self) -> DetectionResult | None:
        """The :class:`DetectionResult` of the last run, or ``None``."""
        return self._result


class ConfidenceTool(GeoTool):
    """Score an existing polygon layer against slope, DEM and RdNDVI rasters.

    Args:
        polygons_path: Input polygon layer (GeoPackage, GeoJSON, ...).
        output_path: Destination GeoPackage (must not exist yet).
        slope: Slope raster in degrees.
        dem: Elevation raster.
        rdndvi: RdNDVI raster as written by :class:`LandslideDetector`.
        config: Supplies the weights, extra-field and empty-zone settings.
        input_layer: Layer to read from *polygons_path*; first layer if ``None``.
        layer_name: Name of the output polygon layer; defaults to the name
            of the layer that was read.
        verbose: Enable DEBUG-level logging.
    """

    def __init__(
        self,
        polygons_path: Path,
        output_path: Path,
        slope: Path,
        dem: Path,
        rdndvi: Path,
        config: DetectorConfig | None = None,
        *,
        input_layer: str | None = None,
        layer_name: str | None = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(Path(polygons_path), Path(output_path), verbose=verbose)
        self.rasters = {"slope": Path(slope), "dem": Path(dem), "rdndvi": Path(rdndvi)}
        self.config = config or DetectorConfig()
        self.input_layer = input_layer
        self.layer_name = layer_name
        self.scored: gpd.GeoDataFrame | None = None
        self.dropped: list[DroppedPolygon] = []

    def validate_inputs(self) -> None:
        Validators.assert_file_exists(self.input_path)
        Validators.assert_supported_extension(self.input_path, VECTOR_EXTENSIONS)
        for path in self.rasters.values():
            Validators.assert_file_exists(path)
            Validators.assert_supported_extension(path, RASTER_EXTENSIONS)
        Validators.assert_supported_extension(self.output_path, [".gpkg"])
        Validators.assert_output_absent(self.output_path)
        Validators.assert_output_dir_writable(self.output_path)
        assert_aligned(*(read_header(path, name=name) for name, path in self.rasters.items()))

    def process(self) -> None:
        grids = {name: read_raster(path, name=name) for name, path in self.rasters.items()}
        polygons = read_polygons(self.input_path, layer=self.input_layer)
        scorer = ConfidenceScorer(
            grids["slope"],
            grids["dem"],
            grids["rdndvi"],
            weights=self.config.weights,
            extra_fields=self.config.extra_fields,
            empty_zone_policy=self.config.empty_zone_policy,
        )
        table = scorer.collect(polygons)
        self.scored = scorer.score(table)
        self.dropped = table.dropped
        if self.layer_name is None:
            self.layer_name = self.input_layer or list_layers(self.input_path)[0]
        write_polygons(self.scored, self.output_path, self.layer_name)
