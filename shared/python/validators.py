"""
Landslide Detector — Shared Input Validators
=============================================
Static precondition checks run before any raster is processed.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans, which
keeps ``validate_inputs`` implementations short::

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_file_exists(self.input_path)
            Validators.assert_supported_extension(self.input_path, [".tif"])
            Validators.assert_odd_kernel(self.kernel_size)
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from shared.python.exceptions import (
    BandIndexError,
    ConfigurationError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks.

    All methods are ``@staticmethod``; this class is never instantiated.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Raises:
            InputValidationError: If *path* does not exist or is a
                directory rather than a file.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_path: Path) -> None:
        """Create the parent directory of *output_path* if it is missing.

        Raises:
            OutputWriteError: If the parent directory cannot be created.
        """
        parent = Path(output_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_path), str(exc)) from exc

    @staticmethod
    def assert_output_absent(output_path: Path) -> None:
        """Refuse to overwrite an existing output file.

        Raises:
            OutputWriteError: If *output_path* already exists.
        """
        if Path(output_path).exists():
            raise OutputWriteError(str(output_path), "output file already exists")

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Allowed extensions, each starting with a dot
                        (e.g. ``[".tif", ".tiff"]``).

        Raises:
            InputValidationError: If the file extension is not in
                *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # Raster checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_band_index_valid(band_index: int, total_bands: int) -> None:
        """Assert that *band_index* is within the valid range for a raster.

        Raises:
            BandIndexError: If *band_index* is less than 1 or exceeds
                *total_bands*.
        """
        if band_index < 1 or band_index > total_bands:
            raise BandIndexError(band_index, total_bands)

    # ------------------------------------------------------------------
    # Parameter checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_odd_kernel(kernel_size: int, parameter: str = "kernel_size") -> None:
        """Assert that a moving-window size is a positive odd integer.

        Raises:
            ConfigurationError: If *kernel_size* is even, not an integer,
                or smaller than 1.

        Example::

            Validators.assert_odd_kernel(3)     # ok
            Validators.assert_odd_kernel(4)     # ConfigurationError
        """
        if isinstance(kernel_size, bool) or not isinstance(kernel_size, int):
            raise ConfigurationError(parameter, kernel_size, "must be an integer")
        if kernel_size < 1 or kernel_size % 2 == 0:
            raise ConfigurationError(parameter, kernel_size, "kernel value must be odd")

    @staticmethod
    def assert_in_range(
        value: float,
        parameter: str,
        low: float | None = None,
        high: float | None = None,
        *,
        low_inclusive: bool = True,
    ) -> None:
        """Assert that a numeric parameter lies within ``[low, high]``.

        Either bound may be ``None`` to leave that side open.  Set
        *low_inclusive* to ``False`` for an open lower bound.

        Raises:
            ConfigurationError: If *value* falls outside the range.
        """
        if value != value:
            raise ConfigurationError(parameter, value, "must be a number")
        if low is not None:
            below = value < low if low_inclusive else value <= low
            if below:
                op = ">=" if low_inclusive else ">"
                raise ConfigurationError(parameter, value, f"must be {op} {low}")
        if high is not None and value > high:
            raise ConfigurationError(parameter, value, f"must be <= {high}")
