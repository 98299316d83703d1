"""Exceptions raised by the fusion and calibration core."""

from __future__ import annotations

from typing import Optional


class MedAuthError(Exception):
    """Base class for all medauth errors."""


class SourceUnavailable(MedAuthError):
    """A score source failed, timed out or is disabled.

    Never escapes the pipeline: the method is treated as absent and
    normalised to the neutral prior.
    """

    def __init__(self, method: str, message: str, original_error: Optional[BaseException] = None):
        self.method = method
        self.original_error = original_error
        super().__init__(f"{method} unavailable: {message}")


class InvalidCalibrationInput(MedAuthError):
    """The labelled dataset handed to the calibrator is malformed."""

    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        where = f" (sample {index})" if index is not None else ""
        super().__init__(f"Invalid calibration input{where}: {message}")


class NoViableCalibration(MedAuthError):
    """Grid search found no weight combination it could evaluate."""


class ConfigurationError(MedAuthError):
    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Configuration error for '{key}': {message}")
