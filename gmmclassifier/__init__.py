"""Class-conditional Gaussian classification with spectral regularization."""

# SPDX-License-Identifier: BSD-3-Clause

from ._model import GaussianModel
from ._persistence import can_read_file, can_write_file, load_model, save_model
from ._spectral import SpectralRule, decompose, floor_eigenvalues, regularize
from ._statistics import ClassStatistics
from .gmm import GMMClassifier

__version__ = "0.1.0"

__all__ = [
    "ClassStatistics",
    "GMMClassifier",
    "GaussianModel",
    "SpectralRule",
    "can_read_file",
    "can_write_file",
    "decompose",
    "floor_eigenvalues",
    "load_model",
    "regularize",
    "save_model",
]
