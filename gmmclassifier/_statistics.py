"""Per-class sufficient statistics: sample count, mean and covariance."""

# SPDX-License-Identifier: BSD-3-Clause

import warnings
from dataclasses import dataclass

import numpy as np

from .exceptions import (
    DimensionMismatchError,
    InsufficientSamplesError,
    InsufficientSamplesWarning,
)

__all__ = ["ClassStatistics", "check_sample_count", "class_statistics"]


def _merge_second_order_statistics(count_a, mean_a, m2_a, count_b, mean_b, m2_b):
    """Merge sample counts, means and second order moments.

    Parameters
    ----------
    count_a : int
        Number of samples in the first set.

    mean_a : ndarray of shape (n_features,)
        Mean vector of the first set.

    m2_a : ndarray of shape (n_features, n_features)
        Second central moment matrix of the first set.

    count_b : int
        Number of samples in the second set.

    mean_b : ndarray of shape (n_features,)
        Mean vector of the second set.

    m2_b : ndarray of shape (n_features, n_features)
        Second central moment matrix of the second set.

    Returns
    -------
    count : int
        Total number of samples.

    mean : ndarray of shape (n_features,)
        Updated mean vector.

    m2 : ndarray of shape (n_features, n_features)
        Updated second central moment matrix.
    """
    if count_b == 0:
        return count_a, mean_a, m2_a
    if count_a == 0:
        return count_b, mean_b, m2_b

    total = count_a + count_b
    delta = mean_b - mean_a
    mean = mean_a + delta * (count_b / total)
    m2 = m2_a + m2_b + np.outer(delta, delta) * (count_a * count_b / total)
    return total, mean, m2


@dataclass(frozen=True)
class ClassStatistics:
    """Sufficient statistics of the samples of one class.

    Parameters
    ----------
    count : int
        Number of samples, at least 1.

    mean : ndarray of shape (n_features,)
        Arithmetic mean of the samples.

    covariance : ndarray of shape (n_features, n_features)
        Unbiased sample covariance. Zero for a single-sample class.
    """

    count: int
    mean: np.ndarray
    covariance: np.ndarray

    def __post_init__(self):
        mean = np.asarray(self.mean, dtype=np.float64)
        covariance = np.atleast_2d(np.asarray(self.covariance, dtype=np.float64))
        if self.count < 1:
            raise ValueError(f"count must be at least 1; got {self.count}")
        if mean.ndim != 1:
            raise DimensionMismatchError(
                f"mean must be a vector; got an array of shape {mean.shape}"
            )
        if covariance.shape != (mean.shape[0], mean.shape[0]):
            raise DimensionMismatchError(
                f"covariance of shape {covariance.shape} does not match a mean "
                f"of {mean.shape[0]} features"
            )
        object.__setattr__(self, "count", int(self.count))
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "covariance", covariance)

    @classmethod
    def from_samples(cls, X):
        """Compute the statistics of a block of samples.

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            Samples of a single class, ``n_samples >= 1``.

        Returns
        -------
        statistics : ClassStatistics
        """
        X = np.asarray(X, dtype=np.float64)
        n_samples = X.shape[0]
        mean = X.mean(axis=0)
        centered = X - mean
        m2 = centered.T @ centered
        return cls(n_samples, mean, m2 / max(n_samples - 1, 1))

    @property
    def n_features(self):
        return self.mean.shape[0]

    @property
    def scatter(self):
        """Second central moment, ``(count - 1) * covariance``."""
        return self.covariance * (self.count - 1)

    def merge(self, other):
        """Statistics of the union of two disjoint sample sets of a class."""
        if other.n_features != self.n_features:
            raise DimensionMismatchError(
                f"Cannot merge statistics of {other.n_features} features into "
                f"statistics of {self.n_features} features"
            )
        count, mean, m2 = _merge_second_order_statistics(
            self.count, self.mean, self.scatter, other.count, other.mean, other.scatter
        )
        return type(self)(count, mean, m2 / max(count - 1, 1))


def class_statistics(X, y_encoded, class_index):
    """Statistics of the samples of `X` encoded as `class_index`."""
    return ClassStatistics.from_samples(X[y_encoded == class_index])


def check_sample_count(statistics, label, on_insufficient="warn"):
    """Report a class whose covariance is singular by construction.

    A class needs at least ``n_features + 1`` samples for its sample
    covariance to be full rank. Training proceeds in that case since the
    regularization floor makes the covariance positive definite.
    """
    if statistics.count > statistics.n_features:
        return
    msg = (
        f"Class {label} has {statistics.count} sample(s) for "
        f"{statistics.n_features} features; its covariance is rank deficient "
        "and only the regularization parameter `tau` determines its spread "
        "along the missing directions."
    )
    if on_insufficient == "raise":
        raise InsufficientSamplesError(msg)
    warnings.warn(msg, InsufficientSamplesWarning)
