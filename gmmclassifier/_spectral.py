"""Eigen-decomposition and spectral regularization of class covariances."""

# SPDX-License-Identifier: BSD-3-Clause

import warnings
from dataclasses import dataclass

import numpy as np
from scipy import linalg

__all__ = ["SpectralRule", "decompose", "floor_eigenvalues", "regularize"]


def decompose(covariance):
    """Symmetric eigen-decomposition of a covariance matrix.

    Parameters
    ----------
    covariance : ndarray of shape (n_features, n_features)
        Symmetric positive semi-definite matrix.

    Returns
    -------
    eigenvalues : ndarray of shape (n_features,)
        Eigenvalues in ascending order.

    eigenvectors : ndarray of shape (n_features, n_features)
        Orthonormal eigenvectors, one per ROW, so that
        ``covariance = eigenvectors.T @ diag(eigenvalues) @ eigenvectors``.
    """
    covariance = np.asarray(covariance, dtype=np.float64)
    covariance = 0.5 * (covariance + covariance.T)
    evals, evecs = linalg.eigh(covariance)
    return evals, np.ascontiguousarray(evecs.T)


def floor_eigenvalues(eigenvalues, tau):
    """Replace every eigenvalue below `tau` by `tau`.

    With ``tau=0`` a rank deficient spectrum cannot be inverted; such
    eigenvalues are raised to a floor at machine precision relative to the
    largest eigenvalue and a :class:`scipy.linalg.LinAlgWarning` is issued.
    """
    floored = np.maximum(eigenvalues, tau)
    if np.all(floored > 0):
        return floored
    scale = max(float(np.max(np.abs(eigenvalues), initial=0.0)), 1.0)
    eps = np.finfo(np.float64).eps * scale
    warnings.warn(
        "The covariance matrix is not full rank and `tau` is 0; its smallest "
        f"eigenvalues were raised to {eps:.3g}. Increasing the value of "
        "parameter `tau` might help.",
        linalg.LinAlgWarning,
    )
    return np.maximum(floored, eps)


@dataclass(frozen=True)
class SpectralRule:
    """Regularized quadratic decision operator of one class.

    Attributes
    ----------
    eigenvalues : ndarray of shape (n_features,)
        Raw eigenvalues of the class covariance, ascending.

    eigenvectors : ndarray of shape (n_features, n_features)
        Unit eigenvectors stored as rows.

    floored_eigenvalues : ndarray of shape (n_features,)
        ``max(eigenvalues, tau)``.

    whitening : ndarray of shape (n_features, n_features)
        ``diag(floored_eigenvalues) ** -0.5 @ eigenvectors``.

    log_determinant : float
        Log-determinant of the regularized covariance.
    """

    eigenvalues: np.ndarray
    eigenvectors: np.ndarray
    floored_eigenvalues: np.ndarray
    whitening: np.ndarray
    log_determinant: float

    def decision_bias(self, prior):
        return self.log_determinant - 2.0 * np.log(prior)

    def mahalanobis(self, X, mean):
        """Squared regularized Mahalanobis distance of each row of `X`."""
        Xw = (X - mean) @ self.whitening.T
        return np.einsum("ij,ij->i", Xw, Xw)


def regularize(covariance, tau):
    """Build the spectral decision operator of a covariance matrix.

    Parameters
    ----------
    covariance : ndarray of shape (n_features, n_features)
        Raw class covariance.

    tau : float
        Regularization floor applied to the eigenvalues.

    Returns
    -------
    rule : SpectralRule
    """
    eigenvalues, eigenvectors = decompose(covariance)
    floored = floor_eigenvalues(eigenvalues, tau)
    whitening = eigenvectors / np.sqrt(floored)[:, np.newaxis]
    return SpectralRule(
        eigenvalues=eigenvalues,
        eigenvectors=eigenvectors,
        floored_eigenvalues=floored,
        whitening=whitening,
        log_determinant=float(np.sum(np.log(floored))),
    )
