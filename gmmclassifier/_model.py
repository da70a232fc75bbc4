"""In-memory store of a trained class-conditional Gaussian model."""

# SPDX-License-Identifier: BSD-3-Clause

import logging

import numpy as np
from sklearn.utils.parallel import Parallel, delayed

from ._spectral import regularize
from .exceptions import DimensionMismatchError, EmptyDatasetError, ModelNotTrainedError

__all__ = ["GaussianModel"]

logger = logging.getLogger(__name__)


class GaussianModel:
    """Per-class Gaussian statistics together with their decision rules.

    Classes are appended with :meth:`add_class`; :meth:`finalize` then
    computes the priors and the regularized decision operator of every
    class. The model can only score samples once finalized, and any
    append invalidates the decision operators until the next
    :meth:`finalize`.

    Parameters
    ----------
    tau : float
        Regularization floor applied to the eigenvalues of every class
        covariance.
    """

    def __init__(self, tau):
        self.tau = float(tau)
        self._labels = []
        self._index = {}
        self._statistics = []
        self._reset_decision()

    def _reset_decision(self):
        self._priors = None
        self._rules = None
        self._decision_bias = None

    def __repr__(self):
        state = "finalized" if self.is_finalized else "pending"
        return (
            f"{type(self).__name__}(n_classes={self.n_classes}, "
            f"n_features={self.n_features}, tau={self.tau!r}, {state})"
        )

    # label <-> index bijection

    @property
    def classes(self):
        return np.asarray(self._labels)

    def index_of(self, label):
        try:
            return self._index[label]
        except KeyError:
            raise KeyError(f"Unknown class label {label!r}") from None

    @property
    def n_classes(self):
        return len(self._labels)

    @property
    def n_features(self):
        if not self._statistics:
            return None
        return self._statistics[0].n_features

    @property
    def is_finalized(self):
        return self._rules is not None

    def add_class(self, label, statistics):
        """Append the statistics of one class.

        Statistics for a label already in the model are merged with the
        existing ones.
        """
        if self.n_features is not None and statistics.n_features != self.n_features:
            raise DimensionMismatchError(
                f"Class {label!r} has {statistics.n_features} features, but the "
                f"model has {self.n_features} features."
            )
        if label in self._index:
            idx = self._index[label]
            self._statistics[idx] = self._statistics[idx].merge(statistics)
        else:
            self._index[label] = len(self._labels)
            self._labels.append(label)
            self._statistics.append(statistics)
        self._reset_decision()
        return self

    def statistics(self, label):
        return self._statistics[self.index_of(label)]

    # finalization

    def _update_priors(self):
        counts = np.asarray([s.count for s in self._statistics], dtype=np.float64)
        self._priors = counts / counts.sum()

    def _update_rules(self, tau, n_jobs=None):
        rules = Parallel(n_jobs=n_jobs)(
            delayed(regularize)(s.covariance, tau) for s in self._statistics
        )
        decision_bias = np.asarray(
            [rule.decision_bias(p) for rule, p in zip(rules, self._priors)]
        )
        self._rules, self._decision_bias = rules, decision_bias

    def finalize(self, n_jobs=None):
        """Compute the priors and the decision operator of every class.

        Parameters
        ----------
        n_jobs : int, default=None
            Number of jobs used to regularize the classes in parallel.

        Returns
        -------
        self : GaussianModel
        """
        if not self._statistics:
            raise EmptyDatasetError("Cannot finalize a model without any class.")
        self._update_priors()
        self._update_rules(self.tau, n_jobs=n_jobs)
        logger.debug(
            "Finalized %d classes of %d features with tau=%g",
            self.n_classes,
            self.n_features,
            self.tau,
        )
        return self

    def set_tau(self, tau, n_jobs=None):
        """Change the regularization floor and rebuild every decision rule.

        The class statistics are left untouched.
        """
        if self._priors is not None:
            self._update_rules(float(tau), n_jobs=n_jobs)
            logger.debug("Recomputed %d decision rules for tau=%g", self.n_classes, tau)
        self.tau = float(tau)
        return self

    # scoring

    def _check_finalized(self):
        if not self.is_finalized:
            raise ModelNotTrainedError(
                "The Gaussian model is not finalized; call 'finalize' first."
            )

    def scores(self, X):
        """Regularized negative log-posterior of every sample for every class.

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)

        Returns
        -------
        scores : ndarray of shape (n_samples, n_classes)
            ``||W_c (x - mean_c)||^2 + b_c``; lower is better.
        """
        self._check_finalized()
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2 or X.shape[1] != self.n_features:
            raise DimensionMismatchError(
                f"X has {X.shape[-1]} features, but the model is expecting "
                f"{self.n_features} features."
            )
        distances = np.column_stack(
            [
                rule.mahalanobis(X, stats.mean)
                for rule, stats in zip(self._rules, self._statistics)
            ]
        )
        return distances + self._decision_bias

    # read-only views

    @property
    def counts(self):
        return np.asarray([s.count for s in self._statistics], dtype=np.int64)

    @property
    def means(self):
        return np.asarray([s.mean for s in self._statistics])

    @property
    def covariances(self):
        return np.asarray([s.covariance for s in self._statistics])

    @property
    def priors(self):
        self._check_finalized()
        return self._priors.copy()

    @property
    def eigenvalues(self):
        self._check_finalized()
        return np.asarray([rule.eigenvalues for rule in self._rules])

    @property
    def floored_eigenvalues(self):
        self._check_finalized()
        return np.asarray([rule.floored_eigenvalues for rule in self._rules])

    @property
    def eigenvectors(self):
        self._check_finalized()
        return np.asarray([rule.eigenvectors for rule in self._rules])

    @property
    def whitening(self):
        self._check_finalized()
        return np.asarray([rule.whitening for rule in self._rules])

    @property
    def decision_bias(self):
        self._check_finalized()
        return self._decision_bias.copy()
