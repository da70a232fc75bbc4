"""Gaussian classifier with one spectrally regularized Gaussian per class."""

# SPDX-License-Identifier: BSD-3-Clause

import logging
from numbers import Integral, Real

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin, _fit_context
from sklearn.utils._param_validation import Interval, StrOptions, validate_params
from sklearn.utils.multiclass import check_classification_targets
from sklearn.utils.parallel import Parallel, delayed
from sklearn.utils.validation import check_array, check_X_y

from ._model import GaussianModel
from ._persistence import can_read_file, can_write_file, load_model, save_model
from ._statistics import check_sample_count, class_statistics
from .exceptions import DimensionMismatchError, EmptyDatasetError, ModelNotTrainedError

__all__ = ["GMMClassifier"]

logger = logging.getLogger(__name__)


def _check_feature_vectors(X):
    """Reject empty training sets and feature vectors of unequal lengths."""
    if X is None:
        raise EmptyDatasetError("No training sample was provided.")
    n_samples = X.shape[0] if hasattr(X, "shape") else len(X)
    if n_samples == 0:
        raise EmptyDatasetError("No training sample was provided.")
    # rows of lists and object arrays may have unequal lengths
    if not hasattr(X, "shape") or getattr(X, "dtype", None) == object:
        lengths = {np.shape(row) for row in X}
        if len(lengths) > 1:
            raise DimensionMismatchError(
                "All feature vectors must have the same length; got vectors of "
                f"shapes {sorted(lengths)}."
            )


class GMMClassifier(ClassifierMixin, BaseEstimator):
    """Gaussian classifier with spectrally regularized class covariances.

    A classifier with a quadratic decision boundary, generated by fitting
    one Gaussian density to each class and using Bayes' rule. Each class
    covariance is eigen-decomposed and its eigenvalues are floored at
    `tau`, which keeps the model well defined for classes with fewer
    samples than features or with constant features.

    A sample ``x`` is scored against class ``c`` with::

        score_c(x) = ||W_c (x - mean_c)||^2 + b_c

    where ``W_c = diag(max(lambda_c, tau)) ** -0.5 @ Q_c`` is the whitening
    operator built from the eigenvalues ``lambda_c`` and eigenvectors
    ``Q_c`` (rows) of the class covariance and
    ``b_c = sum(log(max(lambda_c, tau))) - 2 log(prior_c)``. The predicted
    class is the one with the lowest score; ties go to the class with the
    lowest index in `classes_`.

    Parameters
    ----------
    tau : float, default=1e-6
        Regularization floor: every eigenvalue of every class covariance
        below `tau` is replaced by `tau`. Use :meth:`set_tau` to change it
        on a trained model without refitting.

    on_insufficient_samples : {"warn", "raise"}, default="warn"
        What to do when a class has fewer than ``n_features + 1`` samples.
        ``"warn"`` issues an
        :class:`~gmmclassifier.exceptions.InsufficientSamplesWarning` and
        lets `tau` absorb the rank deficiency; ``"raise"`` raises
        :class:`~gmmclassifier.exceptions.InsufficientSamplesError`.

    n_jobs : int, default=None
        Number of jobs used to compute the per-class statistics and
        decision rules. ``None`` means 1 unless in a
        :obj:`joblib.parallel_backend` context.

    Attributes
    ----------
    classes_ : ndarray of shape (n_classes,)
        Unique class labels.

    counts_ : ndarray of shape (n_classes,)
        Number of training samples of each class.

    means_ : ndarray of shape (n_classes, n_features)
        Class-wise means.

    covariances_ : ndarray of shape (n_classes, n_features, n_features)
        Unbiased class-wise covariance matrices.

    priors_ : ndarray of shape (n_classes,)
        Class proportions (sum to 1).

    eigenvalues_ : ndarray of shape (n_classes, n_features)
        Eigenvalues of each class covariance, in ascending order.

    eigenvectors_ : ndarray of shape (n_classes, n_features, n_features)
        Unit eigenvectors of each class covariance, stored as rows.

    whitening_ : ndarray of shape (n_classes, n_features, n_features)
        Whitening operator of each class.

    decision_bias_ : ndarray of shape (n_classes,)
        Log-determinant of the regularized covariance minus twice the log
        prior of each class.

    n_features_in_ : int
        Number of features seen during :term:`fit`.

    See Also
    --------
    sklearn.discriminant_analysis.QuadraticDiscriminantAnalysis : Quadratic
        Discriminant Analysis with shrinkage regularization.

    Examples
    --------
    >>> import numpy as np
    >>> from gmmclassifier import GMMClassifier
    >>> X = np.array([[0, 0], [0, 1], [1, 0], [1, 1],
    ...               [10, 10], [10, 11], [11, 10], [11, 11]])
    >>> y = np.array([0, 0, 0, 0, 1, 1, 1, 1])
    >>> clf = GMMClassifier(tau=0.01).fit(X, y)
    >>> print(clf.predict([[0.5, 0.5], [10.5, 10.5]]))
    [0 1]
    """

    _parameter_constraints: dict = {
        "tau": [Interval(Real, 0, None, closed="left")],
        "on_insufficient_samples": [StrOptions({"warn", "raise"})],
        "n_jobs": [Integral, None],
    }

    def __init__(self, *, tau=1e-6, on_insufficient_samples="warn", n_jobs=None):
        self.tau = tau
        self.on_insufficient_samples = on_insufficient_samples
        self.n_jobs = n_jobs

    def __sklearn_is_fitted__(self):
        model = getattr(self, "model_", None)
        return model is not None and model.is_finalized

    def _check_trained(self):
        if not self.__sklearn_is_fitted__():
            raise ModelNotTrainedError(
                f"This {type(self).__name__} instance is not trained yet. Call "
                "'fit' or 'load' with appropriate arguments before using this "
                "model."
            )

    def _set_model(self, model):
        self.model_ = model
        self.classes_ = model.classes
        self.n_features_in_ = model.n_features

    @_fit_context(prefer_skip_nested_validation=True)
    def fit(self, X, y):
        """Fit the model according to the given training data and parameters.

        Any previously trained model is replaced, and is left untouched if
        training fails.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Training vector, where `n_samples` is the number of samples and
            `n_features` is the number of features.

        y : array-like of shape (n_samples,)
            Target values.

        Returns
        -------
        self : object
            Fitted estimator.
        """
        _check_feature_vectors(X)
        X, y = check_X_y(X, y, dtype=np.float64)
        check_classification_targets(y)
        classes, y = np.unique(y, return_inverse=True)

        statistics = Parallel(n_jobs=self.n_jobs)(
            delayed(class_statistics)(X, y, ind) for ind in range(len(classes))
        )
        model = GaussianModel(self.tau)
        for label, stats in zip(classes, statistics):
            check_sample_count(stats, label, self.on_insufficient_samples)
            model.add_class(label, stats)
        model.finalize(n_jobs=self.n_jobs)

        logger.debug(
            "Trained %s on %d samples, %d classes, %d features",
            type(self).__name__,
            X.shape[0],
            len(classes),
            X.shape[1],
        )
        self._set_model(model)
        return self

    @validate_params(
        {"tau": [Interval(Real, 0, None, closed="left")]},
        prefer_skip_nested_validation=True,
    )
    def set_tau(self, tau):
        """Change the regularization floor of a trained model.

        The class means, covariances and counts are kept; the decision rule
        of every class is recomputed. Must not run concurrently with
        predictions.

        Parameters
        ----------
        tau : float
            New regularization floor, non-negative.

        Returns
        -------
        self : object
            The estimator, with `tau` updated.
        """
        if self.__sklearn_is_fitted__():
            self.model_.set_tau(tau, n_jobs=self.n_jobs)
        self.tau = tau
        return self

    def _validate_query(self, X):
        self._check_trained()
        X = check_array(X, dtype=np.float64)
        if X.shape[1] != self.n_features_in_:
            raise DimensionMismatchError(
                f"X has {X.shape[1]} features, but {type(self).__name__} is "
                f"expecting {self.n_features_in_} features as input."
            )
        return X

    def class_scores(self, X):
        """Regularized negative log-posterior of each sample for each class.

        Scores are defined up to a common additive constant; lower is
        better.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Array of samples.

        Returns
        -------
        scores : ndarray of shape (n_samples, n_classes)
            ``||W_c (x - mean_c)||^2 + b_c`` for every class ``c``.
        """
        X = self._validate_query(X)
        return self.model_.scores(X)

    def _decision_function(self, X):
        # log posterior up to an additive constant
        return -0.5 * self.class_scores(X)

    def decision_function(self, X):
        """Apply decision function to an array of samples.

        The decision function is equal (up to a constant) to the
        log-posterior of the model, i.e. `log p(y = k | x)`. In a binary
        classification setting this instead corresponds to the difference
        `log p(y = 1 | x) - log p(y = 0 | x)`.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Array of samples (test vectors).

        Returns
        -------
        C : ndarray of shape (n_samples,) or (n_samples, n_classes)
            Decision function values related to each class, per sample.
            In the two-class case, the shape is `(n_samples,)`, giving the
            log likelihood ratio of the positive class.
        """
        y_scores = self._decision_function(X)
        if len(self.classes_) == 2:
            return y_scores[:, 1] - y_scores[:, 0]
        return y_scores

    def predict(self, X):
        """Perform classification on an array of test vectors X.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Vectors to be classified.

        Returns
        -------
        C : ndarray of shape (n_samples,)
            Predicted class label of each sample.
        """
        scores = self.class_scores(X)
        # argmin returns the first minimum: ties go to the lowest class index
        return self.classes_.take(scores.argmin(axis=1))

    @staticmethod
    def _log_proba_from_scores(scores):
        log_likelihood = -0.5 * (scores - scores.min(axis=1)[:, np.newaxis])
        return log_likelihood - np.log(
            np.exp(log_likelihood).sum(axis=1)[:, np.newaxis]
        )

    def predict_log_proba(self, X):
        """Return log of posterior probabilities of classification.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Array of samples/test vectors.

        Returns
        -------
        C : ndarray of shape (n_samples, n_classes)
            Posterior log-probabilities of classification per class.
        """
        return self._log_proba_from_scores(self.class_scores(X))

    def predict_proba(self, X):
        """Return posterior probabilities of classification.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Array of samples/test vectors.

        Returns
        -------
        C : ndarray of shape (n_samples, n_classes)
            Posterior probabilities of classification per class.
        """
        return np.exp(self.predict_log_proba(X))

    def predict_with_confidence(self, X):
        """Predict class labels together with a confidence value.

        The confidence is the posterior probability of the predicted class:
        it lies in ``[0, 1]`` and higher is better.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Vectors to be classified.

        Returns
        -------
        labels : ndarray of shape (n_samples,)
            Predicted class labels.

        confidence : ndarray of shape (n_samples,)
            Posterior probability of each predicted label.
        """
        scores = self.class_scores(X)
        indices = scores.argmin(axis=1)
        proba = np.exp(self._log_proba_from_scores(scores))
        confidence = proba[np.arange(indices.shape[0]), indices]
        return self.classes_.take(indices), confidence

    def predict_one(self, x, return_confidence=False):
        """Classify a single feature vector.

        Parameters
        ----------
        x : array-like of shape (n_features,)
            Feature vector.

        return_confidence : bool, default=False
            Whether to also return the posterior probability of the label.

        Returns
        -------
        label : object
            Predicted class label.

        confidence : float
            Only returned when `return_confidence` is True.
        """
        x = np.asarray(x, dtype=np.float64)
        if x.ndim != 1:
            raise DimensionMismatchError(
                f"Expected a single feature vector; got an array of shape {x.shape}"
            )
        labels, confidence = self.predict_with_confidence(x[np.newaxis, :])
        if return_confidence:
            return labels[0], float(confidence[0])
        return labels[0]

    def save(self, path, name=""):
        """Save the class statistics and `tau` to an ``.npz`` archive.

        Parameters
        ----------
        path : str or path-like
            Destination file. Other records of an existing archive are kept.

        name : str, default=""
            Name of the record inside the archive.
        """
        self._check_trained()
        save_model(self.model_, path, name=name)

    @validate_params(
        {"tau": [Interval(Real, 0, None, closed="left"), None]},
        prefer_skip_nested_validation=True,
    )
    def load(self, path, name="", tau=None):
        """Replace the model by one saved with :meth:`save`.

        The decision rules are rebuilt from the stored statistics. On
        failure the current model, if any, is left untouched.

        Parameters
        ----------
        path : str or path-like
            Archive to read.

        name : str, default=""
            Name of the record inside the archive.

        tau : float, default=None
            Regularization floor to use instead of the stored one.

        Returns
        -------
        self : object
            The estimator, with `tau` set to the value in use.
        """
        model = load_model(path, name=name, tau=tau, n_jobs=self.n_jobs)
        self._set_model(model)
        self.tau = model.tau
        return self

    def can_read_file(self, path, name=""):
        """Whether `path` holds a model record this estimator can load."""
        return can_read_file(path, name=name)

    def can_write_file(self, path):
        """Whether a model can be saved at `path`."""
        return can_write_file(path)

    @property
    def counts_(self):
        self._check_trained()
        return self.model_.counts

    @property
    def means_(self):
        self._check_trained()
        return self.model_.means

    @property
    def covariances_(self):
        self._check_trained()
        return self.model_.covariances

    @property
    def priors_(self):
        self._check_trained()
        return self.model_.priors

    @property
    def eigenvalues_(self):
        self._check_trained()
        return self.model_.eigenvalues

    @property
    def eigenvectors_(self):
        self._check_trained()
        return self.model_.eigenvectors

    @property
    def whitening_(self):
        self._check_trained()
        return self.model_.whitening

    @property
    def decision_bias_(self):
        self._check_trained()
        return self.model_.decision_bias
