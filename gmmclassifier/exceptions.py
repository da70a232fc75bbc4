"""Custom warnings and errors used across gmmclassifier."""

# SPDX-License-Identifier: BSD-3-Clause

from sklearn.exceptions import NotFittedError

__all__ = [
    "CorruptModelFileError",
    "DimensionMismatchError",
    "EmptyDatasetError",
    "InsufficientSamplesError",
    "InsufficientSamplesWarning",
    "ModelNotTrainedError",
]


class DimensionMismatchError(ValueError):
    """Raised when a feature vector does not have the expected length.

    Training raises it when the feature vectors have inconsistent lengths,
    prediction when a query does not match the dimensionality the model was
    trained with.
    """


class EmptyDatasetError(ValueError):
    """Raised when training is attempted without any sample."""


class InsufficientSamplesError(ValueError):
    """Raised when a class has fewer than ``n_features + 1`` samples.

    Only raised with ``on_insufficient_samples="raise"``; by default the
    condition is reported with :class:`InsufficientSamplesWarning` and the
    regularization floor absorbs the rank deficiency.
    """


class InsufficientSamplesWarning(UserWarning):
    """Warning used when a class covariance is singular by construction."""


class ModelNotTrainedError(NotFittedError):
    """Raised when a model is used before :meth:`fit` or :meth:`load`.

    Inherits from :class:`sklearn.exceptions.NotFittedError` so that code
    catching the scikit-learn error keeps working.

    Examples
    --------
    >>> from gmmclassifier import GMMClassifier
    >>> from gmmclassifier.exceptions import ModelNotTrainedError
    >>> try:
    ...     GMMClassifier().predict([[1, 2], [2, 3], [3, 4]])
    ... except ModelNotTrainedError as e:
    ...     print(type(e).__name__)
    ModelNotTrainedError
    """


class CorruptModelFileError(ValueError):
    """Raised when a model file does not match the expected schema.

    A failed load leaves any previously trained model untouched.
    """
