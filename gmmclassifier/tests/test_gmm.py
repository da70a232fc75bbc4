import logging
import warnings

import numpy as np
import pytest
from scipy import linalg
from sklearn.datasets import make_blobs
from sklearn.exceptions import NotFittedError
from sklearn.utils._testing import (
    assert_allclose,
    assert_array_almost_equal,
    assert_array_equal,
)

from gmmclassifier import GMMClassifier
from gmmclassifier.exceptions import (
    DimensionMismatchError,
    EmptyDatasetError,
    InsufficientSamplesError,
    InsufficientSamplesWarning,
    ModelNotTrainedError,
)

# Two unit squares far apart in the plane
X_sq = np.array(
    [[0, 0], [0, 1], [1, 0], [1, 1], [10, 10], [10, 11], [11, 10], [11, 11]],
    dtype=float,
)
y_sq = np.array([0, 0, 0, 0, 1, 1, 1, 1])

# Data is just 9 separable points in the plane
X6 = np.array(
    [[0, 0], [-2, -2], [-2, -1], [-1, -1], [-1, -2], [1, 3], [1, 2], [2, 1], [2, 2]]
)
y6 = np.array([1, 1, 1, 1, 1, 2, 2, 2, 2])
y7 = np.array([1, 2, 3, 2, 3, 1, 2, 3, 1])

# Degenerate data with 1 feature (still should be separable)
X7 = np.array([[-3], [-2], [-1], [-1], [0], [1], [1], [2], [3]])

# Data that has zero variance in one dimension and needs regularization
X2 = np.array(
    [[-3, 0], [-2, 0], [-1, 0], [-1, 0], [0, 0], [1, 0], [1, 0], [2, 0], [3, 0]]
)

# One element class
y4 = np.array([1, 1, 1, 1, 1, 1, 1, 1, 2])


def test_two_squares():
    clf = GMMClassifier(tau=0.01).fit(X_sq, y_sq)

    assert_array_equal(clf.predict([[0.5, 0.5], [10.5, 10.5]]), [0, 1])
    assert_array_equal(clf.classes_, [0, 1])
    assert_allclose(clf.means_, [[0.5, 0.5], [10.5, 10.5]])
    assert_allclose(clf.priors_, [0.5, 0.5])
    assert_array_equal(clf.counts_, [4, 4])


def test_equidistant_query_is_deterministic():
    clf = GMMClassifier(tau=0.01).fit(X_sq, y_sq)
    query = [[5.5, 5.5]]

    scores = clf.class_scores(query)
    assert scores[0, 0] == scores[0, 1]
    predictions = {clf.predict(query)[0] for _ in range(10)}
    # ties go to the lowest class index
    assert predictions == {0}

    label, confidence = clf.predict_one([5.5, 5.5], return_confidence=True)
    assert label == 0
    assert confidence == pytest.approx(0.5)


@pytest.mark.parametrize("labels", [[0, 1], ["b", "c"], [7, -3]])
def test_identical_classes_tie_to_lowest_index(labels):
    X = np.vstack([X_sq[:4], X_sq[:4]])
    y = np.repeat(labels, 4)
    clf = GMMClassifier(tau=0.01).fit(X, y)

    rng = np.random.RandomState(0)
    queries = rng.uniform(-5, 5, size=(20, 2))
    assert_array_equal(clf.predict(queries), [clf.classes_[0]] * 20)


def test_well_separated_classes():
    centers = np.array([[-10.0, -10.0], [0.0, 10.0], [10.0, -10.0]])
    X, y = make_blobs(
        n_samples=300, centers=centers, cluster_std=1.0, random_state=0
    )
    clf = GMMClassifier(tau=1e-6).fit(X, y)

    assert_array_equal(clf.predict(centers), [0, 1, 2])
    scores = clf.class_scores(centers)
    assert_array_equal(scores.argmin(axis=1), [0, 1, 2])
    assert clf.score(X, y) > 0.99


def test_gmm():
    # This checks that the classifier implements fit and predict and
    # returns correct values for a simple toy dataset.
    clf = GMMClassifier()
    y_pred = clf.fit(X6, y6).predict(X6)
    assert_array_equal(y_pred, y6)

    # Assure that it works with 1D data
    y_pred1 = clf.fit(X7, y6).predict(X7)
    assert_array_equal(y_pred1, y6)

    # Test probas estimates
    y_proba_pred1 = clf.predict_proba(X7)
    assert_array_equal((y_proba_pred1[:, 1] > 0.5) + 1, y6)
    y_log_proba_pred1 = clf.predict_log_proba(X7)
    assert_array_almost_equal(np.exp(y_log_proba_pred1), y_proba_pred1, 8)

    y_pred3 = clf.fit(X6, y7).predict(X6)
    # Gaussian classes shouldn't be able to separate those
    assert np.any(y_pred3 != y7)


def test_predict_proba_and_decision_function():
    clf = GMMClassifier(tau=0.01).fit(X6, y6)
    proba = clf.predict_proba(X6)

    assert_allclose(proba.sum(axis=1), 1.0)
    assert_array_equal(clf.classes_.take(proba.argmax(axis=1)), clf.predict(X6))

    # binary decision function is the log likelihood ratio of the second class
    log_proba = clf.predict_log_proba(X6)
    assert_allclose(
        clf.decision_function(X6), log_proba[:, 1] - log_proba[:, 0], atol=1e-10
    )
    scores = clf.class_scores(X6)
    assert_allclose(clf.decision_function(X6), -0.5 * (scores[:, 1] - scores[:, 0]))

    clf.fit(X6, y7)
    assert clf.decision_function(X6).shape == (9, 3)


def test_predict_with_confidence():
    clf = GMMClassifier(tau=0.01).fit(X6, y6)
    labels, confidence = clf.predict_with_confidence(X6)

    assert_array_equal(labels, clf.predict(X6))
    assert_allclose(confidence, clf.predict_proba(X6).max(axis=1))
    assert np.all((confidence >= 0) & (confidence <= 1))

    assert clf.predict_one(X6[0]) == labels[0]
    label, conf = clf.predict_one(X6[0], return_confidence=True)
    assert label == labels[0]
    assert conf == pytest.approx(confidence[0])


def test_single_sample_class():
    tau = 1e-3
    clf = GMMClassifier(tau=tau)
    with pytest.warns(InsufficientSamplesWarning, match="Class 2 has 1 sample"):
        clf.fit(X6, y4)

    assert_array_equal(clf.covariances_[1], np.zeros((2, 2)))
    assert_allclose(clf.model_.floored_eigenvalues[1], [tau, tau])
    assert_array_equal(clf.predict([[2, 2]]), [2])

    clf = GMMClassifier(on_insufficient_samples="raise")
    with pytest.raises(InsufficientSamplesError):
        clf.fit(X6, y4)


def test_regularization():
    # constant second feature: the floor keeps the covariance invertible
    clf = GMMClassifier(tau=0.01)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        clf.fit(X2, y6)
    y_pred = clf.predict(X2)
    assert_array_equal(y_pred, y6)

    # without a floor the rank deficiency is reported, not raised
    clf = GMMClassifier(tau=0.0)
    with pytest.warns(linalg.LinAlgWarning, match="not full rank"):
        clf.fit(X2, y6)
    assert np.all(np.isfinite(clf.decision_bias_))


def test_eigendecomposition_reconstructs_covariances():
    X, y = make_blobs(n_samples=120, n_features=4, centers=3, random_state=1)
    clf = GMMClassifier().fit(X, y)

    for cov, evals, evecs in zip(
        clf.covariances_, clf.eigenvalues_, clf.eigenvectors_
    ):
        assert_allclose(evecs @ evecs.T, np.eye(4), atol=1e-10)
        assert_allclose(evecs.T @ np.diag(evals) @ evecs, cov, atol=1e-10)


def test_priors_follow_counts():
    clf = GMMClassifier().fit(X6, y6)
    assert_array_equal(clf.counts_, [5, 4])
    assert_allclose(clf.priors_, [5 / 9, 4 / 9])


def test_set_tau():
    clf = GMMClassifier(tau=1e-4).fit(X2, y6)
    means, covariances = clf.means_, clf.covariances_
    bias = clf.decision_bias_

    assert clf.set_tau(0.5) is clf
    assert clf.tau == 0.5
    assert_array_equal(clf.means_, means)
    assert_array_equal(clf.covariances_, covariances)
    assert np.all(clf.decision_bias_ > bias)

    refit = GMMClassifier(tau=0.5).fit(X2, y6)
    assert_allclose(clf.class_scores(X2), refit.class_scores(X2))

    with pytest.raises(ValueError):
        clf.set_tau(-1.0)
    assert clf.tau == 0.5


def test_set_tau_before_fit():
    clf = GMMClassifier().set_tau(0.2)
    assert clf.tau == 0.2
    clf.fit(X_sq, y_sq)
    assert clf.model_.tau == 0.2


@pytest.mark.parametrize(
    "method",
    [
        "predict",
        "predict_proba",
        "predict_log_proba",
        "predict_with_confidence",
        "decision_function",
        "class_scores",
    ],
)
def test_not_trained(method):
    clf = GMMClassifier()
    with pytest.raises(ModelNotTrainedError, match="not trained yet"):
        getattr(clf, method)(X6)
    with pytest.raises(NotFittedError):
        getattr(clf, method)(X6)


def test_predict_one_not_trained():
    with pytest.raises(ModelNotTrainedError, match="not trained yet"):
        GMMClassifier().predict_one([0.0, 1.0])


def test_not_trained_attributes():
    clf = GMMClassifier()
    assert not hasattr(clf, "classes_")
    with pytest.raises(ModelNotTrainedError):
        clf.means_


def test_query_dimension_mismatch():
    clf = GMMClassifier().fit(X6, y6)
    with pytest.raises(DimensionMismatchError, match="expecting 2 features"):
        clf.predict([[1.0, 2.0, 3.0]])
    with pytest.raises(DimensionMismatchError):
        clf.predict_one([1.0])
    with pytest.raises(DimensionMismatchError):
        clf.predict_one([[1.0, 2.0]])


def test_ragged_training_data():
    with pytest.raises(DimensionMismatchError, match="same length"):
        GMMClassifier().fit([[0.0, 1.0], [1.0], [2.0, 3.0]], [0, 0, 1])


@pytest.mark.parametrize("X", [[], np.empty((0, 2)), None])
def test_empty_training_data(X):
    with pytest.raises(EmptyDatasetError):
        GMMClassifier().fit(X, [])


def test_failed_fit_keeps_previous_model():
    clf = GMMClassifier(on_insufficient_samples="raise").fit(X6, y6)
    expected = clf.predict_proba(X6)

    with pytest.raises(InsufficientSamplesError):
        clf.fit(X6, y4)
    with pytest.raises(DimensionMismatchError):
        clf.fit([[0.0, 1.0], [1.0]], [0, 1])

    assert_array_equal(clf.classes_, [1, 2])
    assert_allclose(clf.predict_proba(X6), expected)


def test_string_labels():
    y = np.where(y6 == 1, "left", "right")
    clf = GMMClassifier().fit(X6, y)
    assert_array_equal(clf.classes_, ["left", "right"])
    assert_array_equal(clf.predict(X6), y)


def test_invalid_params():
    with pytest.raises(ValueError):
        GMMClassifier(tau=-0.1).fit(X6, y6)
    with pytest.raises(ValueError):
        GMMClassifier(on_insufficient_samples="ignore").fit(X6, y6)


def test_n_jobs_matches_sequential():
    X, y = make_blobs(n_samples=200, n_features=3, centers=4, random_state=3)
    sequential = GMMClassifier(tau=1e-3).fit(X, y)
    parallel = GMMClassifier(tau=1e-3, n_jobs=2).fit(X, y)

    assert_allclose(parallel.means_, sequential.means_)
    assert_allclose(parallel.covariances_, sequential.covariances_)
    assert_allclose(parallel.class_scores(X), sequential.class_scores(X))


def test_fit_logs_debug_record(caplog):
    caplog.set_level(logging.DEBUG, logger="gmmclassifier")
    GMMClassifier().fit(X_sq, y_sq)
    assert "Trained GMMClassifier on 8 samples, 2 classes, 2 features" in caplog.text


def test_single_class():
    clf = GMMClassifier(tau=0.01).fit(X_sq[:4], y_sq[:4])
    labels, confidence = clf.predict_with_confidence(X_sq)
    assert_array_equal(labels, np.zeros(8))
    assert_allclose(confidence, 1.0)
    assert_allclose(clf.priors_, [1.0])


def test_ragged_object_array():
    rows = [np.array([0.0, 1.0]), np.array([1.0]), np.array([2.0, 3.0])]
    X = np.empty(3, dtype=object)
    X[:] = rows
    with pytest.raises(DimensionMismatchError, match="same length"):
        GMMClassifier().fit(X, [0, 0, 1])
