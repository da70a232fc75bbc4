"""Benchmark GMMClassifier against QuadraticDiscriminantAnalysis."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from time import perf_counter
from typing import Iterable, List, Optional

import numpy as np

from gmmclassifier import GMMClassifier
from sklearn.datasets import make_classification
from sklearn.discriminant_analysis import QuadraticDiscriminantAnalysis
from sklearn.metrics import accuracy_score, balanced_accuracy_score
from sklearn.model_selection import train_test_split


@dataclass
class GMMResult:
    estimator: str
    tau: Optional[float]
    fit_time: float
    predict_time: float
    accuracy: float
    balanced_accuracy: float
    n_jobs: Optional[int] = None
    prediction_agreement: Optional[float] = None
    accuracy_gap: Optional[float] = None
    _predictions: Optional[np.ndarray] = field(default=None, repr=False)


def _generate_dataset(
    *,
    n_samples: int,
    n_features: int,
    n_classes: int,
    test_size: float,
    random_state: int,
):
    n_informative = min(n_features, max(10, n_classes * 5))
    X, y = make_classification(
        n_samples=n_samples,
        n_features=n_features,
        n_informative=n_informative,
        n_redundant=0,
        n_repeated=0,
        n_classes=n_classes,
        n_clusters_per_class=1,
        class_sep=2.5,
        flip_y=0.0,
        random_state=random_state,
    )
    return train_test_split(
        X, y, test_size=test_size, random_state=random_state, stratify=y
    )


def _format_value(value, *, width: int, precision: int = 4) -> str:
    if value is None:
        return f"{'-':>{width}}"
    if isinstance(value, float):
        return f"{value:>{width}.{precision}f}"
    return f"{value:>{width}}"


def _print_results(results: Iterable[GMMResult]) -> None:
    results = list(results)
    if not results:
        return

    include_agreement = any(r.prediction_agreement is not None for r in results)
    include_gap = any(r.accuracy_gap is not None for r in results)

    columns = [
        ("Estimator", "estimator", 30, False),
        ("tau", "tau", 8, False),
        ("Jobs", "n_jobs", 5, False),
        ("Fit time (s)", "fit_time", 14, True),
        ("Predict time (s)", "predict_time", 17, True),
        ("Accuracy", "accuracy", 10, True),
        ("Balanced acc.", "balanced_accuracy", 15, True),
    ]
    if include_agreement:
        columns.append(("Agreement", "prediction_agreement", 12, True))
    if include_gap:
        columns.append(("Acc. gap", "accuracy_gap", 10, True))

    header = " | ".join(name.ljust(width) for name, _, width, _ in columns)
    print(header)
    print("-" * len(header))

    for res in results:
        row = []
        for _, attr, width, is_float in columns:
            value = getattr(res, attr)
            if attr == "tau" and value is not None:
                row.append(f"{value:>{width}.3g}")
                continue
            precision = 6 if attr in {"fit_time", "predict_time"} else 4
            row.append(_format_value(value, width=width, precision=precision))
        print(" | ".join(row))


def benchmark_qda(
    X_train: np.ndarray,
    y_train: np.ndarray,
    X_test: np.ndarray,
    y_test: np.ndarray,
) -> GMMResult:
    qda = QuadraticDiscriminantAnalysis()
    tic = perf_counter()
    qda.fit(X_train, y_train)
    fit_time = perf_counter() - tic

    tic = perf_counter()
    predictions = qda.predict(X_test)
    predict_time = perf_counter() - tic

    return GMMResult(
        estimator="QuadraticDiscriminantAnalysis",
        tau=None,
        fit_time=fit_time,
        predict_time=predict_time,
        accuracy=accuracy_score(y_test, predictions),
        balanced_accuracy=balanced_accuracy_score(y_test, predictions),
        _predictions=predictions,
    )


def benchmark_gmm(
    X_train: np.ndarray,
    y_train: np.ndarray,
    X_test: np.ndarray,
    y_test: np.ndarray,
    *,
    tau: float,
    n_jobs: Optional[int],
    baseline: Optional[GMMResult] = None,
) -> GMMResult:
    estimator = GMMClassifier(tau=tau, n_jobs=n_jobs)
    tic = perf_counter()
    estimator.fit(X_train, y_train)
    fit_time = perf_counter() - tic

    tic = perf_counter()
    predictions = estimator.predict(X_test)
    predict_time = perf_counter() - tic

    accuracy = accuracy_score(y_test, predictions)
    balanced = balanced_accuracy_score(y_test, predictions)

    agreement = None
    accuracy_gap = None
    if baseline is not None and baseline._predictions is not None:
        agreement = float(np.mean(predictions == baseline._predictions))
        accuracy_gap = balanced - baseline.balanced_accuracy

    return GMMResult(
        estimator="GMMClassifier",
        tau=tau,
        fit_time=fit_time,
        predict_time=predict_time,
        accuracy=accuracy,
        balanced_accuracy=balanced,
        n_jobs=n_jobs,
        prediction_agreement=agreement,
        accuracy_gap=accuracy_gap,
    )


def benchmark_set_tau(
    X_train: np.ndarray, y_train: np.ndarray, *, taus: List[float]
) -> float:
    """Time of a tau sweep on a trained model, without refitting."""
    estimator = GMMClassifier(tau=taus[0]).fit(X_train, y_train)
    tic = perf_counter()
    for tau in taus[1:]:
        estimator.set_tau(tau)
    return perf_counter() - tic


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--n-samples", type=int, default=200_000)
    parser.add_argument("--n-features", type=int, default=50)
    parser.add_argument("--n-classes", type=int, default=5)
    parser.add_argument("--test-size", type=float, default=0.2)
    parser.add_argument(
        "--taus",
        nargs="+",
        type=float,
        default=[1e-6, 1e-3, 1e-1],
        help="Regularization floors to benchmark.",
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=None,
        help="Number of jobs used for the per-class computations.",
    )
    parser.add_argument("--random-state", type=int, default=0)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    X_train, X_test, y_train, y_test = _generate_dataset(
        n_samples=args.n_samples,
        n_features=args.n_features,
        n_classes=args.n_classes,
        test_size=args.test_size,
        random_state=args.random_state,
    )

    print(
        "Dataset:",
        f"{X_train.shape[0] + X_test.shape[0]:,} samples",
        f"({X_train.shape[0]:,} train / {X_test.shape[0]:,} test),",
        f"{X_train.shape[1]} features, {len(np.unique(y_train))} classes",
    )

    baseline = benchmark_qda(X_train, y_train, X_test, y_test)
    results: List[GMMResult] = [baseline]
    for tau in args.taus:
        results.append(
            benchmark_gmm(
                X_train,
                y_train,
                X_test,
                y_test,
                tau=tau,
                n_jobs=args.n_jobs,
                baseline=baseline,
            )
        )

    print()
    _print_results(results)

    if len(args.taus) > 1:
        sweep_time = benchmark_set_tau(X_train, y_train, taus=args.taus)
        print()
        print(f"set_tau sweep over {len(args.taus) - 1} values: {sweep_time:.6f} s")


if __name__ == "__main__":
    main()
