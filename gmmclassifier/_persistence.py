"""Saving and loading Gaussian models as NumPy ``.npz`` archives.

An archive can hold several models, each stored under a record name used
as a key prefix. Only the sufficient statistics are stored; the decision
rules are rebuilt on load.
"""

# SPDX-License-Identifier: BSD-3-Clause

import logging
import os
import tempfile
import zipfile
from numbers import Integral, Real

import numpy as np
from sklearn.utils._param_validation import Interval, validate_params

from ._model import GaussianModel
from ._statistics import ClassStatistics
from .exceptions import CorruptModelFileError, ModelNotTrainedError

__all__ = ["can_read_file", "can_write_file", "load_model", "save_model"]

logger = logging.getLogger(__name__)

FORMAT = "gmmclassifier"
VERSION = 1


def _prefix(name):
    if "/" in name:
        raise ValueError(f"Record names cannot contain '/'; got {name!r}")
    return f"{name}/" if name else ""


def _label_array(classes):
    labels = np.asarray(classes)
    if labels.dtype == object:
        labels = np.asarray(labels.tolist())
    if labels.dtype.kind not in "biufU":
        raise TypeError(
            "Only numeric or string class labels can be saved; got labels of "
            f"dtype {labels.dtype}."
        )
    return labels


def _read_archive(path):
    """All arrays of an existing archive, or an empty dict if there is none.

    An existing file that cannot be read back in full is never overwritten.
    """
    if not os.path.exists(path):
        return {}
    try:
        with _open_archive(path) as data:
            return {key: data[key] for key in data.files}
    except CorruptModelFileError:
        raise
    except (ValueError, EOFError, zipfile.BadZipFile) as exc:
        raise CorruptModelFileError(
            f"Refusing to overwrite {path}: it is not a readable model archive "
            f"({exc})"
        ) from exc


def _default_file_mode():
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def save_model(model, path, name=""):
    """Write the statistics of a finalized model to `path`.

    The archive is written to a temporary file next to `path` which then
    replaces `path`; records stored under other names are preserved.

    Parameters
    ----------
    model : GaussianModel
        Finalized model.

    path : str or path-like
        Destination archive.

    name : str, default=""
        Record name inside the archive.
    """
    if not model.is_finalized:
        raise ModelNotTrainedError("Only a finalized model can be saved.")
    path = os.fspath(path)
    prefix = _prefix(name)
    arrays = {
        key: value
        for key, value in _read_archive(path).items()
        if not key.startswith(prefix) or (not prefix and "/" in key)
    }
    record = {
        "format": np.asarray(FORMAT),
        "version": np.asarray(VERSION),
        "tau": np.asarray(model.tau),
        "n_features": np.asarray(model.n_features),
        "classes": _label_array(model.classes),
        "counts": model.counts,
        "means": model.means,
        "covariances": model.covariances,
    }
    arrays.update({prefix + key: value for key, value in record.items()})

    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".gmm-", suffix=".npz")
    try:
        with os.fdopen(fd, "wb") as fh:
            np.savez(fh, **arrays)
        os.chmod(tmp_path, _default_file_mode())
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise
    logger.debug("Saved %d classes to %s (record %r)", model.n_classes, path, name)


def _field(data, prefix, key):
    try:
        return data[prefix + key]
    except KeyError:
        raise CorruptModelFileError(f"Missing field {prefix + key!r}") from None


def _check_header(data, prefix):
    fmt = _field(data, prefix, "format")
    if fmt.shape != () or fmt.dtype.kind != "U" or str(fmt) != FORMAT:
        raise CorruptModelFileError(f"Not a {FORMAT} record: format={fmt!r}")
    version = _field(data, prefix, "version")
    if version.shape != () or version.dtype.kind not in "iu":
        raise CorruptModelFileError(f"Invalid format version {version!r}")
    if int(version) > VERSION:
        raise CorruptModelFileError(
            f"Unsupported format version {int(version)}; the latest supported "
            f"version is {VERSION}."
        )


def _model_from_record(data, prefix, tau):
    _check_header(data, prefix)
    stored_tau = _field(data, prefix, "tau")
    n_features = _field(data, prefix, "n_features")
    classes = _field(data, prefix, "classes")
    counts = _field(data, prefix, "counts")
    means = _field(data, prefix, "means")
    covariances = _field(data, prefix, "covariances")

    for key, value in (
        ("tau", stored_tau), ("means", means), ("covariances", covariances)
    ):
        if value.dtype.kind not in "iuf":
            raise CorruptModelFileError(f"{key} has non numeric dtype {value.dtype}")
    if stored_tau.shape != () or not np.isfinite(stored_tau) or stored_tau < 0:
        raise CorruptModelFileError(f"Invalid tau {stored_tau!r}")
    if n_features.shape != () or n_features.dtype.kind not in "iu" or n_features < 1:
        raise CorruptModelFileError(f"Invalid n_features {n_features!r}")
    d = int(n_features)
    n_classes = classes.shape[0] if classes.ndim == 1 else -1
    if n_classes < 1 or len(np.unique(classes)) != n_classes:
        raise CorruptModelFileError("Class labels must be a non-empty unique vector")
    if counts.shape != (n_classes,) or counts.dtype.kind not in "iu":
        raise CorruptModelFileError(f"counts has shape {counts.shape}")
    if np.any(counts < 1):
        raise CorruptModelFileError("Every class must have at least one sample")
    if means.shape != (n_classes, d):
        raise CorruptModelFileError(
            f"means has shape {means.shape}, expected {(n_classes, d)}"
        )
    if covariances.shape != (n_classes, d, d):
        raise CorruptModelFileError(
            f"covariances has shape {covariances.shape}, expected {(n_classes, d, d)}"
        )
    if not (np.all(np.isfinite(means)) and np.all(np.isfinite(covariances))):
        raise CorruptModelFileError("means and covariances must be finite")
    if not np.allclose(covariances, np.swapaxes(covariances, 1, 2)):
        raise CorruptModelFileError("covariances must be symmetric")

    model = GaussianModel(float(stored_tau) if tau is None else tau)
    for label, count, mean, covariance in zip(classes, counts, means, covariances):
        model.add_class(label.item(), ClassStatistics(int(count), mean, covariance))
    return model


def _open_archive(path):
    """Open `path` as an ``.npz`` archive, without reading any array."""
    data = np.load(path, allow_pickle=False)
    if not isinstance(data, np.lib.npyio.NpzFile):
        raise CorruptModelFileError(f"{path} is not an .npz archive")
    return data


@validate_params(
    {
        "name": [str],
        "tau": [Interval(Real, 0, None, closed="left"), None],
        "n_jobs": [Integral, None],
    },
    prefer_skip_nested_validation=True,
)
def load_model(path, name="", tau=None, n_jobs=None):
    """Read a model saved by :func:`save_model` and finalize it.

    Parameters
    ----------
    path : str or path-like
        Archive to read.

    name : str, default=""
        Record name inside the archive.

    tau : float, default=None
        Regularization floor overriding the stored one.

    n_jobs : int, default=None
        Number of jobs used to rebuild the decision rules.

    Returns
    -------
    model : GaussianModel
        A new finalized model.
    """
    path = os.fspath(path)
    prefix = _prefix(name)
    try:
        with _open_archive(path) as data:
            model = _model_from_record(data, prefix, tau)
    except CorruptModelFileError:
        raise
    except (ValueError, EOFError, zipfile.BadZipFile) as exc:
        raise CorruptModelFileError(f"Cannot read model file {path}: {exc}") from exc
    model.finalize(n_jobs=n_jobs)
    logger.debug("Loaded %d classes from %s (record %r)", model.n_classes, path, name)
    return model


def can_read_file(path, name=""):
    """Whether `path` holds a readable record named `name`.

    Only the record header is inspected.
    """
    try:
        prefix = _prefix(name)
        with _open_archive(os.fspath(path)) as data:
            _check_header(data, prefix)
    except Exception:
        return False
    return True


def can_write_file(path):
    """Whether a model archive can be written at `path`."""
    try:
        path = os.fspath(path)
        directory = os.path.dirname(os.path.abspath(path))
        return (
            not os.path.isdir(path)
            and os.path.isdir(directory)
            and os.access(directory, os.W_OK)
        )
    except (TypeError, ValueError, OSError):
        return False
