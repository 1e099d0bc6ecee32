import numpy as np


class Weighting:
    """
    Weight given to the matrices of one trial and one group.

    Subclasses implement `evaluate(kappa, C)`, returning a non-negative
    scalar for trial `kappa` given the within-group covariance `C`.
    """

    def evaluate(self, kappa, C):
        raise NotImplementedError


class NoWeighting(Weighting):

    def evaluate(self, kappa, C):
        return 1.0


class TrialWeights(Weighting):
    """One fixed weight per trial."""

    def __init__(self, values):
        self.values = np.asarray(values, dtype=float)

    def evaluate(self, kappa, C):
        return float(self.values[kappa])


class FunctionWeighting(Weighting):
    """Weight computed from the within-group covariance, e.g. its trace."""

    def __init__(self, fn):
        self.fn = fn

    def evaluate(self, kappa, C):
        return float(np.real(self.fn(C)))


def as_weighting(w):
    """Wraps `None`, a callable or a sequence of weights into a Weighting."""
    if w is None:
        return NoWeighting()
    if isinstance(w, Weighting):
        return w
    if callable(w):
        return FunctionWeighting(w)
    return TrialWeights(w)


def scm(Xi, Xj):
    """Sample covariance matrix, samples along the rows."""
    return Xi.conj().T @ Xj / Xi.shape[0]


_ESTIMATORS = {"scm": scm}


def _as_samples_by_rows(X, dims, mean_x):
    X = np.asarray(X)
    if X.ndim != 2:
        raise ValueError("Data matrices must be 2D arrays.")
    if dims == 2:
        X = X.T
    elif dims != 1:
        raise ValueError(f"dims must be 1 or 2, got {dims}.")

    if mean_x is None:
        X = X - np.mean(X, axis=0, keepdims=True)
    elif not (np.isscalar(mean_x) and mean_x == 0):
        X = X - np.reshape(np.asarray(mean_x), (1, -1))
    return X


def cross_cov(X, m, k, cov_est="scm", dims=1, mean_x=0):
    """
    Covariance and cross-covariance matrices of m groups in k trials.

    Parameters
    ----------
    X : sequence
        m=1: a sequence of k data matrices.
        k=1: a sequence of m data matrices.
        otherwise: a sequence of k sequences of m data matrices.
    m, k : int
        Number of groups and trials.
    cov_est : str or callable
        "scm" or a function (Xi, Xj) -> cross-covariance, taking data
        matrices with the samples along the rows.
    dims : int
        1 if samples are the rows of each data matrix, 2 if columns.
    mean_x : 0, None or np.ndarray
        0: no centering. None: subtract the sample mean. Array: subtract it.

    Returns
    -------
    C : np.ndarray
        The (k, m, m, n, n) covariance array.
    """
    if callable(cov_est):
        estimator = cov_est
    elif cov_est in _ESTIMATORS:
        estimator = _ESTIMATORS[cov_est]
    else:
        raise ValueError(f"Unknown covariance estimator '{cov_est}'.")

    # Normalize to a k x m nested list of (t, n) matrices
    if m == 1:
        data = [[X[kappa]] for kappa in range(k)]
    elif k == 1:
        data = [[X[i] for i in range(m)]]
    else:
        data = [[X[kappa][i] for i in range(m)] for kappa in range(k)]

    data = [[_as_samples_by_rows(Xi, dims, mean_x) for Xi in trial] for trial in data]

    n = data[0][0].shape[1]
    dtype = np.result_type(*[Xi.dtype for trial in data for Xi in trial], np.float64)
    C = np.empty((k, m, m, n, n), dtype=dtype)

    for kappa in range(k):
        for i in range(m):
            for j in range(i, m):
                C[kappa, i, j] = estimator(data[kappa][i], data[kappa][j])
                if j != i:
                    C[kappa, j, i] = C[kappa, i, j].conj().T
    return C


def as_cov_array(C, m):
    """
    Covariance array as a (k, m, m, n, n) numpy array.

    A (k, n, n) array of covariance matrices is accepted when m=1.
    """
    C = np.asarray(C)
    if not np.iscomplexobj(C):
        C = C.astype(np.float64, copy=False)

    if C.ndim == 3 and m == 1:
        C = C[:, np.newaxis, np.newaxis, :, :]
    if C.ndim != 5:
        raise ValueError("The covariance array must have shape (k, m, m, n, n).")
    if C.shape[-1] != C.shape[-2]:
        raise ValueError("All matrices of the covariance array must be square.")
    return C


def normalize_cov(C, m, k, trace1=False, w=None):
    """
    Trace and/or weight normalization of a covariance array.

    Within-group matrices C[kappa, i, i] are scaled by their own factor,
    cross-covariances C[kappa, i, j] by the geometric mean of the factors
    of groups i and j, so that the Hermitian structure is kept.
    The input is not modified; a normalized copy is returned.
    """
    weighting = as_weighting(w)
    C = C.copy()

    for kappa in range(k):
        if trace1:
            tr = np.array([np.real(np.trace(C[kappa, i, i])) for i in range(m)])
            C[kappa] /= np.sqrt(np.outer(tr, tr))[:, :, np.newaxis, np.newaxis]

        weights = np.array([weighting.evaluate(kappa, C[kappa, i, i]) for i in range(m)])
        if np.any(weights != 1.0):
            C[kappa] *= np.sqrt(np.outer(weights, weights))[:, :, np.newaxis, np.newaxis]
    return C
