from collections import namedtuple

import numpy as np
from numpy.linalg import eigh, LinAlgError

DEFAULT_EVAR = 0.999

# F: (n, p) whitening matrix, iF: (p, n) its left-inverse,
# eigvals: the p retained eigenvalues (descending),
# arev: accumulated regularized eigenvalues of the full spectrum.
Whitening = namedtuple("Whitening", ["F", "iF", "eigvals", "arev"])


def search_sorted_first(arev, e_var):
    """Smallest p such that arev[p-1] >= e_var."""
    return int(np.searchsorted(arev, e_var, side="left")) + 1


def search_sorted_last(arev, e_var):
    """Largest p such that arev[p-1] <= e_var."""
    return int(np.searchsorted(arev, e_var, side="right"))


def subspace_dim(e_var, eigvals, n, e_var_meth=search_sorted_first):
    """
    Dimension p of the subspace to retain.

    Parameters
    ----------
    e_var : None, int or float
        Integer: p itself (clamped to n if outside [1, n]).
        Float in (0, 1]: explained variance to retain.
        None: the default explained variance (0.999).
    eigvals : np.ndarray
        Eigenvalues of the covariance matrix, any order.
    n : int
        Dimension of the covariance matrix.
    e_var_meth : callable
        Function (arev, e_var) -> p searching the accumulated
        regularized eigenvalues.

    Returns
    -------
    p : int
    arev : np.ndarray
        Eigenvalues in descending order, normalized to unit sum and
        accumulated.
    """
    ev = np.sort(np.real(eigvals))[::-1]
    arev = np.cumsum(ev / np.sum(ev))

    if isinstance(e_var, (int, np.integer)) and not isinstance(e_var, bool):
        p = int(e_var) if 1 <= e_var <= n else n
    else:
        if e_var is None:
            e_var = DEFAULT_EVAR
        p = e_var_meth(arev, e_var)

    return min(max(p, 1), n), arev


def whitening(C, e_var=None, e_var_meth=search_sorted_first):
    """
    Whitening of a Hermitian positive definite matrix C.

    Keeps the p eigenvectors with the largest eigenvalues and scales them
    by the inverse square root of their eigenvalues, so that
    F' * C * F = I_p. iF is the left-inverse of F: iF * F = I_p.
    """
    C = np.asarray(C)
    n = C.shape[0]
    C = (C + C.conj().T) / 2

    d, E = eigh(C)
    p, arev = subspace_dim(e_var, d, n, e_var_meth)

    # Sort in descending order and keep the top p
    idx = np.argsort(d)[::-1][:p]
    d = d[idx]
    E = E[:, idx]

    if np.any(d <= 0):
        raise LinAlgError("Cannot whiten: the retained eigenvalues must be positive.")

    sqrt_d = np.sqrt(d)
    F = E / sqrt_d
    iF = sqrt_d[:, np.newaxis] * E.conj().T
    return Whitening(F, iF, d, arev)


def prewhiten(C, m, k, e_var=None, e_var_meth=search_sorted_first):
    """
    Whitening of every group and the whitened covariance array.

    Each group is whitened with respect to its trial-averaged covariance
    mean_kappa C[kappa, i, i]. If e_var is not an integer, the subspace
    dimension p is chosen once on the average over trials and groups and
    the same p is used for every group.

    Parameters
    ----------
    C : np.ndarray
        The (k, m, m, n, n) covariance array.

    Returns
    -------
    W : list of Whitening
        One whitening per group.
    G : np.ndarray
        The (k, m, m, p, p) array G[kappa, i, j] = F_i' C[kappa, i, j] F_j.
    """
    n = C.shape[-1]
    within = np.stack([C[:, i, i] for i in range(m)], axis=1)  # (k, m, n, n)

    if isinstance(e_var, (int, np.integer)) and not isinstance(e_var, bool):
        p = e_var
    else:
        C_avg = np.mean(within, axis=(0, 1))
        C_avg = (C_avg + C_avg.conj().T) / 2
        p, _ = subspace_dim(e_var, np.linalg.eigvalsh(C_avg), n, e_var_meth)

    W = [whitening(np.mean(within[:, i], axis=0), e_var=p) for i in range(m)]

    p = W[0].F.shape[1]
    G = np.empty((k, m, m, p, p), dtype=np.result_type(C.dtype, W[0].F.dtype))
    for kappa in range(k):
        for i in range(m):
            for j in range(i, m):
                G[kappa, i, j] = W[i].F.conj().T @ C[kappa, i, j] @ W[j].F
                if j != i:
                    G[kappa, j, i] = G[kappa, i, j].conj().T
    return W, G
