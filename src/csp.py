from collections import namedtuple

import numpy as np
from numpy.linalg import eigh

from prewhitening import whitening

CSPResult = namedtuple("CSPResult", ["F", "iF", "eigvals", "arev"])


def csp(C1, C2, e_var=None):
    """
    Common spatial pattern: simultaneous diagonalization of two matrices.

    C1 + C2 is whitened, then the whitened C1 is diagonalized by its
    eigenvectors. The resulting F satisfies
        F' (C1 + C2) F = I,
        F' C1 F = diag(eigvals),
        F' C2 F = I - diag(eigvals).

    Parameters
    ----------
    C1, C2 : np.ndarray
        (n, n) symmetric (Hermitian) positive definite matrices.
    e_var : None, int or float
        Subspace dimension or explained variance of C1 + C2 to retain.
        None keeps the full dimension.

    Returns
    -------
    CSPResult
        F (n, p), its left-inverse iF (p, n), the eigenvalues in
        descending order and the accumulated regularized eigenvalues
        of C1 + C2.
    """
    C1 = np.asarray(C1)
    C2 = np.asarray(C2)
    if C1.shape != C2.shape or C1.shape[0] != C1.shape[1]:
        raise ValueError("C1 and C2 must be square matrices of the same shape.")

    if e_var is None:
        e_var = C1.shape[0]
    W = whitening(C1 + C2, e_var=e_var)

    S = W.F.conj().T @ C1 @ W.F
    d, U = eigh((S + S.conj().T) / 2)

    idx = np.argsort(d)[::-1]
    d = d[idx]
    U = U[:, idx]

    return CSPResult(W.F @ U, U.conj().T @ W.iF, d, W.arev)
