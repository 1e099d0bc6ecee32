import numpy as np


def _mean_diag(Ui, Cij, Uj):
    """
    Diagonal of Ui' * C[kappa] * Uj averaged over the trials.

    Cij has shape (k, n, n); the result has shape (n,).
    """
    # diag(Ui' C Uj)[eta] = sum_ab conj(Ui[a, eta]) C[a, b] Uj[b, eta]
    return np.mean(np.einsum("ae,kab,be->ke", Ui.conj(), Cij, Uj), axis=0)


def _swap_columns(U, a, b):
    U[:, [a, b]] = U[:, [b, a]]


def mean_diagonal(U, C, m):
    """
    Averaged diagonals of the transformed covariance array, unsorted.

    For m=1 the average is over the trials of diag(U' C[kappa] U);
    for m>1 over the trials and all ordered pairs i != j of
    diag(U_i' C[kappa, i, j] U_j). Returns a real (n,) array.
    """
    if m == 1:
        return np.real(_mean_diag(U[0], C[:, 0, 0], U[0]))

    D = [_mean_diag(U[i], C[:, i, j], U[j]) for i in range(m) for j in range(m) if i != j]
    return np.real(np.mean(D, axis=0))


def permute(U, C):
    """
    Resolves the column order of a single joint diagonalizer.

    Columns of U are reordered in place so that the trial-averaged
    diagonal of U' C[kappa] U comes out in descending order of absolute
    value. Signs are left untouched.

    Parameters
    ----------
    U : np.ndarray
        The (n, n) diagonalizer, modified in place.
    C : np.ndarray
        The (k, n, n) covariance matrices.

    Returns
    -------
    lam : np.ndarray
        The (n,) averaged diagonal, sorted.
    """
    n = U.shape[1]
    D = np.real(_mean_diag(U, C, U))

    for e in range(n):
        # Position of the absolute maximum among the remaining columns
        p, max_abs = e, 0.0
        for eta in range(e, n):
            if abs(D[eta]) > max_abs:
                max_abs = abs(D[eta])
                p = eta

        if p != e:
            _swap_columns(U, p, e)
            D[[p, e]] = D[[e, p]]

    return D


def scale_and_permute(U, C, m):
    """
    Resolves sign and column order of m joint diagonalizers.

    For every output position e, the largest |D_ij[eta]| over all pairs
    i < j and remaining columns eta >= e is found, where D_ij is the
    trial-averaged diagonal of U_i' C[kappa, i, j] U_j. Ties go to the
    first maximum met scanning i, then j, then eta in ascending order.
    Column eta of U_j is flipped if that element is negative, then
    column eta of every other group x is flipped if D_ix[eta] is
    negative. Finally column eta is moved to position e in all groups.

    Parameters
    ----------
    U : list of np.ndarray
        The m (n, n) diagonalizers, modified in place.
    C : np.ndarray
        The (k, m, m, n, n) covariance array.
    m : int
        Number of groups.

    Returns
    -------
    lam : np.ndarray
        The (n,) diagonal averaged over all ordered pairs i != j.
    """
    n = U[0].shape[1]

    def diagonals():
        return [[_mean_diag(U[i], C[:, i, j], U[j]) for j in range(m)] for i in range(m)]

    D = diagonals()

    for e in range(n):
        p, max_abs = (0, 1, e), 0.0
        for i in range(m - 1):
            for j in range(i + 1, m):
                for eta in range(e, n):
                    if abs(D[i][j][eta]) > max_abs:
                        max_abs = abs(D[i][j][eta])
                        p = (i, j, eta)

        i, j, eta = p
        if np.real(D[i][j][eta]) < 0:
            U[j][:, eta] *= -1

        for x in range(m):
            if x != j and np.real(D[i][x][eta]) < 0:
                U[x][:, eta] *= -1

        if eta != e:
            for Ux in U:
                _swap_columns(Ux, eta, e)

        D = diagonals()

    lam = np.mean([D[i][j] for i in range(m) for j in range(m) if i != j], axis=0)
    return np.real(lam)
