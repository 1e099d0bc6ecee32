import warnings
from collections import namedtuple

import numpy as np
from numpy.linalg import eigh

from ambiguity import mean_diagonal, permute, scale_and_permute
from cross_cov import as_cov_array, cross_cov, normalize_cov
from nearest_orth import nearest_orth
from prewhitening import prewhiten, search_sorted_first


class InvalidConfiguration(ValueError):
    """The arguments do not define a valid OJoB problem."""


class ConvergenceWarning(UserWarning):
    """The maximum number of iterations was reached before convergence."""


class DivergenceWarning(RuntimeWarning):
    """The convergence metric became invalid during the iterations."""


# U, V: transforms and their inverses (matrices if m=1, lists if m>1).
# lam: averaged diagonal of the transformed cross-covariances.
OJoBResult = namedtuple("OJoBResult", ["U", "V", "lam", "iterations", "conv", "converged"])


class Workspace:
    """
    Buffers reused across the columns and sweeps of one OJoB run.

    R[eta] accumulates the (n, n) matrix whose power iteration updates
    column eta; Omega holds the k projected vectors of one partner group.
    """

    def __init__(self, n, k, dtype):
        self.R = np.empty((n, n, n), dtype=dtype)
        self.Omega = np.empty((n, k), dtype=dtype)

    def update_R(self, eta, G_ij, u):
        # Omega[:, kappa] = G[kappa, i, j] @ u, then R[eta] += Omega Omega'
        np.einsum("kab,b->ak", G_ij, u, out=self.Omega)
        self.R[eta] += self.Omega @ self.Omega.conj().T


class ConvergenceState:

    def __init__(self, tol, maxiter):
        self.tol = tol
        self.maxiter = maxiter
        self.iteration = 1
        self.conv = 1.0
        self.sweep = 0.0
        self.old_sweep = 0.0
        self.converged = False
        self.diverging = False

    def update(self, sweep):
        """Registers the metric of one sweep. Returns True to stop."""
        self.old_sweep, self.sweep = self.sweep, sweep
        if self.iteration == 1:
            self.conv = 1.0
        else:
            # a zero sweep gives a non-finite conv, flagged below
            with np.errstate(invalid="ignore", divide="ignore"):
                self.conv = abs((self.sweep - self.old_sweep) / self.old_sweep)

        self.diverging = not np.isfinite(self.conv)
        self.converged = 0.0 <= self.conv <= self.tol
        return self.converged or self.diverging or self.iteration >= self.maxiter


def _initial_U(G, m, k, full_model):
    # Eigenvectors of sum_{kappa, j} G[kappa, i, j] G[kappa, i, j]'
    def ggt(i, j):
        return np.mean(G[:, i, j] @ G[:, i, j].conj().transpose(0, 2, 1), axis=0)

    if m == 1:
        return [eigh(ggt(0, 0))[1]]

    U = []
    for i in range(m):
        partners = [j for j in range(m) if full_model or j != i]
        S = np.mean([ggt(i, j) for j in partners], axis=0)
        U.append(eigh((S + S.conj().T) / 2)[1])
    return U


def _check_init(init, m, n):
    U = [init] if m == 1 else list(init)
    if len(U) != m:
        raise InvalidConfiguration(f"init must hold {m} matrices, got {len(U)}.")

    U = [np.array(Ui) for Ui in U]
    for Ui in U:
        if Ui.shape != (n, n):
            raise InvalidConfiguration(f"init matrices must be of shape {(n, n)}, got {Ui.shape}.")
    return U


def ojob(X, m, k, input="c", cov_est="scm", dims=1, mean_x=0, trace1=False, w=None,
         full_model=False, pre_white=False, sort=True, init=None, tol=0.0,
         maxiter=1000, verbose=False, e_var=None, e_var_meth=search_sorted_first):
    """
    Orthogonal Joint Blind source separation (OJoB).

    Finds m matrices U_1, ..., U_m maximizing the sum of the squared
    diagonal elements of U_i' C[kappa, i, j] U_j over all trials kappa and
    all pairs of groups i != j (also i = j if `full_model`), subject to
    U_i being orthogonal. The supported cases are m=1 with k>2 (approximate
    joint diagonalization), m>1 with k=1 and m>1 with k>1.

    If `pre_white`, each group is first whitened, possibly reducing the
    dimension; the solutions are then no longer orthogonal but satisfy
    mean_kappa U_i' C[kappa, i, i] U_i = I (generalized CCA instead of
    generalized MCA).

    Parameters
    ----------
    X : np.ndarray or sequence
        input="c": the (k, m, m, n, n) covariance array (or (k, n, n) if m=1).
        input="d": data matrices, see `cross_cov.cross_cov`.
    m, k : int
        Number of groups and trials.
    input : str
        "c" for covariance matrices, "d" for data matrices.
    cov_est, dims, mean_x : optional
        Covariance estimation options, used only if input="d".
    trace1 : bool
        Normalize the covariance matrices to unit trace.
    w : None, callable, sequence or cross_cov.Weighting
        Weights of the covariance matrices.
    full_model : bool
        Also diagonalize the within-group covariances.
    pre_white : bool
        Pre-whiten each group, see `prewhitening.prewhiten`.
    sort : bool
        Resolve sign and order of the columns of the solutions.
    init : np.ndarray or list of np.ndarray, optional
        Starting matrices (one if m=1, m otherwise).
    tol : float
        Convergence tolerance; 0 means sqrt of the machine epsilon.
    maxiter : int
        Maximum number of sweeps.
    verbose : bool
        Print the convergence at each sweep.
    e_var : None, int or float
        Subspace dimension or explained variance for pre-whitening.
    e_var_meth : callable
        Search function over the accumulated eigenvalues.

    Returns
    -------
    OJoBResult
        U, V, lam, iterations, conv, converged. For m>1 U and V are lists.
    """
    if k < 3 and m < 2:
        raise InvalidConfiguration("Either k must be at least 3 or m must be at least 2.")

    if input == "d":
        C = cross_cov(X, m, k, cov_est=cov_est, dims=dims, mean_x=mean_x)
    elif input == "c":
        C = as_cov_array(X, m)
    else:
        raise InvalidConfiguration(f"input must be 'c' or 'd', got '{input}'.")

    if C.shape[:3] != (k, m, m):
        raise InvalidConfiguration(
            f"The covariance array has shape {C.shape[:3]} in its first three "
            f"dimensions, expected {(k, m, m)}.")

    if trace1 or w is not None:
        C = normalize_cov(C, m, k, trace1=trace1, w=w)

    tolerance = tol if tol > 0 else np.sqrt(np.finfo(np.float64).eps)

    if pre_white:
        W, G = prewhiten(C, m, k, e_var=e_var, e_var_meth=e_var_meth)
    else:
        G = C
    n = G.shape[-1]

    if init is None:
        U = _initial_U(G, m, k, full_model)
    else:
        U = _check_init(init, m, n)

    # A complex init makes the iterations complex even on real input
    complex_valued = np.iscomplexobj(C) or any(np.iscomplexobj(Ui) for Ui in U)
    dtype = np.complex128 if complex_valued else np.float64
    U = [Ui.astype(dtype, copy=False) for Ui in U]

    ws = Workspace(n, k, dtype)
    state = ConvergenceState(tolerance, maxiter)

    if verbose:
        print("Iterating OJoB algorithm...")

    while True:
        sweep = 0.0
        for i in range(m):
            for eta in range(n):
                ws.R[eta].fill(0)
                if m == 1:
                    ws.update_R(eta, G[:, 0, 0], U[0][:, eta])
                else:
                    for j in range(m):
                        if j != i or full_model:
                            ws.update_R(eta, G[:, i, j], U[j][:, eta])
                # Power iteration
                U[i][:, eta] = ws.R[eta] @ U[i][:, eta]

            sweep += np.sum(np.abs(U[i]) ** 2) / n

            # Polar factorization: U_i <- W V' with svd(U_i) = W S V'
            U[i] = nearest_orth(U[i])

        stop = state.update(np.sqrt(sweep / m))

        if verbose:
            print(f"iteration: {state.iteration}; convergence: {state.conv}")
        if stop:
            break
        state.iteration += 1

    if state.diverging:
        warnings.warn(f"OJoB diverged at iteration {state.iteration}.", DivergenceWarning)
    elif not state.converged:
        warnings.warn(
            f"OJoB reached the maximum number of iterations ({maxiter}) "
            f"before convergence (conv={state.conv:.3e}).", ConvergenceWarning)

    if verbose:
        print("Convergence has been attained." if state.converged
              else "Convergence has not been attained.")

    if sort:
        lam = permute(U[0], G[:, 0, 0]) if m == 1 else scale_and_permute(U, G, m)
    else:
        lam = mean_diagonal(U, G, m)

    if pre_white:
        V = [U[i].conj().T @ W[i].iF for i in range(m)]
        U = [W[i].F @ U[i] for i in range(m)]
    else:
        V = [U[i].conj().T for i in range(m)]

    if m == 1:
        return OJoBResult(U[0], V[0], lam, state.iteration, state.conv, state.converged)
    return OJoBResult(U, V, lam, state.iteration, state.conv, state.converged)
