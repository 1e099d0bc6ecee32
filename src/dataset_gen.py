import numpy as np

def _randn(rng, shape, complex_valued):
    if complex_valued:
        return (rng.standard_normal(shape) + 1j * rng.standard_normal(shape)) / np.sqrt(2)
    return rng.standard_normal(shape)

def gen_data_matrix(n, t, complex_valued=False, rng=None):
    """
    Random (n x t) data matrix: n variables, t samples.
    """
    rng = np.random.default_rng(rng)
    return _randn(rng, (n, t), complex_valued)

def random_orth(n, complex_valued=False, rng=None):
    """
    Random (n x n) orthogonal (unitary if complex) matrix.

    We take the 'Q' from a QR decomposition of a random matrix.
    """
    rng = np.random.default_rng(rng)
    Q, _ = np.linalg.qr(_randn(rng, (n, n), complex_valued))
    return Q

def gen_joint_cov(n, m, k, complex_valued=False, rng=None):
    """
    Generates a covariance array with an exact joint diagonal structure.

    This follows the model:
    1. Each group i gets a random orthogonal mixing matrix A_i.
    2. Each trial kappa gets positive diagonal source powers D_kappa.
    3. C[kappa, i, j] = A_i * D_kappa * A_j' .

    Parameters
    ----------
    n : int
        Dimension of every group.
    m : int
        Number of groups.
    k : int
        Number of trials.

    Returns
    -------
    C : np.ndarray
        The (k, m, m, n, n) covariance array.
    A : list of np.ndarray
        The m true (n x n) mixing matrices.
    D : np.ndarray
        The (k, n) source powers.
    """
    rng = np.random.default_rng(rng)

    A = [random_orth(n, complex_valued, rng) for _ in range(m)]
    D = rng.uniform(0.5, 5.0, size=(k, n))

    dtype = complex if complex_valued else float
    C = np.empty((k, m, m, n, n), dtype=dtype)
    for kappa in range(k):
        for i in range(m):
            for j in range(m):
                C[kappa, i, j] = (A[i] * D[kappa]) @ A[j].conj().T

    return C, A, D
