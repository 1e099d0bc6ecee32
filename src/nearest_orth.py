import numpy as np
from numpy.linalg import svd

def nearest_orth(A):
    """
    Nearest orthogonal (unitary if complex) matrix to A.

    Polar factorization through the SVD: if A = W * S * V', the closest
    orthogonal matrix in the Frobenius sense is W * V'. The singular
    values are simply discarded.

    Parameters
    ----------
    A : np.ndarray
        A (n, p) real or complex matrix, n >= p.

    Returns
    -------
    Q : np.ndarray
        The (n, p) matrix with orthonormal columns closest to A.
    """
    if A.ndim != 2:
        raise ValueError("Input A must be a 2D array.")

    W, _, Vh = svd(A, full_matrices=False)
    return W @ Vh
