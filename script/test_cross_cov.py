import warnings

import numpy as np
import pytest
from cross_cov import (cross_cov, normalize_cov, as_cov_array, as_weighting,
                       NoWeighting, TrialWeights, FunctionWeighting)
from dataset_gen import gen_data_matrix

def test_cross_cov_shapes_and_symmetry():
    """
    k trials of m groups give a (k, m, m, n, n) array with
    C[kappa, j, i] = C[kappa, i, j]'.
    """
    n, t, m, k = 4, 30, 3, 5
    rng = np.random.default_rng(0)
    X = [[gen_data_matrix(n, t, rng=rng) for _ in range(m)] for _ in range(k)]

    C = cross_cov(X, m, k, dims=2)
    assert C.shape == (k, m, m, n, n)

    for kappa in range(k):
        for i in range(m):
            for j in range(m):
                assert np.allclose(C[kappa, j, i], C[kappa, i, j].T)
        # Covariance of group 0 is X X' / t
        Xi = X[kappa][0]
        assert np.allclose(C[kappa, 0, 0], Xi @ Xi.T / t)

def test_cross_cov_single_group_and_single_trial():
    rng = np.random.default_rng(1)
    X = [gen_data_matrix(3, 20, rng=rng) for _ in range(4)]

    C1 = cross_cov(X, 1, 4, dims=2)
    assert C1.shape == (4, 1, 1, 3, 3)

    C2 = cross_cov(X, 4, 1, dims=2)
    assert C2.shape == (1, 4, 4, 3, 3)
    assert np.allclose(C2[0, 1, 2], X[1] @ X[2].T / 20)

def test_cross_cov_complex_hermitian():
    rng = np.random.default_rng(2)
    X = [[gen_data_matrix(3, 40, complex_valued=True, rng=rng) for _ in range(2)]
         for _ in range(3)]

    C = cross_cov(X, 2, 3, dims=2)
    assert np.iscomplexobj(C)
    assert np.allclose(C[0, 0, 0], C[0, 0, 0].conj().T)
    assert np.allclose(C[1, 1, 0], C[1, 0, 1].conj().T)

def test_cross_cov_centering():
    """
    mean_x=None subtracts the sample mean: the result matches np.cov
    with the biased normalization.
    """
    rng = np.random.default_rng(3)
    X = [rng.standard_normal((50, 4)) + 3.0 for _ in range(3)]

    C = cross_cov(X, 1, 3, mean_x=None)
    assert np.allclose(C[0, 0, 0], np.cov(X[0], rowvar=False, bias=True))

def test_cross_cov_custom_estimator():
    rng = np.random.default_rng(4)
    X = [rng.standard_normal((10, 3)) for _ in range(3)]

    C = cross_cov(X, 1, 3, cov_est=lambda Xi, Xj: 2.0 * Xi.T @ Xj)
    assert np.allclose(C[2, 0, 0], 2.0 * X[2].T @ X[2])

    with pytest.raises(ValueError):
        cross_cov(X, 1, 3, cov_est="unknown")

def test_as_cov_array_lifts_single_group():
    C = as_cov_array(np.stack([np.eye(3)] * 4), 1)
    assert C.shape == (4, 1, 1, 3, 3)
    assert C.dtype == np.float64

    with pytest.raises(ValueError):
        as_cov_array(np.zeros((2, 3, 4)), 2)

def test_normalize_trace():
    rng = np.random.default_rng(5)
    X = [[rng.standard_normal((40, 3)) * (i + 1) for i in range(2)] for _ in range(3)]
    C = cross_cov(X, 2, 3)

    Cn = normalize_cov(C, 2, 3, trace1=True)
    for kappa in range(3):
        for i in range(2):
            assert np.isclose(np.trace(Cn[kappa, i, i]), 1.0)
        tr0 = np.trace(C[kappa, 0, 0])
        tr1 = np.trace(C[kappa, 1, 1])
        assert np.allclose(Cn[kappa, 0, 1], C[kappa, 0, 1] / np.sqrt(tr0 * tr1))

    # the input is left untouched
    assert not np.isclose(np.trace(C[0, 1, 1]), 1.0)

def test_normalize_weights():
    C = np.stack([np.eye(2)[np.newaxis, np.newaxis] * np.ones((2, 2, 1, 1))] * 3)
    Cn = normalize_cov(C, 2, 3, w=[1.0, 4.0, 9.0])
    assert np.allclose(Cn[1, 0, 1], 4.0 * np.eye(2))
    assert np.allclose(Cn[2, 1, 1], 9.0 * np.eye(2))

    Cf = normalize_cov(C, 2, 3, w=lambda S: 2.0 * np.trace(S))
    assert np.allclose(Cf[0, 0, 0], 4.0 * np.eye(2))

def test_weighting_strategies():
    assert isinstance(as_weighting(None), NoWeighting)
    assert isinstance(as_weighting([1, 2]), TrialWeights)
    assert isinstance(as_weighting(np.trace), FunctionWeighting)
    assert as_weighting([1.0, 2.0]).evaluate(1, np.eye(2)) == 2.0
    assert NoWeighting().evaluate(0, np.eye(2)) == 1.0

def test_function_weighting_complex():
    """
    A weight such as the trace of a complex Hermitian covariance is real:
    no imaginary part is cast away.
    """
    rng = np.random.default_rng(6)
    X = [[gen_data_matrix(3, 30, complex_valued=True, rng=rng) for _ in range(2)]
         for _ in range(3)]
    C = cross_cov(X, 2, 3, dims=2)

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        Cw = normalize_cov(C, 2, 3, w=np.trace)

    tr = np.real(np.trace(C[1, 0, 0]))
    assert np.allclose(Cw[1, 0, 0], tr * C[1, 0, 0])
    assert np.allclose(Cw[1, 1, 0], Cw[1, 0, 1].conj().T)

if __name__ == "__main__":
    test_cross_cov_shapes_and_symmetry()
    test_cross_cov_single_group_and_single_trial()
    test_cross_cov_complex_hermitian()
    test_cross_cov_centering()
    test_cross_cov_custom_estimator()
    test_as_cov_array_lifts_single_group()
    test_normalize_trace()
    test_normalize_weights()
    test_weighting_strategies()
    test_function_weighting_complex()
