import numpy as np
import scipy.linalg as la
from lmm_arrears.exceptions import ConfigurationError


def build_exponential_decay_correlation(decay, tenor_grid):
    """
    Time-homogeneous correlation of the LIBORs L_0 .. L_{n-1}:
        rho_{i,k} = exp(-decay * |T_i - T_k|)

    Returns:
    numpy.ndarray: Read-only symmetric matrix of shape (n_libors, n_libors) with unit diagonal.
    """
    if decay < 0.0:
        raise ConfigurationError(f"Correlation decay must be non-negative, got {decay}.")

    T = tenor_grid.times[:-1]
    correlation = np.exp(-decay * np.abs(T[:, None] - T[None, :]))
    np.fill_diagonal(correlation, 1.0)

    correlation.setflags(write=False)
    return correlation


def factor_loadings(correlation, n_factors=None):
    """
    Factor loadings B with B @ B.T = correlation (exact for full rank).

    With n_factors < n the leading principal components are kept and each row is
    re-normalised so that the reduced matrix still has a unit diagonal.
    """
    n = correlation.shape[0]
    n_factors = n if n_factors is None else int(n_factors)
    if not 1 <= n_factors <= n:
        raise ConfigurationError(f"Number of factors must be in [1, {n}], got {n_factors}.")

    # Eigen decomposition (eigh is optimized for symmetric matrices), largest first
    eigenvalues, eigenvectors = la.eigh(correlation)
    idx = np.argsort(eigenvalues)[::-1][:n_factors]

    # Tiny negative eigenvalues are floating point noise
    loadings = eigenvectors[:, idx] * np.sqrt(np.maximum(eigenvalues[idx], 0.0))[None, :]
    loadings = loadings / np.sqrt(np.sum(loadings**2, axis=1, keepdims=True))

    loadings.setflags(write=False)
    return loadings
