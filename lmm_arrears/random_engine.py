import warnings
import numpy as np
import torch
from scipy.stats import qmc, norm


class GaussianDriver:
    """ Narrow interface for the source of independent standard normal draws. """

    def generate(self, n_paths, n_steps, n_factors):
        raise NotImplementedError


class PseudoRandomDriver(GaussianDriver):
    def __init__(self, seed, device='cpu'):
        """
        Mersenne-Twister backed torch generator. Same seed and same shape give
        bit-identical draws.
        """
        self.seed = int(seed)
        self.device = device

    def generate(self, n_paths, n_steps, n_factors):
        generator = torch.Generator(device='cpu').manual_seed(self.seed)
        z = torch.randn(n_paths, n_steps, n_factors, generator=generator, dtype=torch.float64)
        return z.to(self.device)


class SobolDriver(GaussianDriver):
    def __init__(self, seed=None, antithetic=True, device='cpu'):
        """
        Scrambled Sobol points mapped through the inverse normal, optionally mirrored.

        Parameters:
        seed (int): Scrambling seed.
        antithetic (bool): If True, half of the paths are the negated other half.
        """
        self.seed = seed
        self.antithetic = antithetic
        self.device = device

    def generate(self, n_paths, n_steps, n_factors):
        dimensions = n_steps * n_factors
        n_base = (n_paths + 1) // 2 if self.antithetic else n_paths

        # Sobol sequences are mathematically optimized for powers of 2
        if not (n_base != 0 and ((n_base & (n_base - 1)) == 0)):
            warnings.warn("For optimal QMC properties, the number of base Sobol points should be a power of 2 "
                          f"(got {n_base}).")

        sampler = qmc.Sobol(d=dimensions, scramble=True, seed=self.seed)
        m = int(np.log2(n_base)) if n_base > 0 else 0
        if 2**m == n_base:
            uniform_points = sampler.random_base2(m=m)
        else:
            uniform_points = sampler.random(n=n_base)

        # exact 0 or 1 would map to infinity
        uniform_points = np.clip(uniform_points, 1e-10, 1.0 - 1e-10)
        shocks = norm.ppf(uniform_points)

        if self.antithetic:
            shocks = np.vstack((shocks, -shocks))[:n_paths]

        z = torch.tensor(shocks, dtype=torch.float64).view(n_paths, n_steps, n_factors)
        return z.to(self.device)


class BrownianMotion:
    def __init__(self, time_grid, n_factors, n_paths, driver):
        """
        Brownian increments dW on a uniform time grid.

        Parameters:
        time_grid (TimeGrid): Simulation times.
        n_factors (int): Number of independent Brownian drivers.
        n_paths (int): Number of paths.
        driver (GaussianDriver): Source of standard normals.
        """
        self.time_grid = time_grid
        self.n_factors = n_factors
        self.n_paths = n_paths
        self.driver = driver

    def increments(self):
        """ Shape (n_paths, n_steps, n_factors), already scaled by sqrt(dt). """
        z = self.driver.generate(self.n_paths, self.time_grid.n_steps, self.n_factors)
        return z * np.sqrt(self.time_grid.step)
