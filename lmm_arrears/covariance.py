import torch
import torch.nn as nn
from lmm_arrears.correlation import factor_loadings


class CovarianceModel(nn.Module):
    is_blended = False

    def __init__(self, simulation_grid, tenor_grid, volatility, correlation, n_factors=None, device='cpu'):
        """
        LIBOR covariance from a volatility matrix and a correlation matrix.

        The factor loading of LIBOR i at simulation step j is sigma_i(t_j) * B_i, where
        B @ B.T is the (possibly factor-reduced) correlation.

        Parameters:
        simulation_grid (TimeGrid): Simulation times.
        tenor_grid (TimeGrid): Tenure structure.
        volatility (numpy.ndarray): Shape (n_steps, n_libors), see build_volatility_structure.
        correlation (numpy.ndarray): Shape (n_libors, n_libors).
        n_factors (int): Number of Brownian drivers, None for full rank.
        """
        super().__init__()
        self.device = device
        self.dtype = torch.float64
        self.simulation_grid = simulation_grid
        self.tenor_grid = tenor_grid

        loadings = factor_loadings(correlation, n_factors)
        self.N, self.n_factors = loadings.shape

        self.register_buffer('volatility', torch.tensor(volatility, device=device, dtype=self.dtype))
        self.register_buffer('loadings', torch.tensor(loadings, device=device, dtype=self.dtype))
        self.register_buffer('correlation', self.loadings @ self.loadings.T)

    def instantaneous_volatility(self, time_index, realization=None):
        """ sigma_i(t_j) for every LIBOR; the realization is ignored (deterministic volatility). """
        return self.volatility[time_index]

    def factor_loading(self, time_index, realization=None):
        """ Shape (..., n_libors, n_factors). """
        return self.instantaneous_volatility(time_index, realization).unsqueeze(-1) * self.loadings

    def covariance(self, time_index, realization=None):
        s = self.instantaneous_volatility(time_index, realization)
        return s.unsqueeze(-1) * self.correlation * s.unsqueeze(-2)

    def integrated_covariance(self):
        """
        Integrated LIBOR covariance C(t_m)_{ik} = sum_{j<m} sigma_i(t_j) sigma_k(t_j) rho_{ik} dt.

        Returns:
        torch.Tensor: Shape (n_simulation_times, n_libors, n_libors), C(t_0) = 0.
        """
        s = self.volatility
        dt = torch.tensor(self.simulation_grid.step, device=self.device, dtype=self.dtype)
        step_cov = s.unsqueeze(-1) * self.correlation.unsqueeze(0) * s.unsqueeze(-2) * dt
        zero = torch.zeros(1, self.N, self.N, device=self.device, dtype=self.dtype)
        return torch.cat([zero, torch.cumsum(step_cov, dim=0)], dim=0)


class BlendedLocalVolatilityModel(nn.Module):
    is_blended = True

    def __init__(self, covariance_model, initial_forwards, blend):
        """
        Local volatility blend on top of a covariance model:

            factor loading = (blend * L_0 + (1 - blend) * L_t) * F

        blend = 0 gives log-normal dynamics (volatility proportional to the rate),
        blend = 1 gives normal dynamics scaled by the initial forward. The scaling by
        the rate happens here, so the model must be simulated in the additive (NORMAL)
        state space; a log-normal state space would multiply by L twice.

        Parameters:
        covariance_model (CovarianceModel): Base model F.
        initial_forwards (array-like): L_0 for every LIBOR.
        blend (float): Displacement parameter in [0, 1].
        """
        super().__init__()
        self.base = covariance_model
        self.device = covariance_model.device
        self.dtype = covariance_model.dtype
        self.simulation_grid = covariance_model.simulation_grid
        self.tenor_grid = covariance_model.tenor_grid
        self.N = covariance_model.N
        self.n_factors = covariance_model.n_factors
        self.blend = float(blend)

        self.register_buffer('initial_forwards', torch.as_tensor(initial_forwards, device=self.device, dtype=self.dtype))

    @property
    def correlation(self):
        return self.base.correlation

    @property
    def loadings(self):
        return self.base.loadings

    def local_volatility_factor(self, realization):
        return self.blend * self.initial_forwards + (1.0 - self.blend) * realization

    def instantaneous_volatility(self, time_index, realization=None):
        sigma = self.base.instantaneous_volatility(time_index)
        if realization is None:
            return sigma
        return sigma * self.local_volatility_factor(realization)

    def factor_loading(self, time_index, realization=None):
        return self.instantaneous_volatility(time_index, realization).unsqueeze(-1) * self.loadings

    def covariance(self, time_index, realization=None):
        s = self.instantaneous_volatility(time_index, realization)
        return s.unsqueeze(-1) * self.correlation * s.unsqueeze(-2)

    def integrated_covariance(self):
        """ Integrated covariance of the base model, i.e. in relative (log-normal) units. """
        return self.base.integrated_covariance()
