from enum import Enum
import numpy as np
import torch
import torch.nn as nn
from lmm_arrears.exceptions import ConfigurationError


class Measure(Enum):
    SPOT = 'spot'
    TERMINAL = 'terminal'


class StateSpace(Enum):
    NORMAL = 'normal'        # state is L itself
    LOGNORMAL = 'lognormal'  # state is log L


class LIBORMarketModel(nn.Module):
    def __init__(self, tenor_grid, simulation_grid, forward_curve, discount_curve, covariance_model,
                 measure=Measure.SPOT, state_space=StateSpace.NORMAL, device='cpu'):
        """
        LIBOR Market Model L_i(t) = L(t; T_i, T_{i+1}), i = 0 .. n-1, driven by a covariance model.

        Parameters:
        tenor_grid (TimeGrid): Tenure structure T_0 < ... < T_n. Every T_i must be a simulation time.
        simulation_grid (TimeGrid): Euler time discretization, covering T_n.
        forward_curve: Provides forward_rate(t), the initial values L_i(0).
        discount_curve: Provides discount_factor(t).
        covariance_model: CovarianceModel or BlendedLocalVolatilityModel.
        measure (Measure): SPOT or TERMINAL, fixed for the lifetime of the model.
        state_space (StateSpace): NORMAL (additive) or LOGNORMAL (log transform).
        """
        super().__init__()
        self.device = device
        self.dtype = torch.float64
        self.tenor_grid = tenor_grid
        self.simulation_grid = simulation_grid
        self.forward_curve = forward_curve
        self.discount_curve = discount_curve
        self.covariance_model = covariance_model
        self.measure = measure
        self.state_space = state_space

        if state_space is StateSpace.LOGNORMAL and covariance_model.is_blended:
            raise ConfigurationError(
                "A blended local volatility model already scales by the rate; "
                "it must be simulated in the NORMAL state space."
            )

        if tenor_grid.horizon > simulation_grid.horizon + 1e-9:
            raise ConfigurationError(
                f"Simulation horizon {simulation_grid.horizon} ends before the last tenor {tenor_grid.horizon}."
            )
        misaligned = [T for T in tenor_grid.times if not simulation_grid.contains(T)]
        if misaligned:
            raise ConfigurationError(
                f"Tenor times {misaligned} do not land on the simulation grid (step {simulation_grid.step})."
            )

        self.N = len(tenor_grid) - 1
        if covariance_model.N != self.N:
            raise ConfigurationError(
                f"Covariance model has {covariance_model.N} LIBORs, tenure structure has {self.N}."
            )
        self.n_factors = covariance_model.n_factors

        T = tenor_grid.times
        self.register_buffer('T', torch.tensor(T, device=device, dtype=self.dtype))
        self.register_buffer('tau', torch.tensor(np.diff(T), device=device, dtype=self.dtype))
        self.register_buffer('L0', torch.tensor(forward_curve.forward_rate(T[:-1]), device=device, dtype=self.dtype))

        # simulation time index of every tenor date
        self.tenor_time_indices = [simulation_grid.index_of(t) for t in T]

        # number of fixed LIBORs (T_i <= t_j) at every simulation time
        self._first_unfixed = np.searchsorted(T[:-1], simulation_grid.times + 1e-9, side='right')

        ones = torch.ones(self.N, self.N, device=device, dtype=self.dtype)
        self.register_buffer('spot_mask', torch.tril(ones))               # k <= i
        self.register_buffer('terminal_mask', torch.triu(ones, diagonal=1))  # k > i

    def libor_index(self, time):
        """ Index i with T_i == time, or None. """
        return self.tenor_grid.index_of(time)

    def first_unfixed_index(self, time_index):
        """ Smallest i with T_i > t_j; LIBORs below it have fixed and are frozen. """
        return int(self._first_unfixed[time_index])

    def initial_state(self, n_paths):
        return self.rates_to_state(self.L0.expand(n_paths, self.N).clone())

    def rates_to_state(self, rates):
        if self.state_space is StateSpace.LOGNORMAL:
            return torch.log(rates)
        return rates

    def state_to_rates(self, state):
        if self.state_space is StateSpace.LOGNORMAL:
            return torch.exp(state)
        return state

    def _absolute_volatility(self, time_index, rates):
        s = self.covariance_model.instantaneous_volatility(time_index, rates)
        if self.state_space is StateSpace.LOGNORMAL:
            return s, s * rates
        return s, s

    def drift(self, time_index, rates):
        """
        Drift of the state for the step starting at t_j, evaluated on the rates at t_j.

        With absolute loadings a_k and w_k = a_k * tau_k / (1 + tau_k * L_k), over unfixed k:
            SPOT:     mu_i =  a_i * sum_{k=m(t)}^{i}   rho_{ik} w_k
            TERMINAL: mu_i = -a_i * sum_{k=i+1}^{n-1}  rho_{ik} w_k
        In the log-normal state space the drift of log L_i is mu_i / L_i - sigma_i^2 / 2.

        Parameters:
        time_index (int): Simulation time index j.
        rates (torch.Tensor): Shape (n_paths, n_libors).

        Returns:
        torch.Tensor: Shape (n_paths, n_libors), zero for fixed LIBORs.
        """
        m = self.first_unfixed_index(time_index)
        unfixed = torch.zeros(self.N, device=self.device, dtype=self.dtype)
        unfixed[m:] = 1.0

        s, a = self._absolute_volatility(time_index, rates)
        correlation = self.covariance_model.correlation

        w = unfixed * a * self.tau / (1.0 + self.tau * rates)

        if self.measure is Measure.SPOT:
            drift = a * torch.matmul(w, (correlation * self.spot_mask).T)
        elif self.measure is Measure.TERMINAL:
            drift = -a * torch.matmul(w, (correlation * self.terminal_mask).T)
        else:
            raise ValueError(f"Unknown measure: {self.measure}")

        if self.state_space is StateSpace.LOGNORMAL:
            drift = drift / rates - 0.5 * s**2

        return drift * unfixed

    def diffusion(self, time_index, rates, brownian_increment):
        """ sum_f a_i B_{if} dW_f, shape (n_paths, n_libors); zero for fixed LIBORs (zero volatility). """
        s = self.covariance_model.instantaneous_volatility(time_index, rates)
        return s * torch.matmul(brownian_increment, self.covariance_model.loadings.T)

    def singular_paths(self, time_index, rates, tolerance=0.0, start=None):
        """
        Paths on which some 1 + tau_i * L_i <= tolerance (drift singularity), over i >= start.
        By default start is the first LIBOR still unfixed at t_j.
        """
        m = self.first_unfixed_index(time_index) if start is None else start
        denominator = 1.0 + self.tau[m:] * rates[:, m:]
        return torch.any(~(denominator > tolerance), dim=1)

    def integrated_libor_covariance(self):
        return self.covariance_model.integrated_covariance()
