from dataclasses import dataclass, replace
from typing import Optional
import numpy as np
from lmm_arrears.exceptions import ConfigurationError
from lmm_arrears.lmm_model import Measure
from lmm_arrears.volatility import Dynamics, NORMAL_VOLATILITY_SCALING


@dataclass(frozen=True)
class LMMConfig:
    """
    Validated configuration of one LMM Monte Carlo run.

    Attributes:
    n_paths: Number of simulated paths.
    simulation_time_step: Euler step of the simulation grid.
    libor_period_length: T_i - T_{i-1}, constant over the tenure structure.
    libor_rate_time_horizon: Final tenor T_n (also the end of the simulation grid).
    fixing_times, forwards: Given initial forwards, the others are interpolated.
    correlation_decay: alpha in rho_{ik} = exp(-alpha |T_i - T_k|).
    a, b, c, d: Volatility shape parameters.
    dynamics, measure: NORMAL/LOGNORMAL and SPOT/TERMINAL.
    seed: Seed of the Gaussian driver.
    """
    n_paths: int
    simulation_time_step: float
    libor_period_length: float
    libor_rate_time_horizon: float
    fixing_times: tuple
    forwards: tuple
    correlation_decay: float
    a: float
    b: float
    c: float
    d: float
    dynamics: Dynamics = Dynamics.LOGNORMAL
    measure: Measure = Measure.SPOT
    seed: int = 1897
    n_factors: Optional[int] = None
    normal_volatility_scaling: float = NORMAL_VOLATILITY_SCALING
    batch_size: int = 4096
    max_workers: Optional[int] = None
    instability_tolerance: float = 1e-10
    max_bad_path_fraction: float = 0.01

    def __post_init__(self):
        object.__setattr__(self, 'fixing_times', tuple(float(t) for t in self.fixing_times))
        object.__setattr__(self, 'forwards', tuple(float(f) for f in self.forwards))
        object.__setattr__(self, 'dynamics', Dynamics(self.dynamics))
        object.__setattr__(self, 'measure', Measure(self.measure))

        if self.n_paths < 1:
            raise ConfigurationError(f"Number of paths must be positive, got {self.n_paths}.")
        if self.batch_size < 1:
            raise ConfigurationError(f"Batch size must be positive, got {self.batch_size}.")
        for name in ('simulation_time_step', 'libor_period_length', 'libor_rate_time_horizon', 'correlation_decay'):
            if not getattr(self, name) > 0.0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}.")
        if self.libor_period_length > self.libor_rate_time_horizon:
            raise ConfigurationError("LIBOR period length exceeds the time horizon.")

        if len(self.fixing_times) == 0 or len(self.fixing_times) != len(self.forwards):
            raise ConfigurationError(
                f"Got {len(self.fixing_times)} fixing times but {len(self.forwards)} forwards."
            )
        if np.any(np.diff(self.fixing_times) <= 0.0):
            raise ConfigurationError("Fixing times of the given forwards must be strictly increasing.")

        if self.n_factors is not None and self.n_factors < 1:
            raise ConfigurationError(f"Number of factors must be positive, got {self.n_factors}.")
        if self.normal_volatility_scaling <= 0.0:
            raise ConfigurationError("Normal volatility scaling must be positive.")
        if not 0.0 <= self.max_bad_path_fraction <= 1.0:
            raise ConfigurationError("max_bad_path_fraction must lie in [0, 1].")

    def with_measure(self, measure):
        return replace(self, measure=measure)

    @classmethod
    def from_module(cls, module, **overrides):
        """ Reads the upper-case run constants of a config module (see config.py). """
        params = {
            'n_paths': module.N_PATHS,
            'simulation_time_step': module.SIMULATION_TIME_STEP,
            'libor_period_length': module.LIBOR_PERIOD_LENGTH,
            'libor_rate_time_horizon': module.LIBOR_RATE_TIME_HORIZON,
            'fixing_times': module.FIXING_FOR_GIVEN_FORWARDS,
            'forwards': module.FORWARDS_FOR_CURVE,
            'correlation_decay': module.CORRELATION_DECAY,
            'a': module.VOL_A, 'b': module.VOL_B, 'c': module.VOL_C, 'd': module.VOL_D,
            'dynamics': module.DYNAMICS,
            'measure': module.MEASURE,
            'seed': module.SEED,
            'n_factors': module.N_FACTORS,
            'normal_volatility_scaling': module.NORMAL_VOL_SCALING,
            'batch_size': module.BATCH_SIZE,
            'max_workers': module.MAX_WORKERS,
            'max_bad_path_fraction': module.MAX_BAD_PATH_FRACTION,
        }
        params.update(overrides)
        return cls(**params)
