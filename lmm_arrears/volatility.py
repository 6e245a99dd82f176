from enum import Enum
import numpy as np

# Converts the relative (log-normal) level of the parametric volatility into an
# absolute one at a plausible rate level. Overridable through LMMConfig.
NORMAL_VOLATILITY_SCALING = 0.05


class Dynamics(Enum):
    NORMAL = 'normal'
    LOGNORMAL = 'lognormal'


def build_volatility_structure(a, b, c, d, simulation_grid, tenor_grid, dynamics,
                               normal_scaling=NORMAL_VOLATILITY_SCALING):
    """
    Rebonato-type instantaneous volatility matrix.

        sigma_i(t_j) = d + (a + b * (T_i - t_j)) * exp(-c * (T_i - t_j))   for t_j < T_i
        sigma_i(t_j) = 0                                                   otherwise (already fixed)

    b, c > 0 is the usual convention but is left to the caller.

    Parameters:
    a, b, c, d (float): Shape parameters.
    simulation_grid (TimeGrid): Times t_j at which the processes evolve.
    tenor_grid (TimeGrid): Tenure structure T_0 < T_1 < ... < T_n.
    dynamics (Dynamics): NORMAL rescales the result by `normal_scaling`.

    Returns:
    numpy.ndarray: Read-only matrix of shape (n_simulation_steps, n_libors), volatility[j, i] = sigma_i(t_j).
    """
    t = simulation_grid.times[:-1][:, None]
    T = tenor_grid.times[:-1][None, :]
    time_to_maturity = T - t

    alive = time_to_maturity > 0.0
    # evaluate only on live entries, exp(-c * ttm) would overflow for large negative ttm
    ttm = np.where(alive, time_to_maturity, 0.0)
    volatility = np.where(alive, d + (a + b * ttm) * np.exp(-c * ttm), 0.0)

    if dynamics is Dynamics.NORMAL:
        volatility = volatility * normal_scaling

    volatility.setflags(write=False)
    return volatility
