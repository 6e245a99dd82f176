from lmm_arrears.correlation import build_exponential_decay_correlation
from lmm_arrears.covariance import BlendedLocalVolatilityModel, CovarianceModel
from lmm_arrears.curves import DiscountCurveFromForwardCurve, ForwardCurve
from lmm_arrears.lmm_model import LIBORMarketModel, StateSpace
from lmm_arrears.random_engine import PseudoRandomDriver
from lmm_arrears.simulation import LIBORMonteCarloSimulation
from lmm_arrears.time_grid import TimeGrid
from lmm_arrears.utils import log_progress
from lmm_arrears.volatility import Dynamics, build_volatility_structure


def create_libor_market_model(config, device='cpu', forward_curve=None, discount_curve=None,
                              driver_factory=PseudoRandomDriver):
    """
    Builds a ready-to-run LMM Monte Carlo simulation from an LMMConfig.

    1. Simulation and tenor grids on [0, horizon].
    2. Forward curve from the given fixings, discount curve rolled over it (unless supplied).
    3. Rebonato volatility and exponential decay correlation, reduced to n_factors.
    4. Local volatility blend: 0 for LOGNORMAL dynamics, 1 for NORMAL.
    5. LMM in the additive state space under the configured measure.

    Parameters:
    config (LMMConfig): Run configuration.
    device (str): Torch device of the model buffers.
    forward_curve (ForwardCurve): Optional, overrides the one built from config forwards.
    discount_curve: Optional, anything with discount_factor(t).
    driver_factory (callable): seed -> GaussianDriver.

    Returns:
    LIBORMonteCarloSimulation
    """
    # 1. Grids
    simulation_grid = TimeGrid.from_step(config.libor_rate_time_horizon, config.simulation_time_step)
    tenor_grid = TimeGrid.from_step(config.libor_rate_time_horizon, config.libor_period_length)

    # 2. Curves
    if forward_curve is None:
        forward_curve = ForwardCurve(config.fixing_times, config.forwards, config.libor_period_length)
    if discount_curve is None:
        discount_curve = DiscountCurveFromForwardCurve(forward_curve)

    # 3. Volatility and correlation
    volatility = build_volatility_structure(
        config.a, config.b, config.c, config.d, simulation_grid, tenor_grid, config.dynamics,
        normal_scaling=config.normal_volatility_scaling,
    )
    correlation = build_exponential_decay_correlation(config.correlation_decay, tenor_grid)
    covariance_model = CovarianceModel(simulation_grid, tenor_grid, volatility, correlation,
                                       n_factors=config.n_factors, device=device)

    # 4. Blend
    blend = 0.0 if config.dynamics is Dynamics.LOGNORMAL else 1.0
    initial_forwards = forward_curve.forward_rate(tenor_grid.times[:-1])
    blended_model = BlendedLocalVolatilityModel(covariance_model, initial_forwards, blend)

    # 5. Model
    model = LIBORMarketModel(tenor_grid, simulation_grid, forward_curve, discount_curve, blended_model,
                             measure=config.measure, state_space=StateSpace.NORMAL, device=device)

    log_progress("Model", f"{config.dynamics.name} LMM under {config.measure.name}: {model.N} LIBORs, "
                          f"{simulation_grid.n_steps} steps, {model.n_factors} factors", 1)

    return LIBORMonteCarloSimulation(
        model, config.n_paths, config.seed,
        driver_factory=driver_factory,
        batch_size=config.batch_size,
        max_workers=config.max_workers,
        instability_tolerance=config.instability_tolerance,
        max_bad_path_fraction=config.max_bad_path_fraction,
    )
