import torch
from lmm_arrears.exceptions import CurveEvaluationError
from lmm_arrears.lmm_model import Measure


class NumeraireCalculator:
    def __init__(self, model):
        """
        Path-wise numeraire of the model's measure.

        TERMINAL: N(T_j) = P(T_j, T_n) / P(0, T_n) with P(T_j, T_n) = prod_{k>=j} 1 / (1 + tau_k L_k(T_j))
        SPOT:     N(T_j) = (1 / P(0, T_0)) * prod_{k<j} (1 + tau_k L_k(T_k))

        Between tenor dates, T_j < t < T_{j+1}:  N(t) = N(T_j) * P(0, T_j) / P(0, t).
        """
        self.model = model
        self.measure = model.measure
        T = model.tenor_grid.times
        self.terminal_discount_factor = float(model.discount_curve.discount_factor(T[-1]))
        self.first_discount_factor = float(model.discount_curve.discount_factor(T[0]))

    def at_tenor(self, paths, tenor_index):
        """ Numeraire at T_j for every path, shape (n_paths,). """
        model = self.model
        rates = paths.rates
        tau = model.tau

        if self.measure is Measure.TERMINAL:
            time_index = model.tenor_time_indices[tenor_index]
            libors = rates[:, time_index, tenor_index:]
            bond = torch.prod(1.0 / (1.0 + tau[tenor_index:] * libors), dim=1)
            return bond / self.terminal_discount_factor

        elif self.measure is Measure.SPOT:
            numeraire = torch.full((paths.n_paths,), 1.0 / self.first_discount_factor,
                                   device=rates.device, dtype=rates.dtype)
            for k in range(tenor_index):
                # L_k observed at its own fixing T_k
                fixed_libor = rates[:, model.tenor_time_indices[k], k]
                numeraire = numeraire * (1.0 + tau[k] * fixed_libor)
            return numeraire

        raise ValueError(f"Unknown measure: {self.measure}")

    def __call__(self, paths, time):
        """ Numeraire at an arbitrary time in [T_0, T_n], shape (n_paths,). """
        tenor_grid = self.model.tenor_grid
        tenor_index = tenor_grid.index_of(time)
        if tenor_index is not None:
            return self.at_tenor(paths, tenor_index)

        if time < tenor_grid[0] or time > tenor_grid.horizon:
            raise CurveEvaluationError(
                f"Numeraire requested at {time}, outside the tenure structure [{tenor_grid[0]}, {tenor_grid.horizon}]."
            )

        # preceding tenor value rolled forward on the initial discount curve
        lower = tenor_grid.index_at_or_before(time)
        curve = self.model.discount_curve
        adjustment = curve.discount_factor(tenor_grid[lower]) / curve.discount_factor(time)
        return self.at_tenor(paths, lower) * adjustment
