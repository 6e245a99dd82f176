from lmm_arrears.exceptions import ConfigurationError


class LiborInArrears:
    def __init__(self, fixing_time, period_end, notional=1.0):
        """
        Floater in arrears: the LIBOR L(T_i, T_{i+1}) is fixed and paid at T_i.

        Parameters:
        fixing_time (float): T_i, both fixing and payment date.
        period_end (float): T_{i+1}, end of the accrual period.
        notional (float): Contract notional.
        """
        if period_end <= fixing_time:
            raise ConfigurationError(f"Period end {period_end} must lie after the fixing {fixing_time}.")
        self.fixing_time = float(fixing_time)
        self.period_end = float(period_end)
        self.notional = float(notional)

    @property
    def period_length(self):
        return self.period_end - self.fixing_time

    def __repr__(self):
        return f"LiborInArrears(fixing_time={self.fixing_time}, period_end={self.period_end}, notional={self.notional})"

    def libor_index(self, model):
        i = model.libor_index(self.fixing_time)
        if i is None or i >= model.N or model.libor_index(self.period_end) != i + 1:
            raise ConfigurationError(
                f"[{self.fixing_time}, {self.period_end}] is not a period of the tenure structure."
            )
        return i

    def value(self, model, paths, numeraire, evaluation_time=0.0):
        """
        Path-wise value at the evaluation time:
            notional * L_i(T_i) * (T_{i+1} - T_i) / N(T_i) * N(t)

        Returns:
        torch.Tensor: Shape (n_paths,).
        """
        i = self.libor_index(model)
        libor = paths.libor(model.tenor_time_indices[i], i)

        # The floater pays Libor * period length at the fixing date
        values = libor * self.period_length * self.notional

        # universal pricing theorem: deflate by N(T_i), rebase with N(t)
        values = values / numeraire(paths, self.fixing_time)
        return values * numeraire(paths, evaluation_time)
