from enum import Enum
import numpy as np
from scipy.interpolate import PchipInterpolator, make_interp_spline
from lmm_arrears.exceptions import ConfigurationError, CurveEvaluationError


class Interpolation(Enum):
    LINEAR = 'linear'
    LOG_LINEAR = 'log_linear'
    PCHIP = 'pchip'


class Extrapolation(Enum):
    CONSTANT = 'constant'
    LINEAR = 'linear'
    NONE = 'none'


class InterpolatedValues:
    def __init__(self, times, values, interpolation=Interpolation.LINEAR, extrapolation=Extrapolation.CONSTANT):
        """
        One-dimensional interpolation with an explicit extrapolation policy.

        Parameters:
        times (array-like): Strictly increasing node times.
        values (array-like): Node values, same length as times.
        interpolation (Interpolation): LINEAR, LOG_LINEAR (linear in log values) or PCHIP.
        extrapolation (Extrapolation): CONSTANT (flat), LINEAR (continue the end segments)
                                       or NONE (raise CurveEvaluationError).
        """
        times = np.asarray(times, dtype=np.float64)
        values = np.asarray(values, dtype=np.float64)

        if times.ndim != 1 or times.shape != values.shape:
            raise ConfigurationError(
                f"Curve nodes and values must be 1D arrays of equal length, got {times.shape} and {values.shape}."
            )
        if times.size == 0:
            raise ConfigurationError("A curve needs at least one node.")
        if np.any(np.diff(times) <= 0.0):
            raise ConfigurationError("Curve node times must be strictly increasing.")
        if interpolation is Interpolation.LOG_LINEAR and np.any(values <= 0.0):
            raise ConfigurationError("Log-linear interpolation requires strictly positive values.")

        self.times = times
        self.values = values
        self.interpolation = interpolation
        self.extrapolation = extrapolation

        y = np.log(values) if interpolation is Interpolation.LOG_LINEAR else values
        if times.size == 1:
            self._spline = None
        elif interpolation is Interpolation.PCHIP:
            self._spline = PchipInterpolator(times, y, extrapolate=True)
        else:
            self._spline = make_interp_spline(times, y, k=1)

    def __call__(self, t):
        t_arr = np.asarray(t, dtype=np.float64)
        lo, hi = self.times[0], self.times[-1]
        outside = (t_arr < lo - 1e-12) | (t_arr > hi + 1e-12)

        if self.extrapolation is Extrapolation.NONE and np.any(outside):
            raise CurveEvaluationError(
                f"Time(s) {t_arr[outside]} outside curve range [{lo}, {hi}] and no extrapolation rule is defined."
            )
        if self.extrapolation is Extrapolation.CONSTANT:
            t_arr = np.clip(t_arr, lo, hi)

        if self._spline is None:
            y = np.full_like(t_arr, np.log(self.values[0]) if self.interpolation is Interpolation.LOG_LINEAR else self.values[0])
        else:
            y = self._spline(t_arr)

        out = np.exp(y) if self.interpolation is Interpolation.LOG_LINEAR else y
        return float(out) if np.ndim(t) == 0 else out


class ForwardCurve:
    def __init__(self, fixing_times, forwards, period_length,
                 interpolation=Interpolation.LINEAR, extrapolation=Extrapolation.CONSTANT):
        """
        Initial forward rates L(0; t, t + period_length) interpolated from a few given fixings.

        Parameters:
        fixing_times (array-like): Fixing times at which forwards are given.
        forwards (array-like): The given forwards (the others are interpolated).
        period_length (float): Accrual length of every forward.
        """
        if len(fixing_times) != len(forwards):
            raise ConfigurationError(
                f"Got {len(fixing_times)} fixing times but {len(forwards)} forwards."
            )
        if period_length <= 0.0:
            raise ConfigurationError(f"Forward period length must be positive, got {period_length}.")

        self.period_length = float(period_length)
        self._values = InterpolatedValues(fixing_times, forwards, interpolation, extrapolation)

    @property
    def fixing_times(self):
        return self._values.times

    def forward_rate(self, time):
        return self._values(time)


class DiscountCurveFromForwardCurve:
    def __init__(self, forward_curve):
        """
        Discount factors implied by rolling over the forward curve:
        P(0,T) = prod_k 1 / (1 + L(0; t_k) * delta_k) with t_k = k * period_length,
        the last period truncated at T.
        """
        self.forward_curve = forward_curve

    def _discount_factor(self, maturity):
        if maturity < -1e-12:
            raise CurveEvaluationError(f"Discount factor requested for negative time {maturity}.")

        period = self.forward_curve.period_length
        df = 1.0
        k = 0
        while k * period < maturity - 1e-12:
            start = k * period
            accrual = min(period, maturity - start)
            df /= 1.0 + self.forward_curve.forward_rate(start) * accrual
            k += 1
        return df

    def discount_factor(self, time):
        if np.ndim(time) == 0:
            return self._discount_factor(float(time))
        return np.array([self._discount_factor(float(t)) for t in np.ravel(time)]).reshape(np.shape(time))


class DiscountCurve:
    def __init__(self, times, discount_factors,
                 interpolation=Interpolation.LOG_LINEAR, extrapolation=Extrapolation.NONE):
        """ Discount factors interpolated between given nodes. P(0,0) = 1 is added when missing. """
        times = np.asarray(times, dtype=np.float64)
        discount_factors = np.asarray(discount_factors, dtype=np.float64)
        if times.size and times[0] > 1e-12:
            times = np.concatenate([[0.0], times])
            discount_factors = np.concatenate([[1.0], discount_factors])
        self._values = InterpolatedValues(times, discount_factors, interpolation, extrapolation)

    def discount_factor(self, time):
        return self._values(time)

    def forward_rate(self, time, period_length):
        """ Simply compounded forward F(0; t, t + period_length) = (P(t) / P(t + delta) - 1) / delta. """
        return (self.discount_factor(time) / self.discount_factor(np.asarray(time) + period_length) - 1.0) / period_length
