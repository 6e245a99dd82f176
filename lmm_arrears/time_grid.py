import numpy as np
from lmm_arrears.exceptions import ConfigurationError

# Grid times are rounded to this many decimals so that a 0.1 and a 0.5 grid
# share exactly the same common points (15 * 0.1 != 1.5 in binary floating point).
TIME_DECIMALS = 12
TIME_TOLERANCE = 1e-9


class TimeGrid:
    def __init__(self, times):
        """
        Uniform, strictly increasing time discretization starting at 0.

        Parameters:
        times (array-like): Grid times [0, dt, 2dt, ..., T].
        """
        times = np.round(np.asarray(times, dtype=np.float64), TIME_DECIMALS)

        if times.ndim != 1 or times.size < 2:
            raise ConfigurationError("A time grid needs at least two points.")
        if abs(times[0]) > TIME_TOLERANCE:
            raise ConfigurationError(f"A time grid must start at 0, got {times[0]}.")

        steps = np.diff(times)
        if np.any(steps <= 0.0):
            raise ConfigurationError("Time grid points must be strictly increasing.")
        if not np.allclose(steps, steps[0], rtol=1e-9, atol=TIME_TOLERANCE):
            raise ConfigurationError("Time grid must have a uniform step size.")

        times.setflags(write=False)
        self._times = times
        self._step = float(steps[0])

    @classmethod
    def from_step(cls, horizon, step):
        """ Builds [0, step, ..., horizon]. The horizon must be a whole number of steps. """
        if step <= 0.0:
            raise ConfigurationError(f"Time step must be positive, got {step}.")
        if horizon <= 0.0:
            raise ConfigurationError(f"Time horizon must be positive, got {horizon}.")

        n_steps = int(round(horizon / step))
        if n_steps < 1 or abs(n_steps * step - horizon) > TIME_TOLERANCE * max(1.0, horizon):
            raise ConfigurationError(
                f"Horizon {horizon} is not a whole number of steps of size {step}."
            )
        return cls(step * np.arange(n_steps + 1))

    @property
    def times(self):
        return self._times

    @property
    def step(self):
        return self._step

    @property
    def n_steps(self):
        return self._times.size - 1

    @property
    def horizon(self):
        return float(self._times[-1])

    def __len__(self):
        return self._times.size

    def __getitem__(self, index):
        return float(self._times[index])

    def __repr__(self):
        return f"TimeGrid(step={self._step}, n_steps={self.n_steps})"

    def contains(self, time):
        return self.index_of(time) is not None

    def index_of(self, time):
        """ Index of a grid time equal to `time` (within tolerance), or None. """
        idx = int(np.searchsorted(self._times, time - TIME_TOLERANCE))
        if idx < self._times.size and abs(self._times[idx] - time) <= TIME_TOLERANCE:
            return idx
        return None

    def index_at_or_before(self, time):
        """ Index of the last grid time <= `time`. """
        if time < -TIME_TOLERANCE:
            raise ValueError(f"Time {time} lies before the start of the grid.")
        return int(np.searchsorted(self._times, time + TIME_TOLERANCE, side='right')) - 1
