import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import reduce
import numpy as np
import torch
from lmm_arrears.euler import EulerScheme, SimulatedPaths
from lmm_arrears.exceptions import ConfigurationError, NumericalInstabilityError
from lmm_arrears.numeraire import NumeraireCalculator
from lmm_arrears.random_engine import BrownianMotion, PseudoRandomDriver
from lmm_arrears.utils import log_progress


@dataclass
class ValuationResult:
    price: float
    standard_error: float
    values: np.ndarray      # per-path values, NaN on discarded paths
    n_paths: int
    n_discarded: int
    evaluation_time: float = 0.0


class _Moments:
    """ Per-batch count / mean / sum of squared deviations, merged pairwise (Chan et al.). """

    def __init__(self, count, mean, m2):
        self.count = count
        self.mean = mean
        self.m2 = m2

    @classmethod
    def from_values(cls, values):
        valid = ~np.isnan(values)
        count = valid.sum(axis=0)
        safe = np.where(valid, values, 0.0)
        mean = np.divide(safe.sum(axis=0), count, out=np.zeros(values.shape[1]), where=count > 0)
        m2 = np.sum(np.where(valid, (values - mean) ** 2, 0.0), axis=0)
        return cls(count, mean, m2)

    def merge(self, other):
        count = self.count + other.count
        delta = other.mean - self.mean
        weight = np.divide(other.count, count, out=np.zeros_like(delta), where=count > 0)
        mean = self.mean + delta * weight
        m2 = self.m2 + other.m2 + delta**2 * self.count * weight
        return _Moments(count, mean, m2)


class LIBORMonteCarloSimulation:
    def __init__(self, model, n_paths, seed, driver_factory=PseudoRandomDriver, batch_size=4096,
                 max_workers=None, instability_tolerance=1e-10, max_bad_path_fraction=0.01):
        """
        Monte Carlo simulation of a LIBORMarketModel, executed in independent path batches.

        Every batch draws from its own stream spawned from SeedSequence(seed), so results
        depend on (seed, n_paths, batch_size) but not on the number of workers.

        Parameters:
        model (LIBORMarketModel): Read-only model shared by all batches.
        n_paths (int): Total number of paths.
        seed (int): Root seed.
        driver_factory (callable): seed -> GaussianDriver.
        batch_size (int): Paths per batch.
        max_workers (int): Thread pool size, None for the executor default.
        instability_tolerance (float): Threshold on 1 + tau * L below which a path is unstable.
        max_bad_path_fraction (float): Above this fraction of unstable paths the run fails.
        """
        if n_paths < 1 or batch_size < 1:
            raise ConfigurationError(f"Need positive n_paths and batch_size, got {n_paths} and {batch_size}.")
        self.model = model
        self.n_paths = int(n_paths)
        self.seed = seed
        self.driver_factory = driver_factory
        self.batch_size = int(batch_size)
        self.max_workers = max_workers
        self.instability_tolerance = instability_tolerance
        self.max_bad_path_fraction = max_bad_path_fraction

    @property
    def measure(self):
        return self.model.measure

    def _batch_plan(self):
        n_full, rest = divmod(self.n_paths, self.batch_size)
        sizes = [self.batch_size] * n_full + ([rest] if rest else [])
        seeds = np.random.SeedSequence(self.seed).spawn(len(sizes))
        return list(zip(sizes, seeds))

    def _simulate_batch(self, n_paths, seed_sequence):
        batch_seed = int(seed_sequence.generate_state(1)[0])
        brownian = BrownianMotion(self.model.simulation_grid, self.model.n_factors, n_paths,
                                  self.driver_factory(batch_seed))
        with torch.no_grad():
            return EulerScheme(self.model, self.instability_tolerance).simulate(brownian.increments())

    def _value_batch(self, n_paths, seed_sequence, products, evaluation_time):
        paths = self._simulate_batch(n_paths, seed_sequence)
        numeraire = NumeraireCalculator(self.model)
        with torch.no_grad():
            values = torch.stack([p.value(self.model, paths, numeraire, evaluation_time) for p in products], dim=1)
            values[paths.unstable] = float('nan')
        values = values.cpu().numpy()
        return values, _Moments.from_values(values), int(paths.unstable.sum().item())

    def _run_batches(self, fn, *args):
        plan = self._batch_plan()
        workers = 1 if len(plan) == 1 else self.max_workers
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(fn, n, seq, *args) for n, seq in plan]
            try:
                return [f.result() for f in futures]
            except Exception:
                # abort remaining batches, already running ones finish
                for f in futures:
                    f.cancel()
                raise

    def _check_instability(self, n_unstable):
        if n_unstable == 0:
            return
        fraction = n_unstable / self.n_paths
        if fraction > self.max_bad_path_fraction:
            raise NumericalInstabilityError(
                f"{n_unstable} of {self.n_paths} paths ({100.0 * fraction:.2f}%) hit 1 + tau * L <= "
                f"{self.instability_tolerance}, above the {100.0 * self.max_bad_path_fraction:.2f}% threshold.",
                n_unstable=n_unstable, n_paths=self.n_paths,
            )
        log_progress("Diagnostics", f"Discarded {n_unstable} unstable path(s) out of {self.n_paths}", 1)
        warnings.warn(f"Discarded {n_unstable} numerically unstable path(s) out of {self.n_paths}.")

    def value(self, products, evaluation_time=0.0):
        """
        Monte Carlo value of one or several products at the evaluation time.

        Returns:
        ValuationResult, or a list of them if a list of products was given.
        """
        single = not isinstance(products, (list, tuple))
        products = [products] if single else list(products)

        # fail on malformed products before any simulation work
        for p in products:
            p.libor_index(self.model)

        log_progress("Simulation", f"Valuing {len(products)} product(s) on {self.n_paths} "
                                   f"{self.measure.name} paths...", 1)
        batches = self._run_batches(self._value_batch, products, evaluation_time)

        values = np.concatenate([b[0] for b in batches], axis=0)
        moments = reduce(_Moments.merge, [b[1] for b in batches])
        n_unstable = sum(b[2] for b in batches)
        self._check_instability(n_unstable)

        results = []
        for k in range(len(products)):
            count = int(moments.count[k])
            variance = moments.m2[k] / (count - 1) if count > 1 else 0.0
            results.append(ValuationResult(
                price=float(moments.mean[k]) if count > 0 else float('nan'),
                standard_error=float(np.sqrt(variance / count)) if count > 0 else float('nan'),
                values=values[:, k],
                n_paths=self.n_paths,
                n_discarded=self.n_paths - count,
                evaluation_time=evaluation_time,
            ))
        return results[0] if single else results

    def simulate_paths(self):
        """ All simulated paths (keeps the full history in memory; meant for diagnostics). """
        batches = self._run_batches(self._simulate_batch)
        rates = torch.cat([b.rates for b in batches], dim=0)
        unstable = torch.cat([b.unstable for b in batches], dim=0)
        return SimulatedPaths(rates, unstable)
