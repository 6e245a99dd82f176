import torch


class SimulatedPaths:
    def __init__(self, rates, unstable):
        """
        Output of an Euler run.

        Parameters:
        rates (torch.Tensor): Forward rates of shape (n_paths, n_simulation_times, n_libors).
        unstable (torch.Tensor): Boolean flag per path, True if a drift denominator hit zero.
        """
        self.rates = rates
        self.unstable = unstable

    @property
    def n_paths(self):
        return self.rates.shape[0]

    def libor(self, time_index, component):
        return self.rates[:, time_index, component]


class EulerScheme:
    def __init__(self, model, instability_tolerance=0.0):
        """
        Explicit Euler-Maruyama discretization of the LMM in the model's state space.

        Parameters:
        model (LIBORMarketModel): Supplies drift, diffusion and the state-space transform.
        instability_tolerance (float): A path is flagged once a live LIBOR, or one on its fixing date,
                                      has 1 + tau * L <= tolerance.
        """
        self.model = model
        self.instability_tolerance = instability_tolerance

    def simulate(self, brownian_increments):
        """
        Parameters:
        brownian_increments (torch.Tensor): dW of shape (n_paths, n_steps, n_factors).

        Returns:
        SimulatedPaths
        """
        model = self.model
        n_paths, n_steps, _ = brownian_increments.shape
        dt = model.simulation_grid.step

        state = model.initial_state(n_paths)
        rates = model.state_to_rates(state)
        unstable = model.singular_paths(0, rates, self.instability_tolerance, start=0)
        res = [rates]

        for j in range(n_steps):
            m = model.first_unfixed_index(j)
            if m >= model.N:
                # every LIBOR has fixed, nothing evolves any more
                res.append(rates)
                continue

            # explicit Euler: drift and diffusion only see the rates at t_j
            drift = model.drift(j, rates)
            diffusion = model.diffusion(j, rates, brownian_increments[:, j])

            new_state = state + drift * dt + diffusion
            # fixed LIBORs keep their value
            new_state[:, :m] = state[:, :m]

            state = new_state
            rates = model.state_to_rates(state)

            # new values of every LIBOR that was live at t_j, those fixing at t_{j+1} included
            unstable |= model.singular_paths(j, rates, self.instability_tolerance, start=m)
            res.append(rates)

        return SimulatedPaths(torch.stack(res, dim=1), unstable)
