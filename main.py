import torch
import os
import time
torch.set_num_threads(os.cpu_count())
import config
from lmm_arrears.run_results import generate_measure_comparison, print_latex_table
from lmm_arrears.settings import LMMConfig
from lmm_arrears.utils import print_header, print_summary_table, print_comparison_table


if __name__ == "__main__":
    t_init = time.time()
    device = 'cuda' if torch.cuda.is_available() else 'cpu'

    # --- 1. CONFIGURATION ---
    lmm_config = LMMConfig.from_module(config)

    print_summary_table("LIBOR MARKET MODEL SETUP", {
        "Dynamics": lmm_config.dynamics.name,
        "Paths": lmm_config.n_paths,
        "Simulation Step": lmm_config.simulation_time_step,
        "LIBOR Period": lmm_config.libor_period_length,
        "Horizon": lmm_config.libor_rate_time_horizon,
        "Correlation Decay": lmm_config.correlation_decay,
        "Seed": lmm_config.seed,
        "Device": device,
    })

    # --- 2. TERMINAL vs SPOT vs ANALYTIC ---
    df = generate_measure_comparison(lmm_config, notional=config.NOTIONAL, device=device)

    print_header("PRICE OF LIBOR RATE IN ARREARS")
    print_comparison_table(df, {
        'Fixing': '{:6.2f}',
        'Terminal': '{:12.4f}',
        'Spot': '{:12.4f}',
        'Analytic': '{:12.4f}',
        'RelDiffTerminal': '{:10.2e}',
        'RelDiffSpot': '{:10.2e}',
        'StdErrTerminal': '{:10.4f}',
        'StdErrSpot': '{:10.4f}',
    })

    print_summary_table("SUMMARY", {
        "Max Rel. Diff. Terminal": float(df['RelDiffTerminal'].max()),
        "Max Rel. Diff. Spot": float(df['RelDiffSpot'].max()),
        "Runtime (s)": time.time() - t_init,
    })

    print_header("LATEX TABLE")
    print_latex_table()
