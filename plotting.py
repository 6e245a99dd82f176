import argparse
import os
import matplotlib.pyplot as plt
import pandas as pd
import config
from lmm_arrears.run_results import generate_measure_comparison
from lmm_arrears.settings import LMMConfig


def make_relative_error_plot(df, column, measure_label, output_path):
    """ Scatter of |MC - analytic| / analytic against the fixing time. """
    os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)

    fig, ax = plt.subplots(figsize=(8, 5), constrained_layout=True)
    ax.scatter(df['Fixing'], df[column], s=18, color='tab:blue')
    ax.set_title(f"Libor in Arrears error when using {measure_label} measure")
    ax.set_xlabel('Fixing')
    ax.set_ylabel('MC-Error')
    ax.set_ylim(0.0, max(0.01, 1.1 * df[column].max()))
    ax.ticklabel_format(axis='y', style='sci', scilimits=(0, 0))
    ax.grid(alpha=0.3)

    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    print(f"Saved: {output_path}")


def make_price_comparison_plot(df, output_path):
    os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)

    fig, ax = plt.subplots(figsize=(8, 5), constrained_layout=True)
    ax.errorbar(df['Fixing'], df['Terminal'], yerr=2.0 * df['StdErrTerminal'], fmt='o', ms=3, label='Terminal (MC)')
    ax.errorbar(df['Fixing'], df['Spot'], yerr=2.0 * df['StdErrSpot'], fmt='s', ms=3, label='Spot (MC)')
    ax.plot(df['Fixing'], df['Analytic'], 'k-', lw=1.0, label='Analytic')
    ax.set_title('Libor in Arrears value per fixing')
    ax.set_xlabel('Fixing')
    ax.set_ylabel('Value')
    ax.legend()
    ax.grid(alpha=0.3)

    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    print(f"Saved: {output_path}")


def main():
    parser = argparse.ArgumentParser(description='Plot LIBOR in arrears Monte Carlo errors per measure.')
    parser.add_argument('--results-csv', default='results/measure_comparison.csv',
                        help='Reuse a saved comparison; it is regenerated when missing.')
    parser.add_argument('--n-paths', type=int, default=config.N_PATHS)
    parser.add_argument('--seed', type=int, default=config.SEED)
    parser.add_argument('--output-terminal', default='pics/libor_in_arrears_error_terminal.png')
    parser.add_argument('--output-spot', default='pics/libor_in_arrears_error_spot.png')
    parser.add_argument('--output-prices', default='pics/libor_in_arrears_prices.png')
    args = parser.parse_args()

    if os.path.exists(args.results_csv):
        df = pd.read_csv(args.results_csv)
    else:
        lmm_config = LMMConfig.from_module(config, n_paths=args.n_paths, seed=args.seed)
        df = generate_measure_comparison(lmm_config, notional=config.NOTIONAL,
                                         results_dir=os.path.dirname(args.results_csv) or '.')

    make_relative_error_plot(df, 'RelDiffTerminal', 'terminal', args.output_terminal)
    make_relative_error_plot(df, 'RelDiffSpot', 'spot', args.output_spot)
    make_price_comparison_plot(df, args.output_prices)


if __name__ == '__main__':
    main()
