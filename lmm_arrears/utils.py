import os
import numpy as np
import pandas as pd
from lmm_arrears.curves import DiscountCurve, ForwardCurve


def print_header(title):
    print("\n" + "="*60)
    print(f"{title:^60}")
    print("="*60)


def log_progress(category, message, level=0):
    indent = "   " * level
    if level == 2:
        print(f"{indent}> {message}")
    else:
        print(f"{indent}[{category}] {message}")


def print_summary_table(title, data_dict):
    print_header(title)
    for key, value in data_dict.items():
        if isinstance(value, float):
            print(f"{key:<30}: {value:.6f}")
        else:
            print(f"{key:<30}: {value}")


def print_comparison_table(df, formats):
    """ Prints a result DataFrame with an explicit format per column. """
    print(df.to_string(index=False, formatters={col: fmt.format for col, fmt in formats.items()}))


# ==========================================
# PARSERS
# ==========================================

def parse_tenor(tenor_str):
    """
    Converts a tenor string (e.g., '1Y', '6M', '1W') into a float year fraction.
    Returns np.nan for unrecognized formats so they can be dropped.
    """
    s = str(tenor_str).upper().strip()
    # Handle composite tickers
    if '/' in s:
        s = s.split('/')[-1]

    try:
        if s.endswith('Y'):
            return float(s[:-1])
        if s.endswith('M'):
            return float(s[:-1]) / 12.0
        if s.endswith('W'):
            return float(s[:-1]) / 52.0
        if s.endswith('D'):
            return float(s[:-1]) / 365.25
        return float(s)
    except ValueError:
        pass

    return np.nan  # NaN instead of 0.0 to prevent duplicate T=0 rows


# ==========================================
# MARKET CURVES
# ==========================================

def load_discount_curve(csv_path):
    """
    Loads discount factors from a CSV into a DiscountCurve (log-linear, no extrapolation).

    The CSV needs a time column (TENOR/TICKER/T, values like '6M' or 0.5) and a value
    column (DF/VALUE/RATE).
    """
    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"Curve file not found: {csv_path}")

    df = pd.read_csv(csv_path, sep=None, engine='python')  # Auto-detect separator
    df.columns = [str(c).strip().upper() for c in df.columns]

    col_t = next((c for c in df.columns if 'TICKER' in c or 'TENOR' in c or c == 'T'), None)
    col_v = next((c for c in df.columns if 'DF' in c or 'VALUE' in c or 'RATE' in c), None)
    if not col_t or not col_v:
        raise ValueError("Missing time or value columns in the curve CSV.")

    df['T'] = df[col_t].apply(parse_tenor)
    df['DF'] = pd.to_numeric(df[col_v], errors='coerce')

    # Drop unrecognized tenors, keep the last quote of duplicated ones
    df = df.dropna(subset=['T', 'DF']).sort_values('T')
    df = df.drop_duplicates(subset=['T'], keep='last')

    return DiscountCurve(df['T'].values, df['DF'].values)


def forward_curve_from_discount_curve(discount_curve, period_length, horizon):
    """
    Simply compounded forwards F(0; T_i, T_i + period_length) on the grid 0, delta, ..., horizon - delta,
    F = (P(T_i) / P(T_i + delta) - 1) / delta, wrapped in a piecewise linear ForwardCurve.
    """
    n_periods = int(round(horizon / period_length))
    fixing_times = np.arange(n_periods) * period_length

    dfs = discount_curve.discount_factor(np.arange(n_periods + 1) * period_length)
    forward_rates = (dfs[:-1] / dfs[1:] - 1) / period_length

    return ForwardCurve(fixing_times, forward_rates, period_length)
