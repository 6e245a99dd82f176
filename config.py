# --- MONTE CARLO ---
N_PATHS = 12000
SEED = 1897
BATCH_SIZE = 4096
MAX_WORKERS = None          # None -> ThreadPoolExecutor default
MAX_BAD_PATH_FRACTION = 0.01


# --- TIME DISCRETIZATION ---
SIMULATION_TIME_STEP = 0.1
LIBOR_PERIOD_LENGTH = 0.5
LIBOR_RATE_TIME_HORIZON = 16.0


# --- INITIAL CURVE ---
FIXING_FOR_GIVEN_FORWARDS = (0.5, 1.0, 2.0, 3.0)
FORWARDS_FOR_CURVE = (0.05, 0.05, 0.05, 0.05)


# --- VOLATILITY & CORRELATION ---
# sigma(t, T) = d + (a + b (T - t)) exp(-c (T - t))
VOL_A = 0.1
VOL_B = 0.1
VOL_C = 0.15
VOL_D = 0.15
CORRELATION_DECAY = 0.5
N_FACTORS = None            # None -> full rank
NORMAL_VOL_SCALING = 0.05


DYNAMICS = "lognormal"      # lognormal, normal
MEASURE = "spot"            # spot, terminal   (main.py runs both)


# --- PRODUCT ---
NOTIONAL = 1000.0
