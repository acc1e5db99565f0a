# config.py
import os

# Over-utilization detection
UTILIZATION_THRESHOLD = float(os.getenv("UTILIZATION_THRESHOLD", "0.8"))  # fraction of total MIPS
SAFETY_PARAMETER = float(os.getenv("SAFETY_PARAMETER", "2.5"))
MIN_HISTORY_LENGTH = int(os.getenv("MIN_HISTORY_LENGTH", "12"))  # samples before MAD/IQR kick in

# VM feature clustering
CLUSTER_MAX_ITERATIONS = int(os.getenv("CLUSTER_MAX_ITERATIONS", "10"))
CENTROID_TOLERANCE = float(os.getenv("CENTROID_TOLERANCE", "0.0"))  # 0.0 means bit-exact fixed point

# History retention (entries kept per host / per timing series)
HISTORY_RETENTION = int(os.getenv("HISTORY_RETENTION", "2880"))
HOST_HISTORY_LENGTH = int(os.getenv("HOST_HISTORY_LENGTH", "30"))

# Host ranking used by the optimizer
OVERLOAD_RANKING = os.getenv("OVERLOAD_RANKING", "min_power")
DRAIN_RANKING = os.getenv("DRAIN_RANKING", "max_power")
DEFAULT_RANKING = os.getenv("DEFAULT_RANKING", "ffd_available_power")

# Simulation
STEP_DURATION_SEC = int(os.getenv("STEP_DURATION_SEC", "300"))  # 5 minutes
TIME_STEPS = int(os.getenv("TIME_STEPS", "288"))  # 24 hours
RANDOM_SEED = int(os.getenv("RANDOM_SEED", "42"))

# Logging / debug
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
