"""Global configuration defaults for the cost accounting engine.

Values here are defaults only. Case-specific settings (discount rate, period
lengths, solution algorithm) are read into a ``CaseSettings`` object, see
``settings.py``.
"""
from pathlib import Path

# -----------------------------
# BASIC CONFIGURATION
# -----------------------------
DEFAULT_COMMODITY: str = "Electricity"  # commodity whose time data carries the period index
DEFAULT_DISCOUNT_RATE: float = 0.0
DEFAULT_SOLUTION_ALGORITHM: str = "Monolithic"  # 'Monolithic' | 'Myopic' | 'Benders'
DEFAULT_OUTPUT_LAYOUT: str = "long"  # 'long' | 'wide'

# Relative tolerance for the objective-value cross check
VALIDATION_TOLERANCE: float = 1e-6

# -----------------------------
# OUTPUT FILES
# -----------------------------
CAPACITY_FILE = "capacity.csv"
FLOWS_FILE = "flows.csv"
NSD_FILE = "non_served_demand.csv"
STORAGE_LEVEL_FILE = "storage_level.csv"
COSTS_FILE = "costs.csv"
UNDISCOUNTED_COSTS_FILE = "undiscounted_costs.csv"
BALANCE_DUALS_FILE = "balance_duals.csv"
CO2_CAP_DUALS_FILE = "co2_cap_duals.csv"
BENDERS_CONVERGENCE_FILE = "benders_convergence.csv"
SETTINGS_FILE = "settings.json"

RESULTS_DIR_PREFIX = "results_period_"

# Policy constraint type exported by the CO2 dual writer
CO2_CAP_CONSTRAINT = "CO2Cap"
# Balance equation exported by the balance dual writer
DEMAND_BALANCE_ID = "demand"

# -----------------------------
# LOGGING
# -----------------------------
LOG_DIR = Path(__file__).resolve().parent.parent.parent / "output" / "logs"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL = "INFO"  # Could be switched to DEBUG when needed
