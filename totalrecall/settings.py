"""
This module contains the default configuration settings for the TotalRecall worker.
It defines paths, timing constants, the backup command and the destination schema.
Runtime overrides are applied on top of these values by `totalrecall.config`.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
# The backup utility writes its metrics next to the cluster's data directory.
METRICS_DIR = pathlib.Path(os.getenv("PGDATA", "."))
METRICS_FILENAME = "totalrecall.metrics"

LOCK_DIR = pathlib.Path("/var/run/postgresql")
LOCK_FILENAME = "totalrecall.lock"

#* --- Database Settings ---
DATABASE_NAME = os.getenv("POSTGRES_DB", "postgres")
DATABASE_CONNECT_TIMEOUT = 10  # seconds
METRICS_SCHEMA_NAME = "totalrecall"
METRICS_TABLE_NAME = "metrics"

#* --- Backup Command ---
BACKUP_EXECUTABLE = "totalrecall"
BACKUP_ARGUMENTS = ("backup", "--scheduled")

#* --- Worker Timing ---
BACKUP_INTERVAL_SECONDS = 10 * 60.0
BACKUP_POLL_INTERVAL = 2.0        # seconds between child status checks
SIGNAL_POLL_INTERVAL = 1.0        # seconds between shutdown checks while sleeping
STARTUP_GRACE_SECONDS = 1.0
GRACEFUL_SHUTDOWN_TIMEOUT = 10.0  # seconds before force-killing the backup child

#* --- Process Identity ---
WORKER_PROCESS_TITLE = "TotalRecall - Worker"

#* --- MODIFIABLE SETTINGS (Overridable via TOTALRECALL_<NAME> environment variables) ---
MODIFIABLE_SETTINGS = {
    "METRICS_DIR", "LOCK_DIR",
    "DATABASE_NAME", "DATABASE_CONNECT_TIMEOUT",
    "BACKUP_EXECUTABLE",
    "BACKUP_INTERVAL_SECONDS", "BACKUP_POLL_INTERVAL", "SIGNAL_POLL_INTERVAL",
    "STARTUP_GRACE_SECONDS", "GRACEFUL_SHUTDOWN_TIMEOUT",
}
