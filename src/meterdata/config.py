"""Configuration management for meterqc."""

import os

# Monotonicity lookback and grading buffer
LOOKBACK_DAYS = int(os.environ.get("METERQC_LOOKBACK_DAYS", "2"))
BUFFER_DAYS = int(os.environ.get("METERQC_BUFFER_DAYS", "1"))

# Range ceiling (Wh per elapsed hour)
MAX_HOURLY_WH_PER_HOUR = int(os.environ.get("METERQC_MAX_HOURLY_WH", "20000"))
MAX_DAILY_WH_PER_HOUR = int(os.environ.get("METERQC_MAX_DAILY_WH", "10000"))

# Classification worker pool
MAX_WORKERS = int(os.environ.get("METERQC_MAX_WORKERS", "5"))

# Store configuration
STORE_BACKEND = os.environ.get("METERQC_STORE", "memory")
READINGS_TABLE = os.environ.get("METERQC_READINGS_TABLE", "meterqc-readings")
SOURCES_TABLE = os.environ.get("METERQC_SOURCES_TABLE", "meterqc-sources")
AWS_REGION = os.environ.get("METERQC_AWS_REGION", "ap-southeast-2")
STORE_TIMEOUT_SECONDS = float(os.environ.get("METERQC_STORE_TIMEOUT_SECONDS", "10"))

# Report output
REPORT_DIR = os.environ.get("METERQC_REPORT_DIR", "output")

# Progress logging interval for long imports
PROGRESS_EVERY = int(os.environ.get("METERQC_PROGRESS_EVERY", "500"))
