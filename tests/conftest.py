"""Pytest configuration for meterqc tests."""

import os
import sys
from pathlib import Path

# Add src to sys.path for Lambda-style imports
# This allows tests to work with the same import style as Lambda runtime
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Powertools needs a namespace and region before the function modules import
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "Meterqc/Test")
os.environ.setdefault("AWS_DEFAULT_REGION", "ap-southeast-2")
