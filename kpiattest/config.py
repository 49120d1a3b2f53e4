"""
Configuration module for kpiattest.

Centralizes configuration with environment variable support.
"""

import os
from pathlib import Path
from typing import Dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("KPIATTEST_ENV", "dev")  # dev|stage|prod

# Signing key consumed by the service and CLI (provisioned externally)
SIGNING_KEY_PATH = os.getenv("KPIATTEST_SIGNING_KEY_PATH", "secrets/tee_signing_key.json")

# reject|clamp
NEGATIVE_KPI_POLICY = os.getenv("KPIATTEST_NEGATIVE_KPI_POLICY", "reject")

# Logging
LOG_LEVEL = os.getenv("KPIATTEST_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("KPIATTEST_LOG_JSON", "true").lower() in ("1", "true", "yes")


def negative_kpi_policy() -> str:
    """
    Negative KPI quantization policy.

    Read from the environment on each call so tests and long-running
    processes pick up changes.
    """
    return os.getenv("KPIATTEST_NEGATIVE_KPI_POLICY", NEGATIVE_KPI_POLICY).lower()


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Check configuration values.
    Returns dict of check name -> ok.
    """
    return {
        "signing_key": Path(SIGNING_KEY_PATH).exists(),
        "negative_kpi_policy": negative_kpi_policy() in ("reject", "clamp"),
        "env": ENV in ("dev", "stage", "prod"),
    }


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("KPIATTEST_DEBUG", "").lower() in ("1", "true", "yes")
