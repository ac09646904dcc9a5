"""Centralized configuration for the ResearchVault backend.

Re-exports everything from researchvault.infrastructure.settings, then adds
typed constants for scoring, detection, classification, scheduling, database,
and LLM settings. Environment variable overrides use safe defaults so the app
starts without extra env configuration.
"""

from __future__ import annotations

import os

from researchvault.infrastructure.settings import *  # noqa: F401, F403  re-export existing


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


# --- App ---
APP_VERSION: str = "1.0.0"

# --- Scoring ---
SCORE_WEIGHT_DOMAIN: float = float(_env("RESEARCHVAULT_WEIGHT_DOMAIN", "0.40"))
SCORE_WEIGHT_URL: float = float(_env("RESEARCHVAULT_WEIGHT_URL", "0.25"))
SCORE_WEIGHT_TITLE: float = float(_env("RESEARCHVAULT_WEIGHT_TITLE", "0.25"))
SCORE_WEIGHT_BEHAVIOR: float = float(_env("RESEARCHVAULT_WEIGHT_BEHAVIOR", "0.10"))

# --- Detection ---
DETECTION_THRESHOLD: float = float(_env("RESEARCHVAULT_DETECTION_THRESHOLD", "0.5"))
DETECTION_LOOKBACK_DAYS: int = int(_env("RESEARCHVAULT_LOOKBACK_DAYS", "30"))
DETECTION_LIMIT: int = int(_env("RESEARCHVAULT_DETECTION_LIMIT", "50"))
# The orchestrator persists scored entries itself unless this is enabled
DETECTION_AGENT_SAVES: bool = _env("RESEARCHVAULT_AGENT_SAVES", "false").lower() == "true"

# --- Agent bridge ---
AGENT_PROBE_TIMEOUT_SECONDS: float = float(_env("RESEARCHVAULT_PROBE_TIMEOUT", "2.0"))
AGENT_ANALYSIS_TIMEOUT_SECONDS: float = float(_env("RESEARCHVAULT_ANALYSIS_TIMEOUT", "30.0"))

# --- Scheduling ---
SCHEDULER_TICK_SECONDS: float = float(_env("RESEARCHVAULT_SCHEDULER_TICK", "60.0"))
MIN_RUN_INTERVAL_SECONDS: float = float(_env("RESEARCHVAULT_MIN_RUN_INTERVAL", "300.0"))

# --- Classification ---
CLASSIFY_CHUNK_SIZE: int = int(_env("RESEARCHVAULT_CLASSIFY_CHUNK_SIZE", "3"))
CLASSIFY_PACING_SECONDS: float = float(_env("RESEARCHVAULT_CLASSIFY_PACING", "1.0"))
CLASSIFY_CALL_TIMEOUT_SECONDS: float = float(_env("RESEARCHVAULT_CLASSIFY_TIMEOUT", "20.0"))

# --- LLM ---
LLM_MAX_RETRIES: int = int(_env("RESEARCHVAULT_LLM_MAX_RETRIES", "3"))
LLM_CIRCUIT_FAIL_MAX: int = int(_env("RESEARCHVAULT_LLM_CIRCUIT_FAIL_MAX", "5"))
LLM_CIRCUIT_RESET_SECONDS: float = float(_env("RESEARCHVAULT_LLM_CIRCUIT_RESET", "60.0"))

# --- LLM Budget ---
LLM_USER_DAILY_LIMIT: int = 500
LLM_GLOBAL_DAILY_LIMIT: int = 10000

# --- Database ---
DB_POOL_SIZE: int = int(_env("RESEARCHVAULT_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(_env("RESEARCHVAULT_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(_env("RESEARCHVAULT_DB_CONNECT_TIMEOUT", "30.0"))
DB_TEMP_CONN_MAX: int = int(_env("RESEARCHVAULT_DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(_env("RESEARCHVAULT_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(_env("RESEARCHVAULT_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(_env("RESEARCHVAULT_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(_env("RESEARCHVAULT_DB_RETRY_JITTER", "0.1"))

# --- API ---
API_LIST_LIMIT_DEFAULT: int = 100
API_LIST_LIMIT_MAX: int = 500
API_CLASSIFY_IDS_MAX: int = 200
