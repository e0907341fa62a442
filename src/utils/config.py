"""Configuration management for ScholarCache."""

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Central configuration for ScholarCache."""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent.parent
    CACHE_DIR = Path(os.getenv("SCHOLARCACHE_CACHE_DIR", PROJECT_ROOT / "cache"))
    LOG_DIR = Path(os.getenv("SCHOLARCACHE_LOG_DIR", PROJECT_ROOT / "logs"))
    LOG_LEVEL = os.getenv("SCHOLARCACHE_LOG_LEVEL", "INFO")

    # Upstream provider
    PROVIDER = os.getenv("SCHOLARCACHE_PROVIDER", "openalex")
    OPENALEX_EMAIL = os.getenv("OPENALEX_EMAIL", "")
    SEMANTIC_SCHOLAR_API_KEY = os.getenv("SEMANTIC_SCHOLAR_API_KEY", "")
    REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))

    # Request limits; larger upstream pages were seen to time out
    SAFE_MAX_LIMIT = int(os.getenv("SAFE_MAX_LIMIT", "25"))
    MAX_QUERY_LIMIT = int(os.getenv("MAX_QUERY_LIMIT", "100"))

    # Cache settings
    SEARCH_TTL_SECONDS = int(os.getenv("SEARCH_TTL_SECONDS", "3600"))
    EPHEMERAL_TTL_SECONDS = int(os.getenv("EPHEMERAL_TTL_SECONDS", "3600"))
    EPHEMERAL_MAX_ENTRIES = int(os.getenv("EPHEMERAL_MAX_ENTRIES", "1000"))
    EPHEMERAL_MAX_BYTES = int(os.getenv("EPHEMERAL_MAX_BYTES", str(50 * 1024 * 1024)))
    HYDRATE_MISSING_PAPERS = _env_bool("HYDRATE_MISSING_PAPERS")

    # API rate limits (minimum seconds between upstream requests)
    OPENALEX_RATE_INTERVAL = float(os.getenv("OPENALEX_RATE_INTERVAL", "0.5"))
    SEMANTIC_SCHOLAR_RATE_INTERVAL = float(os.getenv("SEMANTIC_SCHOLAR_RATE_INTERVAL", "1.0"))

    # Retry policy
    MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
    RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "1.0"))

    # Development settings
    DEBUG = _env_bool("DEBUG")

    @classmethod
    def rate_interval_for(cls, provider: str) -> float:
        """Minimum request spacing for a provider."""
        if provider == "semantic_scholar":
            return cls.SEMANTIC_SCHOLAR_RATE_INTERVAL
        return cls.OPENALEX_RATE_INTERVAL

    @classmethod
    def get_summary(cls) -> dict[str, Any]:
        """Get configuration summary for debugging."""
        return {
            "project_root": str(cls.PROJECT_ROOT),
            "cache_dir": str(cls.CACHE_DIR),
            "log_level": cls.LOG_LEVEL,
            "provider": cls.PROVIDER,
            "api_keys_configured": {
                "semantic_scholar": bool(cls.SEMANTIC_SCHOLAR_API_KEY),
                "openalex_email": bool(cls.OPENALEX_EMAIL),
            },
            "limits": {
                "safe_max_limit": cls.SAFE_MAX_LIMIT,
                "max_query_limit": cls.MAX_QUERY_LIMIT,
            },
            "cache": {
                "search_ttl_seconds": cls.SEARCH_TTL_SECONDS,
                "ephemeral_ttl_seconds": cls.EPHEMERAL_TTL_SECONDS,
                "ephemeral_max_entries": cls.EPHEMERAL_MAX_ENTRIES,
                "ephemeral_max_bytes": cls.EPHEMERAL_MAX_BYTES,
                "hydrate_missing_papers": cls.HYDRATE_MISSING_PAPERS,
            },
            "retry": {
                "max_retries": cls.MAX_RETRIES,
                "base_delay": cls.RETRY_BASE_DELAY,
            },
            "debug": cls.DEBUG,
        }
