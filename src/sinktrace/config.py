"""
Configuration module for analysis limits and environment settings.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv


# (attribute, environment variable, default)
LIMITS = (
    ("max_values", "SINKTRACE_MAX_VALUES", 20),
    ("max_errors", "SINKTRACE_MAX_ERRORS", 100),
    ("max_depth", "SINKTRACE_MAX_DEPTH", 12),
    ("max_mutations", "SINKTRACE_MAX_MUTATIONS", 5),
    ("max_call_args", "SINKTRACE_MAX_CALL_ARGS", 5),
    ("max_callers", "SINKTRACE_MAX_CALLERS", 50),
    ("excerpt_lines", "SINKTRACE_EXCERPT_LINES", 3),
    ("excerpt_width", "SINKTRACE_EXCERPT_WIDTH", 160),
)


class Config:
    """Configuration manager for analysis caps and settings."""

    def __init__(self, env_file: Optional[Path] = None, **overrides: int):
        """
        Initialize configuration and load environment variables.

        Args:
            env_file: Optional .env file to load (defaults to the project root)
            **overrides: Explicit values that win over the environment
        """
        if env_file is None:
            env_file = Path(__file__).parent.parent.parent / ".env"
        load_dotenv(env_file)

        self._invalid: List[str] = []
        self.max_values: int = 20
        self.max_errors: int = 100
        self.max_depth: int = 12
        self.max_mutations: int = 5
        self.max_call_args: int = 5
        self.max_callers: int = 50
        self.excerpt_lines: int = 3
        self.excerpt_width: int = 160

        for attr, env_name, default in LIMITS:
            if attr in overrides:
                value = overrides[attr]
            else:
                value = self._read_int(env_name, default)
            if value <= 0:
                self._invalid.append(env_name)
                value = default
            setattr(self, attr, value)

    def _read_int(self, env_name: str, default: int) -> int:
        raw = os.getenv(env_name)
        if raw is None or not raw.strip():
            return default
        try:
            return int(raw)
        except ValueError:
            self._invalid.append(env_name)
            return default

    def validate(self) -> dict:
        """
        Validate the loaded settings.

        Returns:
            Dictionary with validation results
        """
        missing: List[str] = []
        warnings = [
            f"{name} must be a positive integer - using the default"
            for name in self._invalid
        ]

        return {
            "valid": len(missing) == 0,
            "missing": missing,
            "warnings": warnings,
        }

    def as_dict(self) -> Dict[str, int]:
        """Return the effective limits keyed by attribute name."""
        return {attr: getattr(self, attr) for attr, _, _ in LIMITS}


# Global config instance
config = Config()
