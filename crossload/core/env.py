"""
Environment variable management with .env file support.

Loads ``.env`` files through python-dotenv and substitutes ``${VAR}``
references in YAML configuration.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

_SUBSTITUTION = re.compile(r"\$\{([^}:]+)(?::([?-])([^}]*))?\}")
_BARE_VARIABLE = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


class EnvManager:
    """
    Manages environment variables for crossload.

    Example:
        >>> env = EnvManager()
        >>> env.load()  # Loads .env if exists
        >>> limit = env.get_int("CROSSLOAD_MAX_CONCURRENT_TRANSFERS", 2)
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        """
        Args:
            project_root: Directory searched for ``.env`` (defaults to cwd)
            auto_load: Load ``.env`` immediately if present
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False

        if auto_load:
            self.load()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from a .env file.

        Returns:
            True if a file was found and loaded
        """
        env_path = Path(env_file) if env_file else self.project_root / ".env"
        if not env_path.exists():
            return False

        load_dotenv(env_path, override=override)
        self._loaded = True
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        value = os.environ.get(key, default)
        if required and value is None:
            msg = f"Required environment variable not set: {key}"
            raise ValueError(msg)
        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = (self.get(key, "") or "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        if value in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        try:
            return int(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        try:
            return float(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    def get_mapping(self, key: str) -> dict[str, str]:
        """
        Parse ``id=value,id2=value2`` into a dict.

        Example:
            >>> os.environ["CROSSLOAD_LOCAL_LOCATIONS"] = "data=/mnt/data,scratch=/tmp/x"
            >>> env.get_mapping("CROSSLOAD_LOCAL_LOCATIONS")
            {'data': '/mnt/data', 'scratch': '/tmp/x'}
        """
        raw = self.get(key, "") or ""
        mapping: dict[str, str] = {}
        for pair in raw.split(","):
            name, sep, value = pair.partition("=")
            if sep and name.strip() and value.strip():
                mapping[name.strip()] = value.strip()
        return mapping

    def substitute(self, text: str) -> str:
        """
        Substitute environment variables in text.

        Supports ``${VAR}``, ``${VAR:-default}``, ``${VAR:?error}`` and ``$VAR``.
        """

        def replace(match: re.Match) -> str:
            var_name, operator, operand = match.group(1), match.group(2), match.group(3)
            value = os.environ.get(var_name)

            if operator == "-":
                return value if value is not None else operand
            if operator == "?":
                if value is None:
                    raise ValueError(operand or f"Required variable not set: {var_name}")
                return value
            return value if value is not None else f"${{{var_name}}}"

        text = _SUBSTITUTION.sub(replace, text)
        return _BARE_VARIABLE.sub(lambda m: os.environ.get(m.group(1), m.group(0)), text)

    def substitute_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Recursively substitute environment variables in dictionary values."""
        result: dict[str, Any] = {}
        for key, value in data.items():
            result[key] = self._substitute_value(value)
        return result

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.substitute(value)
        if isinstance(value, dict):
            return self.substitute_dict(value)
        if isinstance(value, list):
            return [self._substitute_value(item) for item in value]
        return value


_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Get the global environment manager instance."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager()
    return _global_env
