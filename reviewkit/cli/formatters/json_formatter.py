"""JSON output formatter for CLI commands.

Provides structured JSON output for machine-readable parsing.
"""

import json
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Dict, Optional


def _default(value: Any) -> Any:
    """Serialize dataclasses, enums and sets emitted by the API layer."""
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def format_json(data: Any, success: bool = True) -> str:
    """Format data as JSON output.

    Args:
        data: Data to format (dict, list, dataclass or other JSON-serializable)
        success: Whether the operation was successful

    Returns:
        JSON string with standard wrapper
    """
    output = {
        "success": success,
        "data": data
    }
    return json.dumps(output, indent=2, ensure_ascii=False, default=_default)


def format_json_error(
    error_type: str,
    message: str,
    code: int = 1,
    hint: Optional[str] = None
) -> str:
    """Format an error as JSON output.

    Args:
        error_type: Type of error (e.g., "ConfigError", "LogNotFound")
        message: Error message
        code: Exit code
        hint: Optional hint for fixing the error

    Returns:
        JSON string with error details
    """
    error_data: Dict[str, Any] = {
        "type": error_type,
        "code": code,
        "message": message,
    }
    if hint:
        error_data["hint"] = hint

    output = {
        "success": False,
        "error": error_data
    }
    return json.dumps(output, indent=2, ensure_ascii=False)
