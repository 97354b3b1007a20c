"""Exit code constants for probes.

Distinct exit codes for different failure scenarios make it possible to tell
a misconfigured run from an application that misbehaved.

Exit Code Ranges:
    0: Success
    1-9: Blockers (missing preconditions, environment issues)
    10-19: Validation failures (expected state never observed)
    20-29: Execution failures (browser errors, unexpected errors)
    30-39: Resource failures (file I/O, network)
"""

from __future__ import annotations

# Success
EXIT_SUCCESS = 0

# Blockers (1-9): Missing preconditions that prevent execution
EXIT_BLOCKER_MISSING_ENV = 1  # Missing environment variables
EXIT_BLOCKER_MISSING_AUTH = 2  # Auth snapshot missing, unreadable or expired
EXIT_BLOCKER_INVALID_ARGS = 5  # Invalid command-line arguments
EXIT_BLOCKER_BACKEND_UNAVAILABLE = 7  # Backend health endpoint not responding

# Validation Failures (10-19): The application did not reach the expected state
EXIT_VALIDATION_CONDITION_TIMEOUT = 10  # Polled condition never satisfied
EXIT_VALIDATION_CHECK_FAILED = 11  # One or more recorded checks failed

# Execution Failures (20-29): Probe execution errors
EXIT_EXEC_BROWSER_ERROR = 20  # Playwright launch/navigation failure
EXIT_EXEC_UNEXPECTED_ERROR = 23  # Unexpected runtime error

# Resource Failures (30-39): File and network errors
EXIT_RESOURCE_FILE_ERROR = 31  # File I/O error
EXIT_RESOURCE_NETWORK_ERROR = 32  # Network/API error


def get_exit_code_description(code: int) -> str:
    """Get human-readable description for an exit code.

    Examples:
        >>> get_exit_code_description(EXIT_BLOCKER_MISSING_AUTH)
        'Blocker: Auth snapshot missing, unreadable or expired'
        >>> get_exit_code_description(99)
        'Unknown exit code: 99'
    """
    descriptions = {
        EXIT_SUCCESS: "Success",
        # Blockers
        EXIT_BLOCKER_MISSING_ENV: "Blocker: Missing environment variables",
        EXIT_BLOCKER_MISSING_AUTH: "Blocker: Auth snapshot missing, unreadable or expired",
        EXIT_BLOCKER_INVALID_ARGS: "Blocker: Invalid command-line arguments",
        EXIT_BLOCKER_BACKEND_UNAVAILABLE: "Blocker: Backend not responding",
        # Validation Failures
        EXIT_VALIDATION_CONDITION_TIMEOUT: "Validation Failure: Condition not observed before timeout",
        EXIT_VALIDATION_CHECK_FAILED: "Validation Failure: One or more checks failed",
        # Execution Failures
        EXIT_EXEC_BROWSER_ERROR: "Execution Failure: Browser automation error",
        EXIT_EXEC_UNEXPECTED_ERROR: "Execution Failure: Unexpected runtime error",
        # Resource Failures
        EXIT_RESOURCE_FILE_ERROR: "Resource Failure: File I/O error",
        EXIT_RESOURCE_NETWORK_ERROR: "Resource Failure: Network/API error",
    }
    return descriptions.get(code, f"Unknown exit code: {code}")


def is_blocker(code: int) -> bool:
    """Check if exit code represents a blocker (missing precondition)."""
    return 1 <= code <= 9


def is_validation_failure(code: int) -> bool:
    """Check if exit code represents a validation failure."""
    return 10 <= code <= 19


def is_execution_failure(code: int) -> bool:
    """Check if exit code represents an execution failure."""
    return 20 <= code <= 29


def is_resource_failure(code: int) -> bool:
    """Check if exit code represents a resource failure."""
    return 30 <= code <= 39


def exit_category(code: int) -> str:
    """Name the range an exit code falls in: success, blocker, validation, execution, resource or unknown."""
    if code == EXIT_SUCCESS:
        return "success"
    if is_blocker(code):
        return "blocker"
    if is_validation_failure(code):
        return "validation"
    if is_execution_failure(code):
        return "execution"
    if is_resource_failure(code):
        return "resource"
    return "unknown"
