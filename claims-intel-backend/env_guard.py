#!/usr/bin/env python3
"""
Claims Intel Environment Guard - Startup Validation

Checks that the service's dependencies are importable and reports which
collaborators (Google Sheet, Slack webhooks, Groq) are configured.

Nothing here is mandatory: a missing collaborator only degrades its own
endpoints (empty claims, "Webhook not configured", 503 for AI generation).
Pass strict=True to turn missing packages into an EnvironmentError.

USAGE:
    from env_guard import validate_environment
    validate_environment()          # prints a report, returns bool
    environment_status()            # dict for /health
"""

import importlib
import os
import sys
from typing import Any, Dict, List, Tuple

import config

# ============================================================================
# CONFIGURATION
# ============================================================================
REQUIRED_PACKAGES = [
    # (module_name, package_name)
    ("fastapi", "fastapi"),
    ("uvicorn", "uvicorn"),
    ("pydantic", "pydantic"),
    ("dotenv", "python-dotenv"),
    ("sqlparse", "sqlparse"),
    ("aiohttp", "aiohttp"),
    ("pandas", "pandas"),
    ("google.oauth2.service_account", "google-auth"),
    ("requests", "requests"),
    ("llama_index.core", "llama-index-core"),
    ("llama_index.llms.groq", "llama-index-llms-groq"),
]

# env var -> endpoints that degrade without it
OPTIONAL_ENV_VARS = {
    "GOOGLE_SERVICE_ACCOUNT_JSON_BASE64": "/claims (returns no data)",
    "GOOGLE_SHEET_ID": "/claims (returns no data)",
    "SLACK_WEBHOOK_HEALTHOPS": "#health-ops posts",
    "SLACK_WEBHOOK_CS": "#customer-success posts",
    "GROQ_API_KEY": "/generate-sql (503)",
}


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def in_virtualenv() -> bool:
    return hasattr(sys, "real_prefix") or sys.base_prefix != sys.prefix


def validate_packages() -> Tuple[List[str], Dict[str, str]]:
    """
    Import every required package.

    Returns:
        (errors, {package_name: version or "imported"})
    """
    errors = []
    versions = {}

    for module_name, package_name in REQUIRED_PACKAGES:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            errors.append(
                f"MISSING PACKAGE: {package_name}\n"
                f"  Import error: {e}\n"
                f"  Solution: pip install {package_name}"
            )
            continue
        versions[package_name] = getattr(module, "__version__", "imported")

    return errors, versions


def configured_env_vars() -> Dict[str, bool]:
    return {name: bool(os.getenv(name)) for name in OPTIONAL_ENV_VARS}


def validate_env_vars() -> List[str]:
    """Warnings for unset collaborator variables and malformed values."""
    warnings = []
    for name, degraded in OPTIONAL_ENV_VARS.items():
        value = os.getenv(name)
        if not value:
            warnings.append(f"{name} not set: {degraded}")
        elif name == "GROQ_API_KEY" and not value.startswith("gsk_"):
            warnings.append(f"{name} does not look like a Groq key (expected gsk_...)")
    return warnings


def _mask(value: str) -> str:
    return value[:4] + "..." + value[-4:] if len(value) > 12 else "***"


def environment_status() -> Dict[str, Any]:
    """Package and configuration status, safe to expose (no secret values)."""
    package_errors, versions = validate_packages()
    return {
        "python": sys.version.split()[0],
        "virtualenv": in_virtualenv(),
        "packages": versions,
        "missing_packages": len(package_errors),
        "configured": configured_env_vars(),
        "sheet_range": config.CLAIMS_SHEET_RANGE,
        "groq_model": config.GROQ_MODEL,
    }


def validate_environment(strict: bool = False) -> bool:
    """
    Run all checks and print a report.

    Args:
        strict: raise EnvironmentError when a package is missing.

    Returns:
        True when every package imports, False otherwise.
    """
    print("=" * 70)
    print("CLAIMS INTEL ENVIRONMENT GUARD - Startup Validation")
    print("=" * 70)

    print("\n[1/3] Python interpreter...")
    print(f"  Interpreter: {sys.executable}")
    print(f"  In venv: {in_virtualenv()}")

    print("\n[2/3] Checking required packages...")
    package_errors, versions = validate_packages()
    for package_name, version in versions.items():
        print(f"  {package_name}: {version}")

    print("\n[3/3] Checking collaborator configuration...")
    for name in OPTIONAL_ENV_VARS:
        value = os.getenv(name)
        print(f"  {name}: {_mask(value) if value else 'NOT SET'}")
    for warning in validate_env_vars():
        print(f"  WARNING: {warning}")

    print("\n" + "=" * 70)
    if package_errors:
        print("ENVIRONMENT VALIDATION FAILED!")
        print("=" * 70)
        for i, error in enumerate(package_errors, 1):
            print(f"\nError {i}:")
            print(error)
        if strict:
            raise EnvironmentError(
                f"Environment validation failed with {len(package_errors)} error(s). "
                f"See above for details."
            )
        return False

    print("ENVIRONMENT VALIDATION PASSED!")
    print("=" * 70)
    return True


# ============================================================================
# MAIN (for standalone testing)
# ============================================================================
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Claims Intel Environment Guard")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with error code when a package is missing"
    )
    args = parser.parse_args()

    try:
        success = validate_environment(strict=args.strict)
        sys.exit(0 if success else 1)
    except EnvironmentError as e:
        print(f"\n\nFATAL: {e}")
        sys.exit(1)
