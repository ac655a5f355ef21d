"""
Configuration Loader for Guardian Script Scanner.

Implements a layered configuration system:
    hardcoded defaults < profile YAML < .guardian.yml < env vars < CLI args

Usage:
    from config_loader import build_unified_config, load_profile
    config = build_unified_config(profile="forensic", cli_args=args)
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project root detection
# ---------------------------------------------------------------------------

def _find_project_root() -> Path:
    """Find the Guardian project root by looking for known markers."""
    current = Path(__file__).resolve().parent
    for ancestor in [current, *current.parents]:
        if (ancestor / "profiles").is_dir() and (ancestor / "scripts").is_dir():
            return ancestor
    return current.parent


PROJECT_ROOT = _find_project_root()

# ---------------------------------------------------------------------------
# Default configuration
# ---------------------------------------------------------------------------

def get_default_config() -> Dict[str, Any]:
    """Return all configuration parameters with sensible defaults.

    This is the lowest-priority layer.  Every configurable key must appear
    here so that downstream code never needs to guard against missing keys.
    """
    return {
        # -- AI --
        "ai_provider": "auto",
        "fast_model": "auto",
        "deep_model": "auto",
        "anthropic_api_key": "",
        "openai_api_key": "",
        "ollama_endpoint": "",
        "max_output_tokens": 8192,
        "thinking_budget_standard": 1024,
        "thinking_budget_super_pro": 4096,

        # -- Retry --
        "retry_max_retries": 2,
        "retry_initial_delay": 0.5,

        # -- Limits --
        "audit_max_chars": 15000,
        "remediation_max_chars": 20000,
        "explain_max_chars": 2500,
        "max_file_size": 0,  # 0 = unlimited

        # -- Concurrency windows per mode --
        "concurrency_turbo": 12,
        "concurrency_standard": 5,
        "concurrency_super_pro": 2,

        # -- Feature toggles --
        "enable_ai_audit": True,
        "enable_remediation": True,

        # -- Files --
        "source_extensions": ".lua",
        "archive_extensions": ".zip",

        # -- Output --
        "default_mode": "STANDARD",
        "output_dir": ".guardian/results",
    }

# ---------------------------------------------------------------------------
# Profile loading
# ---------------------------------------------------------------------------

def _profile_search_paths(profile_name: str) -> List[Path]:
    """Return candidate YAML paths for *profile_name*, in priority order."""
    return [
        PROJECT_ROOT / "profiles" / f"{profile_name}.yml",              # built-in
        Path.home() / ".guardian" / "profiles" / f"{profile_name}.yml",  # user
        Path(".guardian") / "profiles" / f"{profile_name}.yml",          # project-local
    ]


def _load_raw_profile(profile_name: str, _chain: Optional[List[str]] = None) -> dict:
    """Load raw YAML dict for *profile_name*, resolving ``_extends``.

    Parameters
    ----------
    profile_name:
        Name of the profile to load (without ``.yml`` extension).
    _chain:
        Internal recursion guard tracking the inheritance chain.

    Returns
    -------
    dict
        The merged (nested) profile dict with parent values as base.

    Raises
    ------
    FileNotFoundError
        If the profile YAML cannot be found in any search path.
    ValueError
        If a circular ``_extends`` chain is detected.
    """
    if _chain is None:
        _chain = []

    if profile_name in _chain:
        raise ValueError(
            f"Circular profile inheritance detected: "
            f"{' -> '.join(_chain)} -> {profile_name}"
        )
    _chain.append(profile_name)

    loaded_path: Optional[Path] = None
    for candidate in _profile_search_paths(profile_name):
        if candidate.is_file():
            loaded_path = candidate
            break

    if loaded_path is None:
        raise FileNotFoundError(
            f"Profile '{profile_name}' not found.  Searched: "
            + ", ".join(str(p) for p in _profile_search_paths(profile_name))
        )

    logger.info("Loading profile '%s' from %s", profile_name, loaded_path)
    with open(loaded_path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    # Handle inheritance
    parent_name = raw.pop("_extends", None)
    if parent_name:
        parent = _load_raw_profile(parent_name, _chain=_chain)
        raw = _deep_merge_nested(parent, raw)

    return raw


def _deep_merge_nested(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (nested dicts)."""
    merged = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge_nested(merged[key], value)
        else:
            merged[key] = value
    return merged

# ---------------------------------------------------------------------------
# Flatten nested YAML -> flat config dict
# ---------------------------------------------------------------------------

# section -> prefix applied to every key of that section
_SECTION_PREFIX_MAP = {
    "features": "enable_",
    "concurrency": "concurrency_",
    "retry": "retry_",
    "thinking_budget": "thinking_budget_",
}

# sections whose keys map directly onto config keys
_DIRECT_SECTIONS = ("limits", "files", "output")


def flatten_profile(nested: dict) -> Dict[str, Any]:
    """Convert a nested profile YAML dict to a flat config dict.

    Mapping rules:
    - ``nested["ai"]["provider"]``            -> ``ai_provider``
    - ``nested["ai"][key]``                   -> key (``fast_model``, ``deep_model``, ...)
    - ``nested["features"][key]``             -> ``enable_{key}``
    - ``nested["concurrency"][mode]``         -> ``concurrency_{mode}``
    - ``nested["retry"][key]``                -> ``retry_{key}``
    - ``nested["thinking_budget"][mode]``     -> ``thinking_budget_{mode}``
    - ``nested["limits" | "files" | "output"][key]`` -> key (directly)
    - Top-level scalar keys (``name``, ``description``, ``default_mode``)
      are passed through as-is.

    Only non-None values are included.
    """
    flat: Dict[str, Any] = {}

    # -- ai section --
    ai = nested.get("ai")
    if isinstance(ai, dict):
        for key, value in ai.items():
            if value is None:
                continue
            flat["ai_provider" if key == "provider" else key] = value

    # -- prefixed sections --
    for section, prefix in _SECTION_PREFIX_MAP.items():
        block = nested.get(section)
        if isinstance(block, dict):
            for key, value in block.items():
                if value is not None:
                    flat[f"{prefix}{str(key).lower()}"] = value

    # -- direct sections --
    for section in _DIRECT_SECTIONS:
        block = nested.get(section)
        if isinstance(block, dict):
            for key, value in block.items():
                if value is not None:
                    flat[key] = value

    # -- top-level scalars --
    for scalar_key in ("name", "description", "default_mode"):
        if nested.get(scalar_key) is not None:
            flat[scalar_key] = nested[scalar_key]

    return flat


def load_profile(profile_name: str) -> Dict[str, Any]:
    """Load a profile by name and return a flat config dict.

    Search order (first match wins per path):
      1. ``{PROJECT_ROOT}/profiles/{name}.yml``      (built-in)
      2. ``~/.guardian/profiles/{name}.yml``          (user)
      3. ``.guardian/profiles/{name}.yml``            (project-local)

    The ``_extends`` key enables profile inheritance.
    """
    raw = _load_raw_profile(profile_name)
    return flatten_profile(raw)

# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

# Mapping: (env_var_name, ...) -> (config_key, type)
# Types: "str", "bool", "int", "float"
_ENV_MAPPINGS: List[tuple] = [
    # AI
    (("AI_PROVIDER", "GUARDIAN_AI_PROVIDER"),       "ai_provider",          "str"),
    (("GUARDIAN_FAST_MODEL",),                      "fast_model",           "str"),
    (("GUARDIAN_DEEP_MODEL",),                      "deep_model",           "str"),
    (("ANTHROPIC_API_KEY",),                        "anthropic_api_key",    "str"),
    (("OPENAI_API_KEY",),                           "openai_api_key",       "str"),
    (("OLLAMA_ENDPOINT",),                          "ollama_endpoint",      "str"),
    (("MAX_OUTPUT_TOKENS",),                        "max_output_tokens",    "int"),

    # Retry
    (("RETRY_MAX_RETRIES",),                        "retry_max_retries",    "int"),
    (("RETRY_INITIAL_DELAY",),                      "retry_initial_delay",  "float"),

    # Limits
    (("MAX_FILE_SIZE",),                            "max_file_size",        "int"),

    # Feature toggles
    (("ENABLE_AI_AUDIT",),                          "enable_ai_audit",      "bool"),
    (("ENABLE_REMEDIATION",),                       "enable_remediation",   "bool"),

    # Output
    (("GUARDIAN_MODE",),                            "default_mode",         "str"),
    (("GUARDIAN_OUTPUT_DIR",),                      "output_dir",           "str"),
]


def _coerce(raw: str, type_tag: str) -> Any:
    """Convert a raw env-var string to the appropriate Python type."""
    if type_tag == "bool":
        return raw.lower() in ("true", "1", "yes")
    if type_tag == "int":
        return int(raw)
    if type_tag == "float":
        return float(raw)
    return raw


def load_env_overrides() -> Dict[str, Any]:
    """Load configuration values from explicitly-set environment variables.

    Only variables that are **present** in ``os.environ`` are returned so
    that defaults or profile values are not accidentally overwritten.  The
    first name found wins (left-to-right in the mapping tuple).
    """
    overrides: Dict[str, Any] = {}

    for env_names, config_key, type_tag in _ENV_MAPPINGS:
        for env_name in env_names:
            if env_name in os.environ:
                try:
                    overrides[config_key] = _coerce(os.environ[env_name], type_tag)
                except (ValueError, TypeError) as exc:
                    logger.warning(
                        "Ignoring env var %s: could not convert %r to %s (%s)",
                        env_name, os.environ[env_name], type_tag, exc,
                    )
                break  # first match wins

    return overrides

# ---------------------------------------------------------------------------
# CLI argument extraction
# ---------------------------------------------------------------------------

# Mapping: argparse attribute -> config key
_CLI_ATTR_MAP: Dict[str, str] = {
    "provider": "ai_provider",
    "fast_model": "fast_model",
    "deep_model": "deep_model",
    "mode": "default_mode",
    "output_dir": "output_dir",
    "max_retries": "retry_max_retries",
    "max_file_size": "max_file_size",
    "profile": "_profile",  # handled separately in build_unified_config
}


def extract_cli_overrides(args: Any) -> Dict[str, Any]:
    """Extract explicitly-set CLI arguments into a flat config dict.

    Only attributes whose value is not ``None`` are included, so that
    argparse defaults do not shadow earlier layers.
    """
    if args is None:
        return {}

    overrides: Dict[str, Any] = {}
    for attr, config_key in _CLI_ATTR_MAP.items():
        value = getattr(args, attr, None)
        if value is not None:
            overrides[config_key] = value

    # --no-ai / --no-remediation are store_true switches
    if getattr(args, "no_ai", False):
        overrides["enable_ai_audit"] = False
        overrides["enable_remediation"] = False
    if getattr(args, "no_remediation", False):
        overrides["enable_remediation"] = False

    return overrides

# ---------------------------------------------------------------------------
# Merge helpers
# ---------------------------------------------------------------------------

def deep_merge(base: dict, override: dict) -> dict:
    """Merge *override* into *base*.  Only non-None override values win.

    This operates on **flat** dicts (no recursive descent).
    """
    merged = dict(base)
    for key, value in override.items():
        if value is not None:
            merged[key] = value
    return merged

# ---------------------------------------------------------------------------
# .guardian.yml loader
# ---------------------------------------------------------------------------

def _load_guardian_yml(repo_path: str) -> Dict[str, Any]:
    """Load ``.guardian.yml`` from *repo_path* and return flat config dict.

    Returns an empty dict if the file does not exist.
    """
    yml_path = Path(repo_path) / ".guardian.yml"
    if not yml_path.is_file():
        return {}

    logger.info("Loading .guardian.yml from %s", yml_path)
    with open(yml_path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    return flatten_profile(raw)

# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def build_unified_config(
    profile: Optional[str] = None,
    cli_args: Any = None,
    repo_path: str = ".",
) -> Dict[str, Any]:
    """Build a fully-merged configuration dict.

    Layer precedence (last wins):
        1. Hard-coded defaults          (``get_default_config()``)
        2. Profile YAML                 (``load_profile()``)
        3. ``.guardian.yml``            (project-level overrides)
        4. Environment variables        (``load_env_overrides()``)
        5. CLI arguments                (``extract_cli_overrides()``)

    Parameters
    ----------
    profile:
        Explicit profile name.  If ``None``, the function checks
        ``cli_args.profile``, then the ``GUARDIAN_PROFILE`` env var.
    cli_args:
        An ``argparse.Namespace`` (or ``None``).
    repo_path:
        Directory searched for ``.guardian.yml``.
    """
    # -- Layer 1: defaults --
    config = get_default_config()

    # -- Determine profile name --
    profile_name = profile
    if profile_name is None and cli_args is not None:
        profile_name = getattr(cli_args, "profile", None)
    if profile_name is None:
        profile_name = os.environ.get("GUARDIAN_PROFILE")

    # -- Layer 2: profile --
    if profile_name:
        try:
            profile_values = load_profile(profile_name)
            config = deep_merge(config, profile_values)
            logger.info("Applied profile '%s'", profile_name)
        except FileNotFoundError:
            logger.warning("Profile '%s' not found; skipping", profile_name)

    # -- Layer 3: .guardian.yml --
    guardian_yml = _load_guardian_yml(repo_path)
    if guardian_yml:
        config = deep_merge(config, guardian_yml)
        logger.info("Applied .guardian.yml overrides (%d keys)", len(guardian_yml))

    # -- Layer 4: env vars --
    env_overrides = load_env_overrides()
    if env_overrides:
        config = deep_merge(config, env_overrides)
        logger.debug("Applied %d env-var overrides", len(env_overrides))

    # -- Layer 5: CLI args --
    cli_overrides = extract_cli_overrides(cli_args)
    cli_overrides.pop("_profile", None)
    if cli_overrides:
        config = deep_merge(config, cli_overrides)
        logger.debug("Applied %d CLI overrides", len(cli_overrides))

    return config

# ---------------------------------------------------------------------------
# Profile discovery
# ---------------------------------------------------------------------------

def list_available_profiles() -> List[str]:
    """Return the names of all available profiles."""
    names: set = set()

    search_dirs = [
        PROJECT_ROOT / "profiles",
        Path.home() / ".guardian" / "profiles",
        Path(".guardian") / "profiles",
    ]
    for directory in search_dirs:
        if directory.is_dir():
            for yml_file in directory.glob("*.yml"):
                names.add(yml_file.stem)

    return sorted(names)

# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------

_VALID_AI_PROVIDERS = {"auto", "anthropic", "openai", "ollama", "none"}
_VALID_MODES = {"TURBO", "STANDARD", "SUPER_PRO"}


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate a configuration dict and return a list of warnings/errors.

    An invalid configuration never stops a scan: AI calls simply fall back
    to heuristics-only results.  The messages are for the operator.
    """
    issues: List[str] = []

    # -- API key requirements per provider --
    provider = config.get("ai_provider", "auto")
    if provider == "anthropic" and not config.get("anthropic_api_key"):
        issues.append(
            "ERROR: ai_provider is 'anthropic' but ANTHROPIC_API_KEY is not set."
        )
    if provider == "openai" and not config.get("openai_api_key"):
        issues.append(
            "ERROR: ai_provider is 'openai' but OPENAI_API_KEY is not set."
        )
    if provider == "ollama" and not config.get("ollama_endpoint"):
        issues.append(
            "WARNING: ai_provider is 'ollama' but OLLAMA_ENDPOINT is not set. "
            "Defaulting to http://localhost:11434."
        )
    if provider == "auto" and config.get("enable_ai_audit", True):
        has_any = (
            config.get("anthropic_api_key")
            or config.get("openai_api_key")
            or config.get("ollama_endpoint")
        )
        if not has_any:
            issues.append(
                "WARNING: ai_provider is 'auto' but no API keys or endpoints are "
                "configured.  Scans will run on signature heuristics only."
            )

    # -- Valid enum values --
    if provider not in _VALID_AI_PROVIDERS:
        issues.append(
            f"ERROR: Invalid ai_provider '{provider}'. "
            f"Must be one of: {', '.join(sorted(_VALID_AI_PROVIDERS))}"
        )

    mode = str(config.get("default_mode", "STANDARD")).upper().replace("-", "_")
    if mode not in _VALID_MODES:
        issues.append(
            f"ERROR: Invalid default_mode '{config.get('default_mode')}'. "
            f"Must be one of: {', '.join(sorted(_VALID_MODES))}"
        )

    # -- Numeric range checks --
    for key in ("concurrency_turbo", "concurrency_standard", "concurrency_super_pro"):
        value = config.get(key, 1)
        if isinstance(value, (int, float)) and value < 1:
            issues.append(f"ERROR: {key} must be >= 1.")

    retries = config.get("retry_max_retries", 2)
    if isinstance(retries, (int, float)) and retries < 0:
        issues.append("ERROR: retry_max_retries must be >= 0.")

    delay = config.get("retry_initial_delay", 0.5)
    if isinstance(delay, (int, float)) and delay < 0:
        issues.append("ERROR: retry_initial_delay must be >= 0.")

    for key in ("audit_max_chars", "remediation_max_chars", "explain_max_chars"):
        value = config.get(key, 1)
        if isinstance(value, (int, float)) and value < 1:
            issues.append(f"ERROR: {key} must be >= 1.")

    if config.get("enable_remediation") and not config.get("enable_ai_audit"):
        issues.append(
            "WARNING: enable_remediation without enable_ai_audit only repairs "
            "files with CRITICAL signature matches."
        )

    return issues
