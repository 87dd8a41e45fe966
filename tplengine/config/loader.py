# tplengine/config/loader.py
"""
Handles loading and merging of engine defaults from TOML files.
"""
import toml
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from tplengine.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

PROJECT_CONFIG_FILENAMES = [".tplengine.toml", "tplengine.toml", "pyproject.toml"]
USER_CONFIG_DIR = Path.home() / ".config" / "tplengine"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.toml"

# maps keys accepted in config files to Engine option names.
CONFIG_KEY_TO_ENGINE_OPTION_MAP: Dict[str, str] = {
    "escape": "escape",
    "evaluate": "evaluate",
    "interpolate": "interpolate",
    "regex": "regex",
    "variable": "variable",
    "source_url": "sourceURL",
    "data": "data",
}

def _load_toml_file_data(file_path: Path) -> Dict[str, Any]:
    if not file_path.is_file(): return {}
    log.debug("loading_toml_config_file", path=str(file_path))
    try:
        data = toml.load(file_path)
        return data.get("tool", {}).get("tplengine", {}) if file_path.name == "pyproject.toml" else data
    except (toml.TomlDecodeError, OSError) as e:
        log.error("config_file_load_error", path=str(file_path), error=str(e))
        return {}

def load_and_merge_configs(cwd: Optional[Path] = None, user_config_file: Optional[Path] = None) -> Dict[str, Any]:
    """
    Merges the user-level config with the first project config found in `cwd`.
    Project values override user values; `profiles` tables are merged by name.
    """
    cwd = cwd or Path.cwd()
    user_config_file = user_config_file or USER_CONFIG_FILE
    merged_toml_data: Dict[str, Any] = {}
    if user_config_file.is_file():
        log.info("loading_user_global_config", path=str(user_config_file))
        merged_toml_data.update(_load_toml_file_data(user_config_file))

    for filename in PROJECT_CONFIG_FILENAMES:
        candidate = cwd / filename
        if candidate.is_file():
            project_settings = _load_toml_file_data(candidate)
            if project_settings:
                log.info("loading_project_local_config", path=str(candidate))
                user_profiles = merged_toml_data.get("profiles", {})
                project_profiles = project_settings.pop("profiles", {})
                if isinstance(user_profiles, dict) and isinstance(project_profiles, dict):
                    user_profiles.update(project_profiles)
                    merged_toml_data["profiles"] = user_profiles
                elif isinstance(project_profiles, dict):
                    merged_toml_data["profiles"] = project_profiles
                merged_toml_data.update(project_settings)
                break
    if not merged_toml_data: log.debug("no_configuration_files_loaded")
    return merged_toml_data

def _map_config_keys(values: Dict[str, Any], origin: str) -> Dict[str, Any]:
    engine_options: Dict[str, Any] = {}
    for config_key, value in values.items():
        option_name = CONFIG_KEY_TO_ENGINE_OPTION_MAP.get(config_key)
        if option_name is None:
            if config_key != "profiles":
                log.warning("unknown_config_key_ignored", key=config_key, origin=origin)
            continue
        if option_name == "data" and not isinstance(value, dict):
            raise ConfigurationError(f"'data' in {origin} must be a table, got {type(value).__name__}")
        engine_options[option_name] = value
    return engine_options

def resolve_engine_options(raw_config: Dict[str, Any], profile: Optional[str] = None) -> Dict[str, Any]:
    """Flattens top-level config values and an optional named profile into Engine options."""
    engine_options = _map_config_keys(raw_config, "config")
    if profile:
        profile_values = raw_config.get("profiles", {}).get(profile)
        if isinstance(profile_values, dict):
            log.info("applying_profile_settings", profile=profile)
            profile_options = _map_config_keys(profile_values, f"profile '{profile}'")
            if "data" in profile_options and "data" in engine_options:
                profile_options["data"] = {**engine_options["data"], **profile_options["data"]}
            engine_options.update(profile_options)
        else:
            log.warning("profile_not_found_in_config_files", profile_name=profile)
    return engine_options
