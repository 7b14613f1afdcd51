# grist_invoice_sync/config.py
# Description: Configuration management for the invoice sync service.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
#
# Third-Party Imports
from loguru import logger
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
#
# Local Imports
from grist_invoice_sync.grist_api.exceptions import ConfigError
#
#######################################################################################################################
#
# Functions:

# --- Path to the configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "grist_invoice_sync" / "config.toml"
# Fallback location of the API key, shared with other Grist API tools.
API_KEY_FILE_PATH = Path.home() / ".grist-api-key"

CONFIG_TOML_CONTENT = """
# Configuration for grist_invoice_sync
# Environment variables (GRIST_SERVER, GRIST_API_KEY, SOURCE_DOC_ID, ...) override values here.

[grist]
server = "http://localhost:8080"
# api_key = ""              # Prefer GRIST_API_KEY or ~/.grist-api-key
source_doc_id = "wW5ATuoLAKwH95zj7b8vkf"
chunk_size = 500            # Max records per request
dry_run = false             # Log mutating requests instead of sending them
request_timeout = 30.0      # Seconds

[server]
host = "localhost"
port = 7777

[logging]
log_level = "INFO"
# log_file = "~/.local/share/grist_invoice_sync/grist_invoice_sync.log"
"""

DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)

# env var -> (section, key)
ENV_OVERRIDES = {
    "GRIST_SERVER": ("grist", "server"),
    "GRIST_API_KEY": ("grist", "api_key"),
    "SOURCE_DOC_ID": ("grist", "source_doc_id"),
    "GRIST_CHUNK_SIZE": ("grist", "chunk_size"),
    "GRIST_DRYRUN": ("grist", "dry_run"),
    "GRIST_REQUEST_TIMEOUT": ("grist", "request_timeout"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "LOG_LEVEL": ("logging", "log_level"),
}


class GristSettings(BaseModel):
    """Validated settings, built once at startup and passed to whatever needs them."""
    server: str = "http://localhost:8080"
    api_key: str = Field(..., min_length=1)
    source_doc_id: str = Field(..., min_length=1)
    chunk_size: int = Field(500, ge=1)
    dry_run: bool = False
    request_timeout: float = Field(30.0, gt=0)
    host: str = "localhost"
    port: int = Field(7777, ge=1, le=65535)
    log_level: str = "INFO"
    log_file: Optional[Path] = None


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config_path() -> Path:
    return Path(os.getenv("GRIST_SYNC_CONFIG", str(DEFAULT_CONFIG_PATH))).expanduser()


def load_config_file(config_path: Path, create_if_missing: bool = True) -> Dict[str, Any]:
    """
    Loads the TOML config at `config_path` merged over the built-in defaults.
    If the file doesn't exist, it's created with the default content.
    """
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)
    if not config_path.exists():
        if not create_if_missing:
            return loaded_config
        logger.info(f"Config file not found at {config_path}. Creating with default values.")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(CONFIG_TOML_CONTENT, encoding="utf-8")
        except OSError as e:
            logger.error(f"Could not create default config file {config_path}: {e}. Using internal defaults.")
        return loaded_config

    logger.info(f"Loading config from: {config_path}")
    try:
        with open(config_path, "rb") as f:
            user_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Error decoding TOML config file {config_path}: {e}") from e
    return deep_merge_dicts(loaded_config, user_config)


def apply_env_overrides(config: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    merged = copy.deepcopy(config)
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_var)
        if value not in (None, ""):
            merged.setdefault(section, {})[key] = value
    return merged


def read_api_key_file(key_path: Path = API_KEY_FILE_PATH) -> Optional[str]:
    if key_path.is_file():
        return key_path.read_text(encoding="utf-8").strip() or None
    return None


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    api_key_path: Path = API_KEY_FILE_PATH,
) -> GristSettings:
    """
    Builds GristSettings from the built-in defaults, the TOML config file, and environment
    variables (in increasing precedence). The API key falls back to `api_key_path`.

    Raises ConfigError if required values (API key, source doc id) are missing or invalid.
    """
    environ = os.environ if environ is None else environ
    config = load_config_file(config_path or get_config_path())
    config = apply_env_overrides(config, environ)

    grist_section = config.get("grist", {})
    if not grist_section.get("api_key"):
        grist_section["api_key"] = read_api_key_file(api_key_path)
        if not grist_section["api_key"]:
            raise ConfigError(f"Grist API key not found in GRIST_API_KEY env, config file, nor in {api_key_path}")

    flat = {**grist_section, **config.get("server", {}), **config.get("logging", {})}
    try:
        settings = GristSettings(**flat)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    logger.debug(f"Loaded settings: server={settings.server}, source_doc_id={settings.source_doc_id}, "
                 f"chunk_size={settings.chunk_size}, dry_run={settings.dry_run}")
    return settings

#
# End of grist_invoice_sync/config.py
#######################################################################################################################
