import os
import yaml
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from dotenv import load_dotenv
from .models import AppConfig

DEFAULT_CONFIG_PATH = Path("conf/clipvault.yaml")

# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "COMMIT_MAX_BYTES": ("limits", "commit_max_bytes"),
    "STORE_MAX_BYTES": ("limits", "store_max_bytes"),
    "UPLOAD_MAX_BYTES": ("limits", "upload_max_bytes"),
    "R2_ENDPOINT": ("storage", "endpoint_url"),
    "R2_BUCKET_NAME": ("storage", "bucket"),
    "R2_ACCESS_KEY_ID": ("storage", "access_key_id"),
    "R2_SECRET_ACCESS_KEY": ("storage", "secret_access_key"),
    "SUPABASE_URL": ("database", "url"),
    "SUPABASE_ANON_KEY": ("database", "key"),
}

def apply_env_overrides(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Overlays set environment variables onto raw config data."""
    for var, (section, field) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        section_data = data.get(section)
        if not isinstance(section_data, dict):
            section_data = {}
            data[section] = section_data
        section_data[field] = value
    return data

def load_config(config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Loads YAML config (if present), applies environment overrides, validates into AppConfig."""
    data: Dict[str, Any] = {}
    if config_path is not None:
        if config_path.exists():
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        elif config_path != DEFAULT_CONFIG_PATH:
            raise FileNotFoundError(f"Config file not found: {config_path}")

    if environ is None:
        load_dotenv()
        environ = os.environ

    return AppConfig(**apply_env_overrides(data, environ))
