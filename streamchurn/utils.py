# streamchurn/utils.py
# type: ignore

import os
import logging
from typing import Any, Dict, Optional

import yaml  # type: ignore

logger = logging.getLogger(__name__)


# ============================================================
# 📁 DIRECTORY MANAGEMENT
# ============================================================

# Absolute path to this file
current_file = os.path.abspath(__file__)

# Project root = 2 levels above (streamchurn/utils.py → streamchurn → project)
project_root = os.path.dirname(os.path.dirname(current_file))

# --- Project-level paths ---
data_path = os.path.join(project_root, "data")
reports_path = os.path.join(project_root, "reports")
config_path = os.path.join(project_root, "config")

# --- Data directories ---
csv_path = os.path.join(data_path, "csv")
sql_path = os.path.join(data_path, "sql")

raw_data_path = os.path.join(csv_path, "raw")
processed_data_path = os.path.join(csv_path, "processed")

# analysis result tables
results_path = os.path.join(processed_data_path, "analysis")

DEFAULT_CONFIG_FILE = "analysis_config.yaml"


# ============================================================
# ⚙️ CONFIG UTILITIES
# ============================================================

def load_config(config_file: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Load the analysis YAML config from the config/ directory.

    Returns None when the file does not exist so the caller can fall back
    to its built-in defaults. A file that exists but cannot be parsed raises.
    """
    final_path = config_file or os.path.join(config_path, DEFAULT_CONFIG_FILE)

    if not os.path.exists(final_path):
        logger.warning(f"⚠️ Config file not found: {final_path}")
        return None

    return load_yaml(final_path)


def load_yaml(path: str) -> Dict[str, Any]:
    """General YAML loader with validation."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"❌ YAML file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"❌ Invalid YAML in {path}: {e}") from e

    if config is None:
        raise ValueError(f"❌ YAML file empty: {path}")
    if not isinstance(config, dict):
        raise ValueError(f"❌ YAML root must be a mapping: {path}")

    logger.info(f"✅ Loaded YAML: {path}")
    return config


# ============================================================
# 🔍 PATH RESOLVER
# ============================================================

def get_path(path_type: str) -> str:
    """
    Convenient path resolver with automatic directory creation.

    Returns any project directory path based on a keyword.
    """

    paths = {
        # Project root structure
        "project": project_root,

        # Config
        "config": config_path,

        # Data-level folders
        "data": data_path,
        "csv": csv_path,
        "sql": sql_path,
        "raw": raw_data_path,
        "processed": processed_data_path,

        # Analysis outputs
        "results": results_path,
        "reports": reports_path,
    }

    if path_type not in paths:
        raise ValueError(
            f"❌ Unknown path type '{path_type}'. Allowed values: {list(paths.keys())}"
        )

    resolved = os.path.abspath(paths[path_type])
    os.makedirs(resolved, exist_ok=True)
    return resolved
