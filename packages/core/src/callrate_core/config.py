import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "transcripts": "transcripts.json",
    "reviewer": "demo-user",
    "cache_dir": ".callrate/cache",
    "remote": "none",  # none | sqlite | gist
    "remote_path": ".callrate.db",
    "gist_id": None,
    "metrics": [{"key": "stars", "low": 1, "high": 5}],
    "text_field": "comment",
    "rateable_author": "Assistant",
    "export_prefix": "rating_",
    "log_level": "WARNING",
    "log_file": None,
    "sync_timeout": 10,  # seconds to wait for pending writes on exit
}


def load_config(config_path: str = ".callrate.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .callrate.yml in the current directory
      3. CALLRATE_REVIEWER environment variable
      4. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "metrics": [dict(m) for m in DEFAULT_CONFIG["metrics"]]}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    reviewer = os.environ.get("CALLRATE_REVIEWER")
    if reviewer:
        config["reviewer"] = reviewer

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")

    return config
