import os
from pathlib import Path

import yaml


PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = PROJECT_ROOT / "config.yaml"
DEFAULT_DB_PATH = "data/topicfeed.db"

DEFAULT_PROXIES = [
    "https://api.allorigins.win/raw?url={url}",
    "https://corsproxy.io/?{url}",
]

DEFAULTS = {
    "anthropic_api_key": "",
    "ai_base_url": None,
    "model": "claude-sonnet-4-5-20250929",
    "ai_temperature": 0.7,
    "ai_timeout": 60,
    "fetch_timeout": 15,
    "max_articles_per_source": 500,
    "classify_batch_size": 10,
    "max_classify_articles": 50,
    "max_dedup_articles": 100,
    "max_duplicate_buckets": 10,
    "enable_topic_prioritization": True,
    "enable_deduplication": True,
}


def load_config(path: Path = CONFIG_PATH) -> dict:
    """Read config.yaml (optional) and fill in every missing key."""
    path = Path(path)
    cfg = {}
    if path.exists():
        cfg = yaml.safe_load(path.read_text(encoding="utf-8")) or {}

    # ANTHROPIC_API_KEY beats the file
    if os.environ.get("ANTHROPIC_API_KEY"):
        cfg["anthropic_api_key"] = os.environ["ANTHROPIC_API_KEY"]

    for key, value in DEFAULTS.items():
        cfg.setdefault(key, value)
    cfg.setdefault("proxies", list(DEFAULT_PROXIES))
    cfg["db_path"] = str(PROJECT_ROOT / cfg.get("db_path", DEFAULT_DB_PATH))
    return cfg


def save_config(cfg: dict, path: Path = CONFIG_PATH):
    """Write ``cfg`` to YAML, storing db_path relative to the project when possible."""
    out = {k: v for k, v in cfg.items() if k != "db_path"}
    db_path = Path(cfg.get("db_path", DEFAULT_DB_PATH))
    if db_path.is_absolute() and db_path.is_relative_to(PROJECT_ROOT):
        db_path = db_path.relative_to(PROJECT_ROOT)
    out["db_path"] = str(db_path)
    Path(path).write_text(yaml.safe_dump(out, default_flow_style=False, sort_keys=False), encoding="utf-8")
