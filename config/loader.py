# config/loader.py
from __future__ import annotations

import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict

REPO = Path(__file__).resolve().parents[1]

DEFAULTS: Dict[str, Any] = {
    "storage": {"db_path": "data/expenses.sqlite"},
    "ocr": {
        "languages": ["en"],
        "gpu": False,
        "min_confidence": 0.45,
        "paragraph": False,
        "dpi": 200,
        "timeout_seconds": 60.0,
    },
    "categorizer": {"keywords_path": "config/keywords.yaml"},
    "anomaly": {"window_days": 90, "threshold": 2.5, "min_history": 5},
    "forecast": {"lookback_days": 360, "horizon_months": 3},
    "assistant": {
        "model": "gemini-2.5-flash",
        "api_key": "",
        "timeout_seconds": 30.0,
        "max_response_chars": 5000,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, val in override.items():
        if isinstance(val, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], val)
        else:
            out[key] = val
    return out


def load_config(config_path: Path | None = None) -> Dict[str, Any]:
    """
    Load config.toml (repo root by default) over the built-in defaults.
    An explicit path that does not exist is an error; a missing default file
    just means defaults. ET_DB_PATH and GOOGLE_API_KEY override the file.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = REPO / "config.toml"

    cfg = copy.deepcopy(DEFAULTS)
    if config_path.exists():
        with config_path.open("rb") as f:
            cfg = _merge(cfg, tomllib.load(f))
    elif explicit:
        raise FileNotFoundError(f"Config not found: {config_path}")

    if os.environ.get("ET_DB_PATH"):
        cfg["storage"]["db_path"] = os.environ["ET_DB_PATH"]
    if os.environ.get("GOOGLE_API_KEY"):
        cfg["assistant"]["api_key"] = os.environ["GOOGLE_API_KEY"]

    # relative keyword table paths are resolved against the repo
    kw = cfg["categorizer"].get("keywords_path")
    if kw and not Path(kw).is_absolute():
        cfg["categorizer"]["keywords_path"] = str(REPO / kw)
    return cfg
