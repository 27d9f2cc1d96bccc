import json
import os

from .logging_config import get_logger

logger = get_logger(__name__)
config: dict = None


def _initialise_config() -> dict:
    """Get application configuration.

    Loads configuration from config.json in the working directory and then
    applies env var overrides.
    """

    config = {
        "log_level": "INFO",
        "log_file": None,
        "llm": {
            "model": "Qwen3-8B-exl2-6_0",
            "base_url": "http://127.0.0.1:5000/v1",
            "max_tokens": 4096,
            "temperature": 0.2,
        },
        "embeddings": {
            "model_name": "sentence-transformers/all-MiniLM-L6-v2",
        },
        "context": {
            "max_cache_size": 100,
            "cache_timeout_seconds": 1800,
            "chunk_size": 150,
            "chunk_overlap": 15,
            "summary_max_length": 500,
            "vector_dimension": 0,
        },
    }

    # Sections are merged key by key so a partial config.json keeps the other defaults
    try:
        with open("config.json", "r") as f:
            loaded = json.load(f)
        for key, value in loaded.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value
    except Exception as e:
        logger.debug("Could not load config.json: %s (using defaults)", e)

    if os.getenv("WORKSPACE_CONTEXT_LLM_BASE_URL"):
        config["llm"]["base_url"] = os.getenv("WORKSPACE_CONTEXT_LLM_BASE_URL")

    if os.getenv("WORKSPACE_CONTEXT_MODEL"):
        config["llm"]["model"] = os.getenv("WORKSPACE_CONTEXT_MODEL")

    if os.getenv("WORKSPACE_CONTEXT_LOG_LEVEL"):
        config["log_level"] = os.getenv("WORKSPACE_CONTEXT_LOG_LEVEL").upper()

    if os.getenv("WORKSPACE_CONTEXT_LOG_FILE") is not None:
        config["log_file"] = os.getenv("WORKSPACE_CONTEXT_LOG_FILE")

    config["verbose"] = config["log_level"] == "DEBUG"

    return config


def reload_config() -> dict:
    """Re-read config.json and env vars into the module-level config."""
    global config
    config = _initialise_config()
    return config


config = _initialise_config()
