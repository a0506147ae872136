"""
Loads and handles config from config.yml
Reddit credentials (REDDIT_CLIENT_ID, REDDIT_CLIENT_SECRET) are loaded from .env for security
"""
import logging
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Config(BaseModel):
    # Core
    DATABASE_PATH: str = "data/demand_radar.db"
    REDIS_URL: Optional[str] = None

    # Ollama
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    OLLAMA_TIMEOUT: float = 120.0

    # Reddit
    REDDIT_CLIENT_ID: Optional[str] = None
    REDDIT_CLIENT_SECRET: Optional[str] = None
    REDDIT_USER_AGENT: str = "demand-radar/1.0"
    REDDIT_API_BASE_URL: str = "https://oauth.reddit.com"
    REDDIT_AUTH_URL: str = "https://www.reddit.com/api/v1/access_token"
    REDDIT_SEARCH_URL: str = "https://www.reddit.com/api/search_reddit_names.json"

    # Rate limiting
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 3600
    FETCH_DELAY_SECONDS: float = 2.5

    # Pipeline
    POSTS_PER_COMMUNITY: int = 100
    COMMENTS_PER_POST: int = 100
    MAX_TEXT_LENGTH: int = 4000
    MAX_TARGETS: int = 3
    MAX_KEYWORDS: int = 5
    MAX_KEYWORD_LENGTH: int = 100
    RECENT_STATUS_LIMIT: int = 20

    # Caches
    SEARCH_CACHE_TTL_SECONDS: int = 7 * 24 * 60 * 60
    KEYWORD_SUGGEST_URL: Optional[str] = None
    KEYWORD_CACHE_TTL_SECONDS: int = 3600


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> Optional[str]:
    """Get the path to config.yml, handling different working directories."""
    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    return None


def _read_yaml(path: Optional[str]) -> Dict[str, Any]:
    if path is None:
        logger.warning("resources/config.yml not found, using defaults")
        return {}

    with open(path, 'r') as file:
        return yaml.safe_load(file) or {}


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and Reddit credentials from .env."""
    # Load .env for sensitive credentials
    load_dotenv()

    config = _read_yaml(path or _get_config_path())
    defaults = Config()

    def setting(name: str) -> Any:
        # Environment wins over the YAML file
        return os.getenv(name, config.get(name, getattr(defaults, name)))

    return Config(
        DATABASE_PATH=setting("DATABASE_PATH"),
        REDIS_URL=setting("REDIS_URL") or None,

        OLLAMA_BASE_URL=setting("OLLAMA_BASE_URL"),
        OLLAMA_MODEL=setting("OLLAMA_MODEL"),
        OLLAMA_TIMEOUT=float(setting("OLLAMA_TIMEOUT")),

        REDDIT_CLIENT_ID=os.getenv("REDDIT_CLIENT_ID"),
        REDDIT_CLIENT_SECRET=os.getenv("REDDIT_CLIENT_SECRET"),
        REDDIT_USER_AGENT=setting("REDDIT_USER_AGENT"),
        REDDIT_API_BASE_URL=setting("REDDIT_API_BASE_URL"),
        REDDIT_AUTH_URL=setting("REDDIT_AUTH_URL"),
        REDDIT_SEARCH_URL=setting("REDDIT_SEARCH_URL"),

        RATE_LIMIT_MAX_REQUESTS=int(setting("RATE_LIMIT_MAX_REQUESTS")),
        RATE_LIMIT_WINDOW_SECONDS=int(setting("RATE_LIMIT_WINDOW_SECONDS")),
        FETCH_DELAY_SECONDS=float(setting("FETCH_DELAY_SECONDS")),

        POSTS_PER_COMMUNITY=int(setting("POSTS_PER_COMMUNITY")),
        COMMENTS_PER_POST=int(setting("COMMENTS_PER_POST")),
        MAX_TEXT_LENGTH=int(setting("MAX_TEXT_LENGTH")),
        MAX_TARGETS=int(setting("MAX_TARGETS")),
        MAX_KEYWORDS=int(setting("MAX_KEYWORDS")),
        MAX_KEYWORD_LENGTH=int(setting("MAX_KEYWORD_LENGTH")),
        RECENT_STATUS_LIMIT=int(setting("RECENT_STATUS_LIMIT")),

        SEARCH_CACHE_TTL_SECONDS=int(setting("SEARCH_CACHE_TTL_SECONDS")),
        KEYWORD_SUGGEST_URL=setting("KEYWORD_SUGGEST_URL") or None,
        KEYWORD_CACHE_TTL_SECONDS=int(setting("KEYWORD_CACHE_TTL_SECONDS")),
    )


def fetch_delay_enabled(config: Config) -> bool:
    """The inter-call delay can be switched off with DISABLE_FETCH_DELAY=1."""
    return not _bool(os.getenv("DISABLE_FETCH_DELAY", False)) and config.FETCH_DELAY_SECONDS > 0
