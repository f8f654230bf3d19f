"""
Configuration settings for mailsweep.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from ..exceptions import ConfigError

# (attribute, default, type) for every setting read from the environment
SETTINGS = (
    # Database settings
    ('DATABASE_URL', 'sqlite:///mailsweep.db', str),

    # Credential vault
    ('ENCRYPTION_KEY', '', str),

    # Provider (Gmail) OAuth client
    ('GOOGLE_CLIENT_ID', '', str),
    ('GOOGLE_CLIENT_SECRET', '', str),
    ('GOOGLE_TOKEN_URI', 'https://oauth2.googleapis.com/token', str),
    ('PROVIDER_TIMEOUT', '30', int),

    # AI service
    ('OPENAI_API_KEY', '', str),
    ('OPENAI_MODEL', 'gpt-4o-mini', str),

    # Sync settings
    ('CRON_SECRET', '', str),
    ('MAX_EMAILS_PER_SYNC', '50', int),
    ('SYNC_LOOKBACK_HOURS', '24', int),
    ('SYNC_WORKERS', '4', int),
    ('DEFAULT_BATCH_SIZE', '50', int),

    # Request queue
    ('QUEUE_CONCURRENCY', '5', int),

    # Unsubscribe settings
    ('REQUEST_TIMEOUT', '15', int),
    ('BROWSER_NAVIGATION_TIMEOUT', '30', int),
    ('BROWSER_ACTION_TIMEOUT', '10', int),
    ('BROWSER_SETTLE_SECONDS', '3', float),
    ('BULK_UNSUBSCRIBE_DELAY', '2.0', float),

    ('LOG_LEVEL', 'INFO', str),
)


class Config:
    """Configuration settings. Attributes are filled from SETTINGS by reload()."""

    DATABASE_URL: str
    ENCRYPTION_KEY: str
    GOOGLE_CLIENT_ID: str
    GOOGLE_CLIENT_SECRET: str
    GOOGLE_TOKEN_URI: str
    PROVIDER_TIMEOUT: int
    OPENAI_API_KEY: str
    OPENAI_MODEL: str
    CRON_SECRET: str
    MAX_EMAILS_PER_SYNC: int
    SYNC_LOOKBACK_HOURS: int
    SYNC_WORKERS: int
    DEFAULT_BATCH_SIZE: int
    QUEUE_CONCURRENCY: int
    REQUEST_TIMEOUT: int
    BROWSER_NAVIGATION_TIMEOUT: int
    BROWSER_ACTION_TIMEOUT: int
    BROWSER_SETTLE_SECONDS: float
    BULK_UNSUBSCRIBE_DELAY: float
    LOG_LEVEL: str

    @classmethod
    def reload(cls):
        """Re-read every setting from the environment."""
        for name, default, convert in SETTINGS:
            raw = os.getenv(name, default)
            try:
                setattr(cls, name, convert(raw))
            except ValueError:
                raise ConfigError(f"{name} must be {convert.__name__}, got {raw!r}", {'setting': name})

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory for storing database and artifacts."""
        data_dir = Path(os.getenv('DATA_DIR', Path.cwd() / 'data'))
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    @classmethod
    def get_database_path(cls) -> str:
        """Get the database URL, anchoring relative SQLite files in the data directory."""
        if cls.DATABASE_URL.startswith('sqlite:///'):
            db_file = cls.DATABASE_URL[10:]  # Remove 'sqlite:///'
            if db_file != ':memory:' and not os.path.isabs(db_file):
                db_path = cls.get_data_dir() / db_file
                return f"sqlite:///{db_path}"
        return cls.DATABASE_URL

    @classmethod
    def get_artifact_dir(cls) -> Path:
        """Get the root directory for unsubscribe screenshots."""
        artifact_dir = os.getenv('ARTIFACT_DIR')
        if artifact_dir:
            return Path(artifact_dir)
        return cls.get_data_dir() / 'unsubscribe-logs'

    @classmethod
    def require(cls, name: str) -> str:
        """Return a mandatory setting or raise ConfigError when it is empty."""
        value = getattr(cls, name, '')
        if not value:
            raise ConfigError(f"{name} is not configured", {'setting': name})
        return value


Config.reload()


def load_config_from_env_file(env_file: str = '.env'):
    """Load configuration from environment file and refresh Config."""
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
        Config.reload()
