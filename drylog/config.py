import os
from dotenv import load_dotenv

load_dotenv()


def _env_float(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


class Config:
    """Base configuration class with common settings."""
    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FILE = os.environ.get("LOG_FILE")  # None logs to stdout only

    # Psychrometrics: pressure used when deriving stored GPP values.
    # Sea level unless the office sits at altitude.
    ATMOSPHERIC_PRESSURE_PSIA = _env_float("ATMOSPHERIC_PRESSURE_PSIA", 14.696)

    JSON_SORT_KEYS = False


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


def get_config():
    """Get the appropriate configuration class based on environment variable.

    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig

    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()

    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    else:
        # Default to local for safety
        return LocalConfig
