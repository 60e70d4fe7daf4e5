from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    VERSION: str = "0.1.0"
    DATABASE_URL: str = "sqlite:///./traintracker.db"
    GEOFENCE_CONFIG: str = "config/geofence.yaml"
    LOG_LEVEL: str = "INFO"
    # Consensus window (minutes); reports older than this are ignored
    CONSENSUS_TIME_WINDOW_MINUTES: int = 5
    # Crossing reports expire after this many minutes; clear reports never do
    TRAIN_CROSSING_EXPIRATION_MINUTES: int = 10
    # Advertised to clients; the server does not enforce it
    REPORT_COOLDOWN_SECONDS: int = 15
    # How far back the report store looks before handing rows to the engine
    REPORT_LOOKBACK_MINUTES: int = 10
    RECENT_REPORTS_LIMIT: int = 20
    # Latest-report status goes stale after this many minutes
    STALE_STATUS_MINUTES: int = 30
    # Geofence gate on report submission
    ENFORCE_GEOFENCE: bool = True
    GEOFENCE_MODE: str = "crossing"  # "crossing" or "zone"
    GEOFENCE_MIN_ACCURACY_METERS: float = 100.0
    GEOFENCE_MAX_DISTANCE_METERS: float = 500.0
    ALLOW_TEST_ZONES: bool = False
    GEOFENCE_DEBUG: bool = False
    # Connection pool
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    # CORS origins (comma-separated string for env var support)
    CORS_ORIGINS: str = "http://localhost:3000"


settings = Settings()
