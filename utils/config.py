from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Discord
    DISCORD_TOKEN: str = ""
    DISCORD_COMMAND_PREFIX: str = "!"

    # RCON (0grind.io HTTP API)
    RCON_API_BASE: str = "https://api.0grind.io/v2/armareforger"
    RCON_TIMEOUT_SECONDS: float = 10.0

    # Flat files
    GUILD_CONFIG_PATH: str = "data/guildConfig.json"
    IP_MONITOR_PATH: str = "data/ip-monitor-config.json"
    CRASH_LOG_DIR: str = "logs"

    # Recurring lists
    LIST_INTERVAL_SECONDS: float = 600.0

    # IP monitor
    IP_CHECK_URL: str = "https://api.ipify.org?format=json"
    IP_CHECK_INTERVAL_HOURS: float = 5.0

    # DB
    DATABASE_URL: str = ""
    DB_HOST: str = "db"
    DB_PORT: int = 5432
    DB_USER: str = "rcon"
    DB_PASSWORD: str = "rcon_password"
    DB_NAME: str = "rcon_arma"

    # App
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    DASHBOARD_TOKEN: str = ""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

settings = Settings()
