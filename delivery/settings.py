from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    supabase_url: str | None = None
    supabase_key: str | None = None
    store_timeout_seconds: float = 5.0

    home_region: str = "bukhara"
    default_locale: str = "uz"

    # BTS postal pricing: first kg at base, each extra (started) kg adds the increment
    base_delivery_price: int = 35000
    per_kg_increment: int = 5000

    tariff_cache_ttl_hours: float = 24
    regions_cache_ttl_seconds: float = 300

    # NOTE: extra="ignore" avoids validation errors if stray keys appear in .env
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

settings = Settings()
