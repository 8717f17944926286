from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str | None = None  # sent as apikey on every request
    database_url: str = "sqlite:///./repbook_cache.db"  # local cache only
    request_timeout: float = 30.0
    oauth_redirect_url: str = "repbook://auth-callback"
    password_reset_redirect_url: str = "repbook://reset-password"

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
