from pydantic_settings import BaseSettings
from typing import List
from dotenv import load_dotenv
import os

load_dotenv()


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = os.getenv("DEBUG", True)

    # Supabase (service key: the API is the only writer)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")

    # CORS / hosts, comma separated
    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "*")
    ALLOWED_HOSTS: str = os.getenv("ALLOWED_HOSTS", "*")

    # Redis: rate limiting, client state, celery broker
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    # Share links point at the web app, not the API
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:3000")

    # Defines "today" for logging, streaks and challenge status
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

    # Client state
    RECENT_CHALLENGES_LIMIT: int = os.getenv("RECENT_CHALLENGES_LIMIT", 20)

    # Live leaderboard stream
    STREAM_KEEPALIVE_SECONDS: int = os.getenv("STREAM_KEEPALIVE_SECONDS", 15)

    # Lifecycle beat
    CLOSE_CHALLENGES_INTERVAL_MINUTES: int = os.getenv("CLOSE_CHALLENGES_INTERVAL_MINUTES", 60)

    # Requests per minute per IP and endpoint (writes get a fifth)
    RATE_LIMIT_PER_MINUTE: int = os.getenv("RATE_LIMIT_PER_MINUTE", 100)

    # PostHog Analytics
    POSTHOG_API_KEY: str = os.getenv("POSTHOG_API_KEY", "")
    POSTHOG_HOST: str = os.getenv("POSTHOG_HOST", "https://us.i.posthog.com")
    POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE: bool = (
        os.getenv("POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE", "true").lower() == "true"
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def allowed_hosts_list(self) -> List[str]:
        return [host.strip() for host in self.ALLOWED_HOSTS.split(",") if host.strip()]

    @property
    def redis_connection_url(self) -> str:
        return self.REDIS_URL.strip()

    def challenge_url(self, share_token: str) -> str:
        return f"{self.BASE_URL.rstrip('/')}/challenge/{share_token}"

    def admin_url(self, share_token: str, admin_token: str) -> str:
        return f"{self.challenge_url(share_token)}/admin?key={admin_token}"

    class Config:
        env_file = [".env.local", ".env"]
        case_sensitive = True
        extra = "ignore"


settings = Settings()
