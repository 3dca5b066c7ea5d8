"""Application configuration"""
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Security module
    HANDSHAKE_ENABLED: bool = True
    HANDSHAKE_SECRET: Optional[str] = None  # Master secret; auto-generated on startup if absent

    # Handshake cookie
    COOKIE_NAME: str = "af_handshake"
    COOKIE_LIFETIME: int = 5  # minutes
    COOKIE_SECURE: bool = True  # HTTPS only
    COOKIE_SAME_SITE: str = "lax"  # lax, strict, none

    # Token lifecycle (seconds)
    TOKEN_LIFETIME: int = 300
    TOKEN_GRACE_PERIOD: int = 60
    TOKEN_RENEWAL_THRESHOLD: int = 60
    TOKEN_ROTATION_INTERVAL: int = 240
    TOKEN_FINGERPRINT_VALIDATION: bool = True
    TOKEN_STRICT_IP_CHECK: bool = False  # May cause issues with mobile networks

    # Client-side detection (forwarded to the browser script)
    DETECTION_SIZE_THRESHOLD: int = 160  # pixels
    DETECTION_TIMING_THRESHOLD: int = 120  # milliseconds
    DETECTION_LOOP_ITERATIONS: int = 100000
    DETECTION_POLL_INTERVAL_MS: int = 500
    RENEWAL_CHECK_INTERVAL: int = 30  # seconds
    HANDSHAKE_MAX_ATTEMPTS: int = 3
    DETECTION_CONSOLE_TAMPERING: bool = True  # advisory only
    DETECTION_NETWORK_MONITORING: bool = True  # advisory only
    DETECTION_NETWORK_REQUEST_LIMIT: int = 50  # requests per second before reporting

    # Paths that bypass the gate (glob patterns, no leading slash)
    EXCLUDED_PATHS: List[str] = [
        "_security/*",
        "blocked",
        "loader",
        "api/*",
        "health",
        "health/*",
        "metrics",
        "assets/*",
        "static/*",
        "vendor/*",
        "storage/*",
        "build/*",
        "favicon.ico",
        "robots.txt",
    ]

    # Whitelists
    WHITELIST_IPS: str = ""  # Comma separated; exact, CIDR or wildcard (192.168.*.*)
    WHITELIST_USER_AGENTS: List[str] = [
        "Googlebot",
        "Bingbot",
        "Lighthouse",
        "PageSpeed",
        "GTmetrix",
        "Pingdom",
        "UptimeRobot",
    ]

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_VERIFY: str = "30/minute"
    RATE_LIMIT_RENEW: str = "60/minute"
    RATE_LIMIT_STRATEGY: str = "moving-window"
    RATE_LIMIT_STORAGE_URI: str = "memory://"  # Use redis:// for production

    # Sessions
    SESSION_BACKEND: str = "memory"  # memory or database
    SESSION_COOKIE: str = "hg_session"
    SESSION_LIFETIME_MINUTES: int = 120
    DATABASE_URL: str = "sqlite:///./handshake_guard.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Anti-forgery token handed out by the loader page
    ANTI_FORGERY_TTL: int = 600  # seconds
    ANTI_FORGERY_ALGORITHM: str = "HS256"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    # Security event logging
    LOG_BLOCKED: bool = True
    LOG_HANDSHAKES: bool = False
    LOG_RENEWALS: bool = False
    LOG_REVOCATIONS: bool = True

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Monitoring
    METRICS_ENABLED: bool = True
    METRICS_PATH: str = "/metrics"

    # Security
    TRUST_PROXY_HEADERS: bool = False  # Set True if behind reverse proxy

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def whitelist_ips_list(self) -> List[str]:
        """Parse whitelisted IP patterns into list"""
        return [ip.strip() for ip in self.WHITELIST_IPS.split(",") if ip.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.LOG_LEVEL == "WARNING" or self.LOG_LEVEL == "ERROR"


settings = Settings()
