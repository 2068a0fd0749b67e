"""
Configuration for the ST-Schema mock server

Dataclass configuration built from environment variables, with
development and production presets.
"""

import os
from typing import Optional, List
from dataclasses import dataclass, field

DEFAULT_JWT_SECRET = "dev-secret"
NON_PRODUCTION_ENVIRONMENTS = ("development", "testing")


@dataclass
class OAuthConfig:
    """Local authorization server configuration"""
    jwt_secret: str = DEFAULT_JWT_SECRET
    access_token_expiry: int = 3600  # 1 hour
    auth_code_ttl: int = 600  # 10 minutes
    identity_email_domain: str = "example.com"


@dataclass
class InteractionConfig:
    """Partner interaction endpoint behaviour"""
    command_mode: str = "unavailable"  # unavailable, delegate
    command_delay_seconds: float = 0.0
    require_partner_token: bool = False
    outbound_timeout: float = 10.0  # callback token exchange


@dataclass
class StateSourceConfig:
    """Where device state fixtures come from"""
    url: Optional[str] = None
    file_path: Optional[str] = None
    timeout: float = 5.0
    refresh_timeout: float = 8.0  # per device, in refresh_many


@dataclass
class ServerConfig:
    """Server configuration"""
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class MonitoringConfig:
    """Logging configuration"""
    log_level: str = "INFO"
    audit_logging_enabled: bool = True


@dataclass
class Config:
    """Main configuration class for the mock server"""

    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)
    state_source: StateSourceConfig = field(default_factory=StateSourceConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    environment: str = "development"  # development, testing, production
    debug: bool = True

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables"""

        oauth_config = OAuthConfig(
            jwt_secret=os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
            access_token_expiry=int(os.getenv("ACCESS_TOKEN_EXPIRY", "3600")),
            auth_code_ttl=int(os.getenv("AUTH_CODE_TTL", "600")),
            identity_email_domain=os.getenv("IDENTITY_EMAIL_DOMAIN", "example.com")
        )

        interaction_config = InteractionConfig(
            command_mode=os.getenv("COMMAND_MODE", "unavailable"),
            command_delay_seconds=float(os.getenv("COMMAND_DELAY_SECONDS", "0")),
            require_partner_token=os.getenv("REQUIRE_PARTNER_TOKEN", "false").lower() == "true",
            outbound_timeout=float(os.getenv("OUTBOUND_TIMEOUT", "10"))
        )

        state_source_config = StateSourceConfig(
            url=os.getenv("STATE_SOURCE_URL"),
            file_path=os.getenv("STATE_SOURCE_FILE"),
            timeout=float(os.getenv("STATE_SOURCE_TIMEOUT", "5")),
            refresh_timeout=float(os.getenv("DEVICE_REFRESH_TIMEOUT", "8"))
        )

        server_config = ServerConfig(
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("SERVER_PORT") or os.getenv("PORT") or "3000"),
            cors_origins=os.getenv("CORS_ORIGINS", "*").split(",")
        )

        monitoring_config = MonitoringConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            audit_logging_enabled=os.getenv("AUDIT_LOGGING_ENABLED", "true").lower() == "true"
        )

        return cls(
            oauth=oauth_config,
            interaction=interaction_config,
            state_source=state_source_config,
            server=server_config,
            monitoring=monitoring_config,
            environment=os.getenv("ENVIRONMENT", "development"),
            debug=os.getenv("DEBUG", "true").lower() == "true"
        )

    @classmethod
    def for_development(cls) -> "Config":
        """Create development configuration"""
        config = cls.from_env()
        config.environment = "development"
        config.debug = True
        return config

    @classmethod
    def for_production(cls) -> "Config":
        """Create production configuration with security defaults"""
        config = cls.from_env()

        config.environment = "production"
        config.debug = False
        config.server.cors_origins = os.getenv("CORS_ORIGINS", "").split(",") if os.getenv("CORS_ORIGINS") else []

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration"""
        if self.environment not in NON_PRODUCTION_ENVIRONMENTS:
            if not self.oauth.jwt_secret or self.oauth.jwt_secret == DEFAULT_JWT_SECRET:
                raise ValueError("JWT_SECRET must be set to a non-default value outside development")

        if self.interaction.command_mode not in ("unavailable", "delegate"):
            raise ValueError(f"Unknown COMMAND_MODE: {self.interaction.command_mode}")

        if self.oauth.access_token_expiry <= 0 or self.oauth.auth_code_ttl <= 0:
            raise ValueError("Token and code lifetimes must be positive")

        if self.interaction.outbound_timeout <= 0 or self.state_source.refresh_timeout <= 0:
            raise ValueError("Outbound timeouts must be positive")


# Global configuration instance
_config: Optional[Config] = None

def get_config() -> Config:
    """Get global configuration instance"""
    global _config
    if _config is None:
        _config = Config.from_env()
        _config.validate()
    return _config

def set_config(config: Config) -> None:
    """Set global configuration instance"""
    global _config
    config.validate()
    _config = config

def reset_config() -> None:
    """Reset global configuration instance"""
    global _config
    _config = None
