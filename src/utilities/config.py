import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


# ========== ENVIRONMENT VARIABLE HELPERS ==========
def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    elif value in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer value from environment variable"""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float value from environment variable"""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_env_str(key: str, default: str = "") -> str:
    """Get string value from environment variable"""
    return os.getenv(key, default)


def get_env_list(key: str, default: list[str]) -> list[str]:
    """Get comma-separated list from environment variable"""
    value = os.getenv(key)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def get_env_enum(key: str, enum_class: type, default: Any) -> Any:
    """Get enum value from environment variable"""
    value = os.getenv(key, "").lower()
    for enum_val in enum_class:
        if enum_val.value.lower() == value:
            return enum_val
    return default


# ========== ENUMS ==========
class LogLevel(str, Enum):
    """Logging levels"""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class GenerationVariant(str, Enum):
    """Generation endpoint variants offered by the external game API"""

    SIMPLE2 = "simple2"


# ========== BASE CONFIGURATION CLASS ==========
@dataclass
class BaseConfig:
    """Base configuration class"""

    def model_dump(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)

    def validate(self) -> None:
        """Validate configuration values"""
        pass


# ========== GENERATION CONFIGURATION ==========
@dataclass
class ExternalAPIConfig(BaseConfig):
    """External game-generation API configuration"""

    base_url: str = "http://localhost:3005"
    generate_path: str = "/api/generate/simple2"
    health_path: str = "/health"
    variant: GenerationVariant = GenerationVariant.SIMPLE2

    # Seconds; a read timeout of 0 means wait indefinitely between stream chunks
    connect_timeout: float = 10.0
    read_timeout: float = 0.0
    health_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "ExternalAPIConfig":
        """Load external API configuration from environment variables"""
        return cls(
            base_url=get_env_str("CLAW_EXTERNAL_API_URL", "http://localhost:3005"),
            generate_path=get_env_str("CLAW_EXTERNAL_API_GENERATE_PATH", "/api/generate/simple2"),
            health_path=get_env_str("CLAW_EXTERNAL_API_HEALTH_PATH", "/health"),
            variant=get_env_enum("CLAW_EXTERNAL_API_VARIANT", GenerationVariant, GenerationVariant.SIMPLE2),
            connect_timeout=get_env_float("CLAW_EXTERNAL_API_CONNECT_TIMEOUT", 10.0),
            read_timeout=get_env_float("CLAW_EXTERNAL_API_READ_TIMEOUT", 0.0),
            health_timeout=get_env_float("CLAW_EXTERNAL_API_HEALTH_TIMEOUT", 5.0),
        )

    def validate(self) -> None:
        """Validate external API configuration"""
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.read_timeout < 0:
            raise ValueError("read_timeout cannot be negative")
        if self.health_timeout <= 0:
            raise ValueError("health_timeout must be positive")


@dataclass
class StreamingConfig(BaseConfig):
    """SSE session timing configuration"""

    heartbeat_interval: float = 30.0
    start_delay: float = 0.5
    pending_ttl: float = 600.0
    sweep_interval: float = 60.0

    @classmethod
    def from_env(cls) -> "StreamingConfig":
        """Load streaming configuration from environment variables"""
        return cls(
            heartbeat_interval=get_env_float("CLAW_STREAM_HEARTBEAT_INTERVAL", 30.0),
            start_delay=get_env_float("CLAW_STREAM_START_DELAY", 0.5),
            pending_ttl=get_env_float("CLAW_STREAM_PENDING_TTL", 600.0),
            sweep_interval=get_env_float("CLAW_STREAM_SWEEP_INTERVAL", 60.0),
        )

    def validate(self) -> None:
        """Validate streaming configuration"""
        if self.heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be positive")
        if self.start_delay < 0:
            raise ValueError("start_delay cannot be negative")
        if self.pending_ttl <= 0:
            raise ValueError("pending_ttl must be positive")
        if self.sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")


# ========== SYSTEM CONFIGURATION ==========
@dataclass
class AuthConfig(BaseConfig):
    """JWT authentication configuration"""

    jwt_secret: str = "a-very-secret-key-that-should-be-in-env"
    jwt_algorithm: str = "HS256"
    token_expiry_days: int = 7

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Load auth configuration from environment variables"""
        return cls(
            jwt_secret=get_env_str("CLAW_JWT_SECRET", "a-very-secret-key-that-should-be-in-env"),
            jwt_algorithm=get_env_str("CLAW_JWT_ALGORITHM", "HS256"),
            token_expiry_days=get_env_int("CLAW_JWT_EXPIRY_DAYS", 7),
        )

    def validate(self) -> None:
        """Validate auth configuration"""
        if not self.jwt_secret:
            raise ValueError("jwt_secret cannot be empty")
        if self.token_expiry_days <= 0:
            raise ValueError("token_expiry_days must be positive")


@dataclass
class StorageConfig(BaseConfig):
    """Data storage configuration"""

    database_path: str = "./data/claw.db"
    max_attachment_bytes: int = 10 * 1024 * 1024  # per uploaded file

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Load storage configuration from environment variables"""
        return cls(
            database_path=get_env_str("CLAW_STORAGE_DATABASE_PATH", "./data/claw.db"),
            max_attachment_bytes=get_env_int("CLAW_STORAGE_MAX_ATTACHMENT_BYTES", 10 * 1024 * 1024),
        )

    def validate(self) -> None:
        """Validate storage configuration"""
        if self.max_attachment_bytes <= 0:
            raise ValueError("max_attachment_bytes must be positive")


@dataclass
class ServerConfig(BaseConfig):
    """HTTP server configuration"""

    host: str = "0.0.0.0"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: list[str] = field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:3001",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8000",
        ]
    )

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load server configuration from environment variables"""
        defaults = cls()
        return cls(
            host=get_env_str("CLAW_SERVER_HOST", "0.0.0.0"),
            port=get_env_int("CLAW_SERVER_PORT", 8000),
            api_prefix=get_env_str("CLAW_SERVER_API_PREFIX", "/api"),
            cors_origins=get_env_list("CLAW_SERVER_CORS_ORIGINS", defaults.cors_origins),
        )

    def validate(self) -> None:
        """Validate server configuration"""
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if not self.api_prefix.startswith("/"):
            raise ValueError("api_prefix must start with '/'")


# ========== LOGGING CONFIGURATION ==========
@dataclass
class LoggingConfig(BaseConfig):
    """Logging configuration"""

    level: LogLevel = LogLevel.INFO
    log_to_file: bool = False
    log_file_path: str = "./logs/claw.log"
    log_to_console: bool = True

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load logging configuration from environment variables"""
        return cls(
            level=get_env_enum("CLAW_LOGGING_LEVEL", LogLevel, LogLevel.INFO),
            log_to_file=get_env_bool("CLAW_LOGGING_LOG_TO_FILE", False),
            log_file_path=get_env_str("CLAW_LOGGING_LOG_FILE_PATH", "./logs/claw.log"),
            log_to_console=get_env_bool("CLAW_LOGGING_LOG_TO_CONSOLE", True),
        )


# ========== MAIN CONFIGURATION CLASS ==========
@dataclass
class ClawConfig(BaseConfig):
    """Complete Claw API configuration"""

    external_api: ExternalAPIConfig = field(default_factory=ExternalAPIConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    version: str = "2.0.0"

    @classmethod
    def from_env(cls) -> "ClawConfig":
        """Load configuration from environment variables"""
        config = cls(
            external_api=ExternalAPIConfig.from_env(),
            streaming=StreamingConfig.from_env(),
            auth=AuthConfig.from_env(),
            storage=StorageConfig.from_env(),
            server=ServerConfig.from_env(),
            logging=LoggingConfig.from_env(),
            version=get_env_str("CLAW_VERSION", "2.0.0"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate entire configuration"""
        self.external_api.validate()
        self.streaming.validate()
        self.auth.validate()
        self.storage.validate()
        self.server.validate()


def get_config(from_env: bool = False) -> ClawConfig:
    """
    Get a configuration instance.

    Args:
        from_env: If True, load configuration from environment variables.
                 If False, use default values.

    Returns:
        ClawConfig instance with specified settings

    Example:
        # Use default configuration
        config = get_config()

        # Load from environment variables
        config = get_config(from_env=True)

        Environment Variables:
            CLAW_EXTERNAL_API_URL="http://localhost:3005"
            CLAW_STREAM_HEARTBEAT_INTERVAL=30
            CLAW_STREAM_START_DELAY=0.5
            CLAW_STREAM_PENDING_TTL=600
            CLAW_JWT_SECRET="change-me"
            CLAW_STORAGE_DATABASE_PATH="./data/claw.db"
            CLAW_LOGGING_LEVEL="info"
    """
    if from_env:
        return ClawConfig.from_env()
    return ClawConfig()
