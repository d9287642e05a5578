"""Settings models and configuration loading for the greenhouse relay."""

from functools import cached_property, lru_cache
from typing import Annotated, Any, Self

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    HttpUrl,
    SecretStr,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from greenhouse.lib.config.constants import (
    DEFAULT_DEVICE_ID,
    HYSTERESIS_HUMIDITY,
    HYSTERESIS_TEMPERATURE,
    HYSTERESIS_WATER_LEVEL,
)
from greenhouse.lib.config.enums import (
    AlertKind,
    MeasureName,
    NotificationBackend,
    Severity,
    ThresholdType,
)

_MS_PER_SEC = 1000.0


def _parse_bool(v: Any) -> bool:
    """Parse boolean from string '1'/'0' or actual bool."""
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes")
    return bool(v)


def _parse_backend(v: Any) -> Any:
    """Treat an empty backend name as 'no channel configured'."""
    if isinstance(v, str) and not v.strip():
        return None
    if isinstance(v, str):
        return v.strip().lower()
    return v


def _validate_http_url_or_empty(v: str) -> str:
    """Validate HTTP URL format, allowing empty string."""
    if not v:
        return v
    HttpUrl(v)
    return v


_BoolFromStr = Annotated[bool, BeforeValidator(_parse_bool)]
_OptionalBackend = Annotated[
    NotificationBackend | None, BeforeValidator(_parse_backend)
]
_HttpUrlOrEmpty = Annotated[str, AfterValidator(_validate_http_url_or_empty)]


def _ms(value: int) -> float:
    return value / _MS_PER_SEC


class ThresholdRule(BaseModel):
    """A threshold alert on a single reading field."""

    model_config = ConfigDict(frozen=True)

    kind: AlertKind
    measure: MeasureName
    threshold: float
    threshold_type: ThresholdType
    hysteresis: float = 0.0
    cooldown_sec: float = 300.0
    severity: Severity = Severity.WARNING

    def is_violated(self, value: float) -> bool:
        """Check if the threshold is currently violated."""
        if self.threshold_type == ThresholdType.MIN:
            return value < self.threshold
        return value > self.threshold

    def has_recovered(self, value: float) -> bool:
        """Check if value has recovered past the hysteresis band."""
        if self.threshold_type == ThresholdType.MIN:
            return value >= self.threshold + self.hysteresis
        return value <= self.threshold - self.hysteresis


class AlertSettings(BaseModel):
    """Alert evaluation settings."""

    model_config = ConfigDict(frozen=True)

    rules: tuple[ThresholdRule, ...] = ()
    stale_after_sec: float = 10.0
    stale_cooldown_sec: float = 60.0
    stale_check_sec: float = 5.0
    stale_severity: Severity = Severity.CRITICAL
    report_cooldown_sec: float = 60.0

    def rule_for(self, kind: AlertKind) -> ThresholdRule | None:
        """Return the configured rule for a kind, if any."""
        for rule in self.rules:
            if rule.kind == kind:
                return rule
        return None


class PushbulletSettings(BaseModel):
    """Pushbullet notification settings."""

    model_config = ConfigDict(frozen=True)

    token: SecretStr = SecretStr("")
    api_url: str = "https://api.pushbullet.com/v2/pushes"


class WhatsAppSettings(BaseModel):
    """CallMeBot WhatsApp notification settings."""

    model_config = ConfigDict(frozen=True)

    apikey: SecretStr = SecretStr("")
    phone: str = ""
    api_url: str = "https://api.callmebot.com/whatsapp.php"


class SlackSettings(BaseModel):
    """Slack notification settings."""

    model_config = ConfigDict(frozen=True)

    webhook_url: _HttpUrlOrEmpty = ""


class NotificationSettings(BaseModel):
    """Notification delivery settings."""

    model_config = ConfigDict(frozen=True)

    backend: NotificationBackend | None = None
    pushbullet: PushbulletSettings = PushbulletSettings()
    whatsapp: WhatsAppSettings = WhatsAppSettings()
    slack: SlackSettings = SlackSettings()
    max_retries: int = 3
    initial_backoff_sec: float = 2.0
    timeout_sec: float = 10.0
    queue_size: int = 100
    shutdown_grace_sec: float = 5.0


class SamplerSettings(BaseModel):
    """Sampler and telemetry source settings."""

    model_config = ConfigDict(frozen=True)

    device_id: str = DEFAULT_DEVICE_ID
    interval_sec: float = 1.0
    mock_sensors: bool = True
    simulation_seed: int | None = None
    serial_port: str = "/dev/ttyUSB0"
    serial_baud: int = 115200
    serial_timeout_sec: float = 1.0


class StreamSettings(BaseModel):
    """Broadcast hub and rolling history settings."""

    model_config = ConfigDict(frozen=True)

    history_size: int = 300
    listener_queue_size: int = 100
    heartbeat_sec: float = 30.0


class EventBusSettings(BaseModel):
    """Redis event bridge settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    channel_prefix: str = "greenhouse"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sampler
    device_id: str = DEFAULT_DEVICE_ID
    interval_ms: int = Field(default=1000, gt=0)
    mock_sensors: _BoolFromStr = True
    simulation_seed: int | None = None
    serial_port: str = "/dev/ttyUSB0"
    serial_baud: int = Field(default=115200, gt=0)
    # Defaults to the sampling interval; never longer than it.
    serial_timeout_sec: float | None = Field(default=None, gt=0)

    # Thresholds and cooldowns
    temp_threshold: float = 35.0
    temp_cooldown_ms: int = Field(default=5 * 60_000, ge=0)
    water_threshold: float = Field(default=20.0, ge=0, le=100)
    water_cooldown_ms: int = Field(default=5 * 60_000, ge=0)
    humidity_max: float = Field(default=80.0, ge=0, le=100)
    humidity_min: float = Field(default=50.0, ge=0, le=100)
    humidity_cooldown_ms: int = Field(default=5 * 60_000, ge=0)

    # Staleness
    inactivity_threshold_ms: int = Field(default=10_000, gt=0)
    inactivity_cooldown_ms: int = Field(default=60_000, ge=0)
    inactivity_check_ms: int = Field(default=5_000, gt=0)

    # Reported alerts
    alert_report_cooldown_ms: int = Field(default=60_000, ge=0)
    report_api_key: SecretStr = SecretStr("")

    # Stream
    history_size: int = Field(default=300, gt=0)
    listener_queue_size: int = Field(default=100, gt=0)

    # Notifications
    notification_backend: _OptionalBackend = None
    pushbullet_token: SecretStr = SecretStr("")
    callmebot_apikey: SecretStr = SecretStr("")
    callmebot_phone: str = ""
    slack_webhook_url: _HttpUrlOrEmpty = ""
    notification_max_retries: int = Field(default=3, ge=1)
    notification_initial_backoff_sec: float = Field(default=2.0, ge=0)
    notification_timeout_sec: float = Field(default=10.0, gt=0)
    notification_queue_size: int = Field(default=100, gt=0)
    shutdown_grace_sec: float = Field(default=5.0, ge=0)

    # Redis event bridge
    enable_eventbus: _BoolFromStr = False
    redis_url: str = "redis://localhost:6379/0"

    # Logging
    log_level: str = "INFO"

    # Web server
    host: str = "0.0.0.0"
    port: int = Field(default=3001, gt=0, lt=65536)

    @cached_property
    def alerts(self) -> AlertSettings:
        """Get alert rules and timers as a nested object."""
        rules = (
            ThresholdRule(
                kind=AlertKind.TEMPERATURE_HIGH,
                measure=MeasureName.TEMPERATURE,
                threshold=self.temp_threshold,
                threshold_type=ThresholdType.MAX,
                hysteresis=HYSTERESIS_TEMPERATURE,
                cooldown_sec=_ms(self.temp_cooldown_ms),
                severity=Severity.CRITICAL,
            ),
            ThresholdRule(
                kind=AlertKind.WATER_LOW,
                measure=MeasureName.WATER_LEVEL,
                threshold=self.water_threshold,
                threshold_type=ThresholdType.MIN,
                hysteresis=HYSTERESIS_WATER_LEVEL,
                cooldown_sec=_ms(self.water_cooldown_ms),
                severity=Severity.WARNING,
            ),
            ThresholdRule(
                kind=AlertKind.HUMIDITY_HIGH,
                measure=MeasureName.HUMIDITY,
                threshold=self.humidity_max,
                threshold_type=ThresholdType.MAX,
                hysteresis=HYSTERESIS_HUMIDITY,
                cooldown_sec=_ms(self.humidity_cooldown_ms),
                severity=Severity.WARNING,
            ),
            ThresholdRule(
                kind=AlertKind.HUMIDITY_LOW,
                measure=MeasureName.HUMIDITY,
                threshold=self.humidity_min,
                threshold_type=ThresholdType.MIN,
                hysteresis=HYSTERESIS_HUMIDITY,
                cooldown_sec=_ms(self.humidity_cooldown_ms),
                severity=Severity.WARNING,
            ),
        )
        return AlertSettings(
            rules=rules,
            stale_after_sec=_ms(self.inactivity_threshold_ms),
            stale_cooldown_sec=_ms(self.inactivity_cooldown_ms),
            stale_check_sec=_ms(self.inactivity_check_ms),
            report_cooldown_sec=_ms(self.alert_report_cooldown_ms),
        )

    @cached_property
    def notifications(self) -> NotificationSettings:
        """Get notification settings as nested object."""
        return NotificationSettings(
            backend=self.notification_backend,
            pushbullet=PushbulletSettings(token=self.pushbullet_token),
            whatsapp=WhatsAppSettings(
                apikey=self.callmebot_apikey, phone=self.callmebot_phone
            ),
            slack=SlackSettings(webhook_url=self.slack_webhook_url),
            max_retries=self.notification_max_retries,
            initial_backoff_sec=self.notification_initial_backoff_sec,
            timeout_sec=self.notification_timeout_sec,
            queue_size=self.notification_queue_size,
            shutdown_grace_sec=self.shutdown_grace_sec,
        )

    @cached_property
    def sampler(self) -> SamplerSettings:
        """Get sampler settings."""
        return SamplerSettings(
            device_id=self.device_id,
            interval_sec=_ms(self.interval_ms),
            mock_sensors=self.mock_sensors,
            simulation_seed=self.simulation_seed,
            serial_port=self.serial_port,
            serial_baud=self.serial_baud,
            serial_timeout_sec=(
                self.serial_timeout_sec or _ms(self.interval_ms)
            ),
        )

    @cached_property
    def stream(self) -> StreamSettings:
        """Get stream settings."""
        return StreamSettings(
            history_size=self.history_size,
            listener_queue_size=self.listener_queue_size,
        )

    @cached_property
    def eventbus(self) -> EventBusSettings:
        """Get event bus settings."""
        return EventBusSettings(
            enabled=self.enable_eventbus, redis_url=self.redis_url
        )

    @model_validator(mode="after")
    def validate_settings(self) -> Self:
        """Validate cross-field configuration constraints."""
        errors: list[str] = []

        if self.humidity_min >= self.humidity_max:
            errors.append(
                f"HUMIDITY_MIN ({self.humidity_min}) must be less than "
                f"HUMIDITY_MAX ({self.humidity_max})"
            )

        if (
            self.serial_timeout_sec is not None
            and self.serial_timeout_sec > _ms(self.interval_ms)
        ):
            errors.append(
                f"SERIAL_TIMEOUT_SEC ({self.serial_timeout_sec}) must not "
                f"exceed the sampling interval ({self.interval_ms} ms)"
            )

        backend = self.notification_backend
        if backend == NotificationBackend.PUSHBULLET:
            if not self.pushbullet_token.get_secret_value():
                errors.append("Pushbullet selected but PUSHBULLET_TOKEN is not set")
        elif backend == NotificationBackend.WHATSAPP:
            missing = []
            if not self.callmebot_apikey.get_secret_value():
                missing.append("CALLMEBOT_APIKEY")
            if not self.callmebot_phone:
                missing.append("CALLMEBOT_PHONE")
            if missing:
                errors.append(
                    f"WhatsApp selected but missing: {', '.join(missing)}"
                )
        elif backend == NotificationBackend.SLACK:
            if not self.slack_webhook_url:
                errors.append("Slack selected but SLACK_WEBHOOK_URL is not set")

        if errors:
            raise ValueError(
                "Configuration validation failed:\n  - "
                + "\n  - ".join(errors)
            )

        return self


# Settings override for testing - allows injecting custom Settings without
# modifying environment variables or clearing the lru_cache.
_settings_override: Settings | None = None


@lru_cache(maxsize=1)
def _load_settings() -> Settings:
    """Load settings from environment (cached)."""
    return Settings()


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns the test override if set, otherwise loads from environment
    variables (cached after first load). For testing, use set_settings()
    from greenhouse.lib.config.testing to override.
    """
    if _settings_override is not None:
        return _settings_override
    return _load_settings()
