"""Configuration management for the curtain controller."""
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PinConfig(BaseSettings):
    """BCM pin numbers for the motor bridge and the limit switches."""
    model_config = SettingsConfigDict(env_prefix="CURTAIN_PINS_")

    motor_left: int = Field(default=22, description="Left motor bridge terminal (header pin 15)")
    motor_right: int = Field(default=23, description="Right motor bridge terminal (header pin 16)")
    switch_left: int = Field(default=17, description="Closed-side limit switch (header pin 11)")
    switch_right: int = Field(default=27, description="Open-side limit switch (header pin 13)")

    @field_validator('motor_left', 'motor_right', 'switch_left', 'switch_right')
    @classmethod
    def validate_pin(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Pin numbers must be non-negative")
        return v


class MotionConfig(BaseSettings):
    """Open-loop timing and motor polarity."""
    model_config = SettingsConfigDict(env_prefix="CURTAIN_MOTION_")

    full_traversal_seconds: float = Field(default=30.0, gt=0, description="Time for the curtain to travel from one limit to the other (seconds)")
    settle_seconds: float = Field(default=0.5, ge=0, description="Pause after every motion before the next request is serviced (seconds)")
    initial_position: float = Field(default=0.0, description="Position assumed at startup, before any hard stop is seen")
    motor_active_high: bool = Field(default=False, description="Whether the motor bridge inputs are active high")

    @field_validator('initial_position')
    @classmethod
    def validate_position(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("Position must be between 0 and 1")
        return v


class SwitchConfig(BaseSettings):
    """Limit switch debouncing and polarity."""
    model_config = SettingsConfigDict(env_prefix="CURTAIN_SWITCH_")

    debounce_seconds: float = Field(default=0.5, ge=0, description="Quiet window after an emitted level before an opposite level is accepted (seconds)")
    active_level: bool = Field(default=False, description="Input level of a pressed switch (False for active-low with pull-up)")


class WatcherConfig(BaseSettings):
    """Configuration for the sysfs edge watcher."""
    model_config = SettingsConfigDict(env_prefix="CURTAIN_WATCHER_")

    sysfs_root: str = Field(default="/sys/class/gpio", description="Root of the sysfs GPIO interface")
    poll_interval: float = Field(default=1.0, gt=0, description="Upper bound on one multiplexed wait (seconds)")
    notify_queue_size: int = Field(default=32, gt=0, description="Edge notifications buffered before new ones are dropped")
    export_timeout: float = Field(default=0.5, ge=0, description="Time allowed for an exported pin to become configurable (seconds)")


class ApiConfig(BaseSettings):
    """Configuration for the caller-facing surfaces."""
    model_config = SettingsConfigDict(env_prefix="CURTAIN_API_")

    enabled: bool = Field(default=True, description="Whether to serve the HTTP API")
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=8080, description="HTTP port")
    stdin_enabled: bool = Field(default=False, description="Whether to accept open/close commands on stdin")


class RuntimeConfig(BaseSettings):
    """Configuration for logging."""
    model_config = SettingsConfigDict(env_prefix="CURTAIN_RUNTIME_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: str = Field(default="runtime/logs", description="Logging directory")
    log_file: str = Field(default="runtime/logs/curtain.log", description="Logging file")


class CurtainSettings(BaseModel):
    """Everything the controller needs, passed explicitly at construction."""
    pins: PinConfig = Field(default_factory=PinConfig)
    motion: MotionConfig = Field(default_factory=MotionConfig)
    switch: SwitchConfig = Field(default_factory=SwitchConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)

    @property
    def limit_switches(self) -> dict[int, float]:
        """Map each limit switch pin to the position it marks."""
        return {self.pins.switch_left: 0.0, self.pins.switch_right: 1.0}


pin_config = PinConfig()
motion_config = MotionConfig()
switch_config = SwitchConfig()
watcher_config = WatcherConfig()
api_config = ApiConfig()
runtime_config = RuntimeConfig()
curtain_settings = CurtainSettings(
    pins=pin_config,
    motion=motion_config,
    switch=switch_config,
    watcher=watcher_config,
)
