"""
Service configuration.

Values come from the environment (optionally seeded from a .env file by the
entry point) and can be overridden from the command line.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

SINGLE_SOUND_ENV_VAR = "DOORBELL_SINGLE_SOUND"
DOUBLE_SOUND_ENV_VAR = "DOORBELL_DOUBLE_SOUND"
WEBHOOK_ENV_VAR = "DOORBELL_WEBHOOK_URL"

DEFAULT_BROKER = "192.168.0.100"
DEFAULT_PORT = 1883
DEFAULT_TOPICS = ("sensors/Doorbell", "sensors/Button")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""


@dataclass(slots=True)
class MqttSettings:
    """Broker connection and subscription settings."""
    broker: str = DEFAULT_BROKER
    port: int = DEFAULT_PORT
    topics: Tuple[str, ...] = DEFAULT_TOPICS
    qos: int = 1
    client_id: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: int = 60
    connect_timeout: float = 5.0

    def validate(self) -> None:
        if not self.broker:
            raise ConfigurationError("MQTT broker host is empty")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"MQTT port out of range: {self.port}")
        if self.qos not in (0, 1, 2):
            raise ConfigurationError(f"MQTT QoS must be 0, 1 or 2, got {self.qos}")


@dataclass(slots=True)
class DoorbellConfiguration:
    """Everything the service needs to start."""
    single_sound: Path
    double_sound: Path
    webhook_url: Optional[str] = None
    mqtt: MqttSettings = field(default_factory=MqttSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        *,
        webhook_url: Optional[str] = None,
        broker: Optional[str] = None,
        port: Optional[int] = None,
        topics: Optional[Sequence[str]] = None,
        log_level: Optional[str] = None,
    ) -> "DoorbellConfiguration":
        """
        Build a configuration from environment variables.

        Keyword arguments, when not None, take precedence over the
        environment (they carry command-line values).

        Raises:
            ConfigurationError: audio paths missing or a value is invalid
        """
        env = os.environ if env is None else env

        single = env.get(SINGLE_SOUND_ENV_VAR)
        double = env.get(DOUBLE_SOUND_ENV_VAR)
        if not single or not double:
            raise ConfigurationError(
                f"need to define {SINGLE_SOUND_ENV_VAR} and {DOUBLE_SOUND_ENV_VAR}"
            )

        if topics is None:
            raw_topics = env.get("DOORBELL_MQTT_TOPICS")
            if raw_topics:
                topics = [t.strip() for t in raw_topics.split(",") if t.strip()]
            else:
                topics = DEFAULT_TOPICS

        mqtt = MqttSettings(
            broker=broker or env.get("DOORBELL_MQTT_BROKER", DEFAULT_BROKER),
            port=port if port is not None else _int(env, "DOORBELL_MQTT_PORT", DEFAULT_PORT),
            topics=tuple(topics),
            qos=_int(env, "DOORBELL_MQTT_QOS", 1),
            username=env.get("DOORBELL_MQTT_USERNAME") or None,
            password=env.get("DOORBELL_MQTT_PASSWORD") or None,
        )
        mqtt.validate()

        if webhook_url is None:
            webhook_url = env.get(WEBHOOK_ENV_VAR)

        level = (log_level or env.get("DOORBELL_LOG_LEVEL") or "INFO").upper()
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"unknown log level {level!r}")

        return cls(
            single_sound=Path(single),
            double_sound=Path(double),
            webhook_url=webhook_url or None,
            mqtt=mqtt,
            log_level=level,
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None
