from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from fastapi import Request

from .exceptions import ConfigurationError


DEFAULT_CONFIG_FILE_NAME = "config.yaml"
CONFIG_PATH_ENV = "BOOKING_CONFIG_PATH"

SESSION_TYPES: tuple[str, ...] = ("group", "sunday", "private", "semi_private")

WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


@dataclass(slots=True)
class CreditPackageConfig:
    package_type: str
    credits: int
    validity_months: int = 12


@dataclass(slots=True)
class LedgerConfig:
    credits_per_session: dict[str, int]
    packages: dict[str, CreditPackageConfig]
    expiry_warning_days: int = 30
    low_credit_threshold: int = 3
    cancellation_window_hours: int = 24

    def credits_required(self, session_type: str) -> int:
        return self.credits_per_session.get(session_type, 0)


@dataclass(slots=True)
class CapacityConfig:
    default_max_capacity: dict[str, int]

    def max_capacity_for(self, session_type: str) -> int:
        return self.default_max_capacity.get(session_type, 6)


@dataclass(slots=True)
class SlotTemplateConfig:
    start_time: time
    end_time: time
    min_category: str
    max_category: str
    max_capacity: int

    @property
    def time_slot(self) -> str:
        return f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"


@dataclass(slots=True)
class SlotGeneratorConfig:
    session_type: str = "sunday"
    weekday: int = 6
    weeks_ahead: int = 4
    interval_seconds: float = 6 * 60 * 60
    templates: list[SlotTemplateConfig] = field(default_factory=list)


@dataclass(slots=True)
class AppConfig:
    """booking-service 비즈니스 설정 루트.

    - 세션 타입별 필요 크레딧, 패키지, 정원, 반복 슬롯 템플릿처럼 배포마다 바뀔 수 있는 값만 담는다.
    - 접속 정보/시크릿은 환경 변수(Settings)에서 읽는다.
    """

    ledger: LedgerConfig
    capacity: CapacityConfig
    slots: SlotGeneratorConfig
    timezone: str = "America/Toronto"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(slots=True)
class Settings:
    """환경 변수 기반 런타임 설정."""

    mongo_uri: str
    mongo_db_name: str | None
    port: int
    scheduler_enabled: bool
    cron_secret: str | None


def _find_config_path() -> Path:
    """BOOKING_CONFIG_PATH 가 있으면 사용하고, 없으면 CWD 부터 상위로 올라가며 config.yaml 을 찾는다."""

    explicit = os.getenv(CONFIG_PATH_ENV, "").strip()
    if explicit:
        path = Path(explicit)
        if not path.is_file():
            raise ConfigurationError(f"{CONFIG_PATH_ENV} points to a missing file: {path}")
        return path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate

    raise ConfigurationError(
        f"{DEFAULT_CONFIG_FILE_NAME} not found. Place config.yaml in project root.",
    )


def _as_int(value: Any, key: str, source: str, *, minimum: int = 0) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise ConfigurationError(f"invalid {key} in {source}: {value!r}") from exc
    if result < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum} in {source}: {value!r}")
    return result


def _as_time(value: Any, key: str, source: str) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        # YAML 1.1 은 07:30 을 60진수 정수(450)로 읽는다.
        return time(value // 60, value % 60)
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"invalid {key} in {source}: {value!r}") from exc


def _parse_ledger(raw: dict[str, Any], source: str) -> LedgerConfig:
    credits_raw = raw.get("credits_per_session") or {
        "group": 1,
        "sunday": 0,
        "private": 0,
        "semi_private": 0,
    }
    credits_per_session: dict[str, int] = {}
    for session_type, value in credits_raw.items():
        if session_type not in SESSION_TYPES:
            raise ConfigurationError(
                f"unknown session type in ledger.credits_per_session ({source}): {session_type!r}"
            )
        credits_per_session[session_type] = _as_int(
            value, f"ledger.credits_per_session.{session_type}", source
        )

    packages_raw = raw.get("packages") or {
        "single": {"credits": 1},
        "10_pack": {"credits": 10},
        "20_pack": {"credits": 20},
        "50_pack": {"credits": 50},
    }
    packages: dict[str, CreditPackageConfig] = {}
    for package_type, item in packages_raw.items():
        if not isinstance(item, dict):
            continue
        packages[str(package_type)] = CreditPackageConfig(
            package_type=str(package_type),
            credits=_as_int(
                item.get("credits"), f"ledger.packages.{package_type}.credits", source, minimum=1
            ),
            validity_months=_as_int(
                item.get("validity_months", 12),
                f"ledger.packages.{package_type}.validity_months",
                source,
                minimum=1,
            ),
        )

    return LedgerConfig(
        credits_per_session=credits_per_session,
        packages=packages,
        expiry_warning_days=_as_int(
            raw.get("expiry_warning_days", 30), "ledger.expiry_warning_days", source
        ),
        low_credit_threshold=_as_int(
            raw.get("low_credit_threshold", 3), "ledger.low_credit_threshold", source
        ),
        cancellation_window_hours=_as_int(
            raw.get("cancellation_window_hours", 24),
            "ledger.cancellation_window_hours",
            source,
        ),
    )


def _parse_capacity(raw: dict[str, Any], source: str) -> CapacityConfig:
    caps_raw = raw.get("default_max_capacity") or {
        "group": 6,
        "sunday": 12,
        "private": 1,
        "semi_private": 3,
    }
    return CapacityConfig(
        default_max_capacity={
            str(key): _as_int(value, f"capacity.default_max_capacity.{key}", source, minimum=1)
            for key, value in caps_raw.items()
        }
    )


def _parse_slots(raw: dict[str, Any], source: str) -> SlotGeneratorConfig:
    weekday_name = str(raw.get("weekday", "sunday")).strip().lower()
    if weekday_name not in WEEKDAYS:
        raise ConfigurationError(f"invalid slots.weekday in {source}: {weekday_name!r}")

    session_type = str(raw.get("session_type", "sunday")).strip()
    if session_type not in SESSION_TYPES:
        raise ConfigurationError(f"invalid slots.session_type in {source}: {session_type!r}")

    templates_raw = raw.get("templates")
    if templates_raw is None:
        templates_raw = [
            {
                "start_time": "07:30",
                "end_time": "08:30",
                "min_category": "M7",
                "max_category": "M11",
                "max_capacity": 12,
            },
            {
                "start_time": "08:30",
                "end_time": "09:30",
                "min_category": "M13",
                "max_category": "M15",
                "max_capacity": 10,
            },
        ]

    templates: list[SlotTemplateConfig] = []
    for index, item in enumerate(templates_raw):
        if not isinstance(item, dict):
            continue
        key = f"slots.templates[{index}]"
        template = SlotTemplateConfig(
            start_time=_as_time(item.get("start_time"), f"{key}.start_time", source),
            end_time=_as_time(item.get("end_time"), f"{key}.end_time", source),
            min_category=str(item.get("min_category", "")).strip(),
            max_category=str(item.get("max_category", "")).strip(),
            max_capacity=_as_int(item.get("max_capacity"), f"{key}.max_capacity", source, minimum=1),
        )
        if template.end_time <= template.start_time:
            raise ConfigurationError(f"{key} end_time must be after start_time in {source}")
        templates.append(template)

    return SlotGeneratorConfig(
        session_type=session_type,
        weekday=WEEKDAYS[weekday_name],
        weeks_ahead=_as_int(raw.get("weeks_ahead", 4), "slots.weeks_ahead", source, minimum=1),
        interval_seconds=float(
            _as_int(raw.get("interval_seconds", 21600), "slots.interval_seconds", source, minimum=1)
        ),
        templates=templates,
    )


def parse_config(data: dict[str, Any], source: str = "<memory>") -> AppConfig:
    """yaml 로드 결과(dict)를 AppConfig 로 변환한다. 없는 섹션은 기본값을 사용한다."""

    config = AppConfig(
        ledger=_parse_ledger(data.get("ledger") or {}, source),
        capacity=_parse_capacity(data.get("capacity") or {}, source),
        slots=_parse_slots(data.get("slots") or {}, source),
        timezone=str(data.get("timezone") or "America/Toronto"),
    )
    try:
        ZoneInfo(config.timezone)
    except ZoneInfoNotFoundError as exc:
        raise ConfigurationError(f"invalid timezone in {source}: {config.timezone!r}") from exc
    return config


def load_config() -> AppConfig:
    """booking-service 설정을 로드하여 AppConfig 로 반환한다."""

    path = _find_config_path()
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"failed to read {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return parse_config(data, str(path))


def load_settings() -> Settings:
    """환경 변수에서 접속 정보를 읽는다. MONGO_URI 가 없으면 즉시 실패한다."""

    mongo_uri = os.getenv("MONGO_URI", "").strip()
    if not mongo_uri:
        raise ConfigurationError("MONGO_URI environment variable is required for MongoDB")

    raw_port = os.getenv("BOOKING_SERVICE_PORT", "8004")
    try:
        port = int(raw_port)
    except ValueError as exc:
        raise ConfigurationError(f"BOOKING_SERVICE_PORT must be an integer, got: {raw_port!r}") from exc

    return Settings(
        mongo_uri=mongo_uri,
        mongo_db_name=os.getenv("MONGO_DB_NAME", "").strip() or None,
        port=port,
        scheduler_enabled=os.getenv("SLOT_SCHEDULER_ENABLED", "true").strip().lower()
        in {"1", "true", "yes"},
        cron_secret=os.getenv("CRON_SECRET", "").strip() or None,
    )


def get_app_config(request: Request) -> AppConfig:
    """FastAPI DI용: lifespan 에서 app.state 에 올려둔 AppConfig 를 반환한다."""

    config = getattr(request.app.state, "config", None)
    if config is None:
        raise ConfigurationError("AppConfig has not been initialized on app.state")
    return config


def get_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise ConfigurationError("Settings have not been initialized on app.state")
    return settings
