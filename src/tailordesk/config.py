from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

SYSTEM_STATUSES = ("ACTIVE", "SUSPENDED")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "require"
    connect_timeout: int = 10


@dataclass(frozen=True)
class AuthConfig:
    url: str
    anon_key: str
    service_role_key: str | None = None
    timeout: float = 15.0


@dataclass(frozen=True)
class BrandingConfig:
    shop_display_name: str = "FASHION HOUSE"
    shop_subtitle: str = ""
    shop_phone: str = ""
    currency_symbol: str = "Ksh"


@dataclass(frozen=True)
class BillingConfig:
    mpesa_number: str = ""
    till_number: str = ""
    support_phone: str = ""


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    system_status: str
    secret_key: str
    db: DbConfig
    auth: AuthConfig
    branding: BrandingConfig = field(default_factory=BrandingConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)

    @property
    def suspended(self) -> bool:
        return self.system_status == "SUSPENDED"


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"Config file not found: {p.resolve()}")
    try:
        with p.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{p.name} is not valid TOML: {e}") from e

    return parse_config(data)


def parse_config(data: dict) -> AppConfig:
    try:
        app = data["app"]
        db = data["db"]
        auth = data["auth"]
        branding = data.get("branding", {})
        billing = data.get("billing", {})

        status = str(app.get("system_status", "ACTIVE")).upper()
        if status not in SYSTEM_STATUSES:
            raise ConfigError(f"Unknown system_status: {status!r} (expected one of {SYSTEM_STATUSES})")

        return AppConfig(
            name=str(app.get("name", "TailorDesk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            system_status=status,
            secret_key=str(app["secret_key"]),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "require")),
                connect_timeout=int(db.get("connect_timeout", 10)),
            ),
            auth=AuthConfig(
                url=str(auth["url"]).rstrip("/"),
                anon_key=str(auth["anon_key"]),
                service_role_key=(str(auth["service_role_key"]) if auth.get("service_role_key") else None),
                timeout=float(auth.get("timeout", 15.0)),
            ),
            branding=BrandingConfig(
                shop_display_name=str(branding.get("shop_display_name") or "FASHION HOUSE"),
                shop_subtitle=str(branding.get("shop_subtitle", "")),
                shop_phone=str(branding.get("shop_phone", "")),
                currency_symbol=str(branding.get("currency_symbol") or "Ksh"),
            ),
            billing=BillingConfig(
                mpesa_number=str(billing.get("mpesa_number", "")),
                till_number=str(billing.get("till_number", "")),
                support_phone=str(billing.get("support_phone", "")),
            ),
        )
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e
