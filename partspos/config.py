from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


def _get_ids(*keys: str) -> frozenset[int]:
    v = _get_env(*keys, default="") or ""
    return frozenset(int(p) for p in v.replace(";", ",").split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_ids: frozenset[int]
    api_url: str
    api_token: str
    api_timeout: float
    export_dir: str
    currency: str
    decimals: int
    counter_customer: str
    log_level: str


def load_settings() -> Settings:
    decimals = _get_int("DECIMALS", default=3)
    return Settings(
        bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
        admin_ids=_get_ids("ADMIN_ID", "ADMIN_IDS", "ADMIN_TG_ID"),
        api_url=_get_env("API_URL", "POS_API_URL", default="http://localhost:3001") or "http://localhost:3001",
        api_token=_get_env("API_TOKEN", default="") or "",
        api_timeout=_get_float("API_TIMEOUT", default=20.0),
        export_dir=_get_env("EXPORT_DIR", default=str(ROOT_DIR / "exports")) or str(ROOT_DIR / "exports"),
        currency=_get_env("CURRENCY", default="TND") or "TND",
        # 0 is valid (whole-unit currencies)
        decimals=3 if decimals is None else decimals,
        counter_customer=_get_env("COUNTER_CUSTOMER", default="client comptoir") or "client comptoir",
        log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
    )


settings = load_settings()


def require_bot_settings(s: Settings = settings) -> None:
    if not s.bot_token:
        raise RuntimeError("BOT_TOKEN is empty. Set BOT_TOKEN in .env")
    if not s.admin_ids:
        raise RuntimeError("ADMIN_ID is empty. Set ADMIN_ID (or ADMIN_IDS) in .env")
