"""Configuration management for the Slack approval daemon.

Values are merged from, lowest priority first:
- ~/.config/slackapproval/config.cfg ([DEFAULT] and [SLACK] sections)
- ~/.config/slackapproval/.env
- the process environment

Provides SlackConfig (channel credentials), DaemonSettings (registry timings)
and HookSettings (client-side behaviour).
"""

import configparser
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from slackapproval.utils.durations import parse_duration

CONFIG_DIR = Path.home() / ".config" / "slackapproval"
CONFIG_PATH = CONFIG_DIR / "config.cfg"
ENV_PATH = CONFIG_DIR / ".env"

# Environment variables picked up from the process environment
ENV_KEYS = (
    "SLACK_BOT_TOKEN",
    "SLACK_APP_TOKEN",
    "SLACK_CHANNEL_ID",
    "SLACK_USER_ID",
    "HOOK_DELAY",
    "HOOK_NOTIFY_IMMEDIATELY_ON_LOCK",
    "HOOK_REPLY_TIMEOUT",
    "DEDUP_WINDOW",
    "STALE_AFTER",
    "SWEEP_INTERVAL",
)


@dataclass
class SlackConfig:
    bot_token: str
    app_token: str
    channel_id: str
    mention_user_id: Optional[str] = None


@dataclass
class DaemonSettings:
    dedup_window: float = 30.0
    stale_after: float = 2 * 60 * 60.0
    sweep_interval: float = 60.0


@dataclass
class HookSettings:
    delay: float = 60.0
    notify_immediately_on_lock: bool = True
    reply_timeout: float = 5 * 60.0


def load_raw_config(
    path: Path = CONFIG_PATH,
    env_path: Path = ENV_PATH,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Load configuration values from the config file, .env file and environment.
    Values are returned with lowercase keys for convenience.
    """
    cfg = configparser.ConfigParser()
    data: Dict[str, str] = {}

    if path.exists():
        cfg.read(path)
        if "DEFAULT" in cfg:
            data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})
        if "SLACK" in cfg:
            data.update({k.lower(): v for k, v in cfg["SLACK"].items()})

    if env_path.exists():
        data.update(
            {k.lower(): v for k, v in dotenv_values(env_path).items() if v is not None}
        )

    environ = os.environ if environ is None else environ
    for key in ENV_KEYS:
        value = environ.get(key)
        if value:
            data[key.lower()] = value

    return data


def _get_bool(raw: Dict[str, str], key: str, default: bool = False) -> bool:
    value = raw.get(key)
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_seconds(raw: Dict[str, str], key: str, default: float) -> float:
    value = str(raw.get(key, "") or "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return parse_duration(value)


def get_slack_config(raw: Optional[Dict[str, str]] = None) -> SlackConfig:
    """
    Build a SlackConfig from raw configuration values.
    Raises ValueError if required fields are missing.

    SLACK_CHANNEL_ID may be a channel (C...) or, when unset, the prompts go to
    SLACK_USER_ID as a direct message.
    """
    raw = load_raw_config() if raw is None else raw

    bot_token = raw.get("slack_bot_token", "").strip()
    app_token = raw.get("slack_app_token", "").strip()
    user_id = raw.get("slack_user_id", "").strip()
    channel_id = raw.get("slack_channel_id", "").strip() or user_id

    missing = []
    if not bot_token:
        missing.append("SLACK_BOT_TOKEN")
    if not app_token:
        missing.append("SLACK_APP_TOKEN")
    if not channel_id:
        missing.append("SLACK_CHANNEL_ID or SLACK_USER_ID")
    if missing:
        raise ValueError(f"Missing required configuration: {', '.join(missing)}")

    return SlackConfig(
        bot_token=bot_token,
        app_token=app_token,
        channel_id=channel_id,
        mention_user_id=user_id or None,
    )


def get_daemon_settings(raw: Optional[Dict[str, str]] = None) -> DaemonSettings:
    """Extract registry timings from the raw config."""
    raw = load_raw_config() if raw is None else raw
    defaults = DaemonSettings()
    return DaemonSettings(
        dedup_window=_get_seconds(raw, "dedup_window", defaults.dedup_window),
        stale_after=_get_seconds(raw, "stale_after", defaults.stale_after),
        sweep_interval=_get_seconds(raw, "sweep_interval", defaults.sweep_interval),
    )


def get_hook_settings(raw: Optional[Dict[str, str]] = None) -> HookSettings:
    """Extract hook behaviour from the raw config."""
    raw = load_raw_config() if raw is None else raw
    defaults = HookSettings()
    return HookSettings(
        delay=_get_seconds(raw, "hook_delay", defaults.delay),
        notify_immediately_on_lock=_get_bool(
            raw, "hook_notify_immediately_on_lock", defaults.notify_immediately_on_lock
        ),
        reply_timeout=_get_seconds(raw, "hook_reply_timeout", defaults.reply_timeout),
    )
