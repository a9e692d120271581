"""
Runtime configuration.

All settings end up in one ``Config`` object, built once at startup
and passed to :func:`smsremind.reminder.run`.  Values are taken from,
in order of precedence:

* explicitly given command line options
* environment variables prefixed with ``SMSREMIND_``, like
  ``SMSREMIND_CALDAV`` or ``SMSREMIND_DRY_RUN``
* a section of a config file (json, or yaml if pyyaml is installed)
* the defaults below

A config file section may inherit from another one:

    {"default": {"caldav": "https://...", "timezone": "Europe/Vienna"},
     "work": {"inherits": "default", "calendars": "Work"}}
"""
import json
import logging
import os
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from datetime import timedelta
from datetime import tzinfo
from typing import Any
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional

from smsremind.lib.error import ConfigurationError

log = logging.getLogger("smsremind")

DEFAULT_TEMPLATE = "Your next appointment is on {start_date} at {start_time}"

ENV_PREFIX = "SMSREMIND_"


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"not a boolean: {value!r}")


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"not an integer: {value!r}") from e


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    return [str(x).strip() for x in value if str(x).strip()]


@dataclass
class Config:
    state_dir: str = "."
    offset: int = 1
    calendars: List[str] = field(default_factory=list)
    caldav: str = field(default="", repr=False)
    dry_run: bool = True
    sms_template: str = DEFAULT_TEMPLATE
    sender: str = "Reminder"
    aspsms_userkey: str = field(default="", repr=False)
    aspsms_password: str = field(default="", repr=False)
    timezone: str = "Europe/Vienna"
    region: str = "AT"
    lock_max_age: int = 60
    timeout: int = 30

    _converters = {
        "offset": _as_int,
        "lock_max_age": _as_int,
        "timeout": _as_int,
        "dry_run": _as_bool,
        "calendars": _as_list,
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        """
        Builds a config from a dict, converting strings where needed.
        Unknown keys are ignored with a warning.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            key = key.replace("-", "_").lower()
            if key not in known:
                if key != "inherits":
                    log.warning("ignoring unknown config key %s", key)
                continue
            if value is None:
                continue
            converter = cls._converters.get(key, str)
            kwargs[key] = converter(value)
        return cls(**kwargs)

    @property
    def lock_path(self) -> str:
        return os.path.join(self.state_dir, "smsremind.lock")

    @property
    def store_path(self) -> str:
        return os.path.join(self.state_dir, "sent.json")

    @property
    def lock_timeout(self) -> timedelta:
        return timedelta(seconds=self.lock_max_age)

    def load_timezone(self) -> tzinfo:
        """
        The configured zone.  An empty name means the zone of the
        machine we're running on.
        """
        if not self.timezone:
            import tzlocal

            return tzlocal.get_localzone()
        from smsremind.event import load_timezone

        tz = load_timezone(self.timezone)
        if tz is None:
            raise ConfigurationError(f"unknown timezone {self.timezone!r}")
        return tz


def config_section(config: Mapping[str, Any], section: str = "default") -> Dict[str, Any]:
    if section in config and "inherits" in config[section]:
        ret = config_section(config, config[section]["inherits"])
    else:
        ret = {}
    if section in config:
        ret.update(config[section])
    return ret


def read_config(fn: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Reads a json (or yaml) config file.  Without a file name, the
    usual locations are tried.  Returns None if no file is found.
    """
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config"
        for config_file in (
            f"{cfgdir}/smsremind/smsremind.conf",
            f"{cfgdir}/smsremind/smsremind.yaml",
            f"{cfgdir}/smsremind/smsremind.json",
            "/etc/smsremind.conf",
        ):
            cfg = read_config(config_file)
            if cfg is not None:
                return cfg
        return None

    try:
        with open(fn, "rb") as config_file:
            content = config_file.read()
    except FileNotFoundError:
        log.debug("no config file at %s", fn)
        return None

    try:
        return json.loads(content)
    except ValueError:
        pass

    ## Late import; yaml is an external module, not a hard requirement
    try:
        import yaml
    except ImportError:
        raise ConfigurationError(
            f"config file {fn} exists but is not valid json, and pyyaml is not installed."
        )
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"config file {fn} exists but is neither valid json nor yaml: {e}"
        ) from e


def config_from_environment(environ: Mapping[str, str]) -> Dict[str, str]:
    return {
        key[len(ENV_PREFIX) :].lower(): value
        for key, value in environ.items()
        if key.startswith(ENV_PREFIX) and not key.startswith(ENV_PREFIX + "CONFIG")
    }


def get_config(
    options: Optional[Mapping[str, Any]] = None,
    config_file: Optional[str] = None,
    config_section_name: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Merges config file, environment and options into a Config.
    Options with the value None count as not given.
    """
    if environ is None:
        environ = os.environ
    if not config_file:
        config_file = environ.get(ENV_PREFIX + "CONFIG_FILE")
    if not config_section_name:
        config_section_name = environ.get(ENV_PREFIX + "CONFIG_SECTION", "default")

    merged: Dict[str, Any] = {}
    cfg = read_config(config_file)
    if cfg:
        if not isinstance(cfg, dict):
            raise ConfigurationError("config file must hold a mapping of sections")
        merged.update(config_section(cfg, config_section_name))
    elif config_file and cfg is None:
        raise ConfigurationError(f"config file {config_file} not found")
    merged.update(config_from_environment(environ))
    merged.update({k: v for k, v in (options or {}).items() if v is not None})
    return Config.from_mapping(merged)
