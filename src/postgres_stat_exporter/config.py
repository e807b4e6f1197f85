import logging
import math
import os
import types
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_DATA_SOURCE_NAME = "postgresql://postgres@localhost:5432/postgres?sslmode=disable"
COLLECTOR_FLAG_PREFIX = "PG_EXPORTER_COLLECTOR_"

TRUE_VALUES = ("1", "true", "yes")
FALSE_VALUES = ("0", "false", "no")


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    env_val = environ.get(key)
    if env_val is None:
        return default
    try:
        return int(env_val)
    except ValueError:
        logger.warning(
            "Unable to parse %s=%r as number, ignoring...",
            key,
            env_val,
        )
        return default


def _env_float(environ: Mapping[str, str], key: str, default: float) -> float:
    env_val = environ.get(key)
    if env_val is None:
        return default
    try:
        value = float(env_val)
    except ValueError:
        value = math.nan
    if not math.isfinite(value) or value <= 0:
        logger.warning(
            "Unable to parse %s=%r as positive number, ignoring...",
            key,
            env_val,
        )
        return default
    return value


def _env_flag(environ: Mapping[str, str], key: str) -> bool | None:
    env_val = environ.get(key)
    if env_val is None:
        return None
    if env_val.lower() in TRUE_VALUES:
        return True
    if env_val.lower() in FALSE_VALUES:
        return False
    logger.warning("Unable to parse %s=%r as boolean, ignoring...", key, env_val)
    return None


@dataclass(frozen=True)
class Settings:
    data_source_name: str = DEFAULT_DATA_SOURCE_NAME
    pool_min_size: int = 1
    pool_max_size: int = 4
    scrape_timeout: float = 10.0
    listen_host: str = "0.0.0.0"  # noqa: S104
    listen_port: int = 9187
    log_level: str = "INFO"
    # Only collectors with an explicit flag are listed; everything else keeps
    # its registered default.
    collectors: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "collectors",
            types.MappingProxyType(dict(self.collectors)),
        )

    @classmethod
    def from_env(
        cls,
        collector_names: Iterable[str],
        environ: Mapping[str, str] | None = None,
    ) -> "Settings":
        if environ is None:
            environ = os.environ

        collectors = {}
        for name in collector_names:
            flag = _env_flag(environ, f"{COLLECTOR_FLAG_PREFIX}{name}".upper())
            if flag is not None:
                collectors[name] = flag

        return cls(
            data_source_name=environ.get("DATA_SOURCE_NAME", DEFAULT_DATA_SOURCE_NAME),
            pool_min_size=_env_int(environ, "PG_EXPORTER_POOL_MIN_SIZE", 1),
            pool_max_size=_env_int(environ, "PG_EXPORTER_POOL_MAX_SIZE", 4),
            scrape_timeout=_env_float(environ, "PG_EXPORTER_SCRAPE_TIMEOUT", 10.0),
            listen_host=environ.get("LISTEN_HOST", "0.0.0.0"),  # noqa: S104
            listen_port=_env_int(environ, "LISTEN_PORT", 9187),
            log_level=environ.get("LOGLEVEL", "INFO").upper(),
            collectors=collectors,
        )
