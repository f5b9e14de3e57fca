import os
from dataclasses import dataclass

MEMORY = "memory"
DURABLE = "durable"
STORES = (MEMORY, DURABLE)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG = {
    "store": MEMORY,
    "db_path": "quectl.db",
    "log_level": "INFO",
}

# environment variable -> config key
ENV_VARS = {
    "QUECTL_STORE": "store",
    "QUECTL_DB": "db_path",
    "QUECTL_LOG_LEVEL": "log_level",
}


@dataclass
class Config:
    store: str = DEFAULT_CONFIG["store"]
    db_path: str = DEFAULT_CONFIG["db_path"]
    log_level: str = DEFAULT_CONFIG["log_level"]

    def __post_init__(self):
        self.store = str(self.store).strip().lower()
        if self.store not in STORES:
            raise ValueError(f"Invalid store: {self.store!r}. Must be one of {STORES}")
        self.log_level = str(self.log_level).strip().upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level!r}. Must be one of {LOG_LEVELS}")
        if self.store == DURABLE and not str(self.db_path).strip():
            raise ValueError("db_path cannot be empty for a durable store")

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "Config":
        """Build a config from QUECTL_* variables; non-None overrides win."""
        environ = os.environ if environ is None else environ
        values = {key: environ[var] for var, key in ENV_VARS.items() if environ.get(var)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
