"""
JSON logging for cache diagnostics.
Why: one machine-readable line per cache event, filterable by store name.
"""

import json
import logging
from typing import Any, Dict, MutableMapping, Tuple


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        store = getattr(record, "store", None)
        if store is not None:
            payload["store"] = store
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class StoreLogger(logging.LoggerAdapter):
    """Prefixes messages with ``CACHE [<store>]`` and tags records with the store.

    A silent store logs nothing at all, failures included.
    """

    def __init__(self, logger: logging.Logger, store: str, silent: bool = False) -> None:
        super().__init__(logger, {"store": store})
        self.store = store
        self.silent = silent

    def isEnabledFor(self, level: int) -> bool:
        if self.silent:
            return False
        return super().isEnabledFor(level)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), "store": self.store}
        return f"CACHE [{self.store}] {msg}", kwargs


def setup_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    if any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter())
    root.setLevel(level)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_store_logger(name: str, store: str, silent: bool = False) -> StoreLogger:
    return StoreLogger(logging.getLogger(name), store, silent)
