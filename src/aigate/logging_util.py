"""Logging utilities.

Key goal:
- Each request step logs clearly so the caller can locate failures quickly.
- Keep logging config minimal; allow integration into the caller's logging if needed.
- Never log credentials. Use key_fingerprint() when a key has to be identified.
"""
from __future__ import annotations

import hashlib
import logging
import os

_DEFAULT_LEVEL = os.environ.get("AIGATE_LOG_LEVEL", "INFO").upper()

def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)

    # If already configured elsewhere, do not attach handlers again.
    if logger.handlers:
        return logger

    logger.setLevel(_DEFAULT_LEVEL)

    h = logging.StreamHandler()
    fmt = logging.Formatter("[%(levelname)s] %(name)s:%(lineno)d - %(message)s")
    h.setFormatter(fmt)
    logger.addHandler(h)

    return logger

def log_step(logger: logging.Logger, step: str, msg: str):
    logger.info("[STEP %s] %s", step, msg)

def sanitize_api_key(raw: str) -> str:
    k = (raw or "").strip()
    k = k.strip(' "\'`')
    k = k.strip("“”‘’")
    return k

def key_fingerprint(key: str) -> str:
    if not key:
        return "len=0"
    sha8 = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
    return f"len={len(key)} sha8={sha8}"
