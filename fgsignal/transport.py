#!/usr/bin/env python3
"""
TRANSPORT - Shared HTTP session with timeout and bounded exponential backoff.

Every upstream call goes through here:
- get_json(url): requests.Session mounted with a urllib3 Retry
  (408/429/5xx, 1 s initial delay doubling each attempt, 10 s timeout).
- call_with_retry(fn): the same backoff policy for client libraries that do
  their own HTTP (yfinance).
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple, Type

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import get_config

logger = logging.getLogger(__name__)

_session: Optional[requests.Session] = None


def build_retry() -> Retry:
    cfg = get_config().requests
    return Retry(
        total=cfg.max_retries,
        connect=cfg.max_retries,
        read=cfg.max_retries,
        status=cfg.max_retries,
        backoff_factor=cfg.retry_delay_seconds,
        status_forcelist=cfg.retryable_statuses,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )


def get_session() -> requests.Session:
    global _session
    if _session is None:
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=build_retry())
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        _session = session
    return _session


def reset_session() -> None:
    global _session
    if _session is not None:
        _session.close()
    _session = None


def get_json(url: str, headers: Optional[Dict[str, str]] = None,
             params: Optional[Dict[str, Any]] = None) -> Any:
    """
    GET and decode JSON. Raises requests.RequestException (HTTPError for a
    non-2xx status after retries) or ValueError for a body that is not JSON.
    """
    timeout = get_config().requests.timeout_seconds
    resp = get_session().get(url, headers=headers, params=params, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def call_with_retry(fn: Callable[..., Any], *args,
                    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                    attempts: Optional[int] = None,
                    delay: Optional[float] = None,
                    backoff: Optional[float] = None,
                    sleep: Callable[[float], None] = time.sleep,
                    **kwargs) -> Any:
    """Call fn, retrying retry_on exceptions with exponential backoff; re-raises the last."""
    cfg = get_config().requests
    attempts = cfg.max_retries + 1 if attempts is None else attempts
    wait = cfg.retry_delay_seconds if delay is None else delay
    backoff = cfg.backoff_multiplier if backoff is None else backoff

    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except retry_on as e:
            if attempt >= attempts:
                raise
            name = getattr(fn, "__name__", repr(fn))
            logger.warning(f"{name} failed (attempt {attempt}/{attempts}): {e}; retrying in {wait:.1f}s")
            sleep(wait)
            wait *= backoff
