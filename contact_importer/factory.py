"""Factory helpers for constructing writers and stores from settings."""
from __future__ import annotations

import importlib
from datetime import timedelta

from .checkpoints import CheckpointStore, FileStorage
from .config import ConfigurationError, ImporterSettings
from .remote.api_client import HttpContactWriter
from .remote.base import ContactWriter
from .remote.rate_limit import DelayPolicy, RateLimitedWriter, RateLimiter
from .remote.sample import DryRunWriter


def _load_class(path: str):
    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ConfigurationError(f"Invalid writer class path '{path}'")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ConfigurationError(f"Module '{module_name}' does not define '{attr}'") from exc


def build_writer(settings: ImporterSettings, *, dry_run: bool = False) -> RateLimitedWriter:
    """Instantiate the contact writer described by ``settings``."""

    writer: ContactWriter
    if dry_run:
        writer = DryRunWriter()
    elif settings.writer_class:
        writer_cls = _load_class(settings.writer_class)
        writer = writer_cls(**settings.writer_options)
    else:
        if not settings.api_base_url:
            raise ConfigurationError("Configuration missing required 'api.base_url' field")
        writer = HttpContactWriter(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout,
        )

    rate_limiter = RateLimiter(settings.rate_limit_per_minute)
    return RateLimitedWriter(
        writer,
        delay_policy=DelayPolicy(delay_seconds=settings.delay_seconds),
        rate_limiter=rate_limiter,
    )


def build_checkpoint_store(settings: ImporterSettings) -> CheckpointStore:
    return CheckpointStore(
        FileStorage(settings.checkpoint_dir),
        freshness=timedelta(days=settings.freshness_days),
    )
