"""Logging, metrics and health probes for the API process."""

from __future__ import annotations

from fastapi import FastAPI

from credifin.obs import logging as obs_logging
from credifin.settings import settings


def init(app: FastAPI) -> None:
	"""Switch the process to JSON logs and instrument ``app``; no-op when disabled."""
	if not settings.obs_enabled or getattr(app.state, "obs_installed", False):
		return
	# Deferred: the middleware depends on infra modules that import obs.metrics
	from credifin.obs import middleware

	obs_logging.configure_logging()
	middleware.install(app)
	app.state.obs_installed = True


__all__ = ["init"]
