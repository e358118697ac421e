"""ASGI entry point: ``uvicorn ui.api.main:app``."""
from __future__ import annotations

from infrastructure.config import ContainerConfig, build_default_container
from ui.api.app import create_app
from ui.logging_utils import setup_logging

setup_logging()
container = build_default_container(ContainerConfig.from_env())
app = create_app(container)
