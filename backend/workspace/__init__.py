"""Workspace composition layer: the core facade, configuration and telemetry."""

from .config import CoreConfig, ensure_secure_config, load_core_config
from .service import WorkspaceCore

__all__ = ["CoreConfig", "WorkspaceCore", "ensure_secure_config", "load_core_config"]
