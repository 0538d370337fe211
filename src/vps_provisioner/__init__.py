"""Idempotent provisioning of an Ubuntu host for a Node.js application."""

from .config import ProvisioningConfig, load_config
from .runner import ProvisioningRunner
from .steps import build_steps

__all__ = ["ProvisioningConfig", "ProvisioningRunner", "build_steps", "load_config"]
