"""
Domain models — Pydantic types for the provisioner.

    from devbox.core.models import ProvisionConfig, Receipt, ShellEnv
"""

from devbox.core.models.config import ProvisionConfig, VendorSettings
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt, combine

__all__ = [
    "ProvisionConfig",
    "Receipt",
    "ShellEnv",
    "VendorSettings",
    "combine",
]
