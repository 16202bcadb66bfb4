"""
Infrastructure module exports.

Configuration and bootstrap for storage, messaging and the confirmation flow.
"""

from .config import InfraConfig, get_config, SenderBackendType, ClassifierBackendType
from .bootstrap import InfraBootstrap, bootstrap_infrastructure

__all__ = [
    "InfraConfig",
    "get_config",
    "SenderBackendType",
    "ClassifierBackendType",
    "InfraBootstrap",
    "bootstrap_infrastructure",
]
