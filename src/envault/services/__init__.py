"""Core services: encryption, environment resolution and the resolution pipeline."""

from envault.services.encryption import EncryptionService
from envault.services.pipeline import ResolutionPipeline
from envault.services.resolver import EnvironmentGraph, EnvironmentResolver, merge_layers

__all__ = [
    "EncryptionService",
    "EnvironmentGraph",
    "EnvironmentResolver",
    "ResolutionPipeline",
    "merge_layers",
]
