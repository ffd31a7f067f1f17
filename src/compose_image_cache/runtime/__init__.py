"""Container runtime and registry access."""

from .gateway import BuildxManifestInspector, ImageRuntimeGateway
from .registry import RegistryManifestInspector

__all__ = [
    "BuildxManifestInspector",
    "ImageRuntimeGateway",
    "RegistryManifestInspector",
]
