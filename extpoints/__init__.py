"""Extension point resolution: declarations, discovery loaders, manager."""

from extpoints.context import LoadContext
from extpoints.contract import (
    NORMAL_PRIORITY,
    CandidateProvider,
    DiscoveryLoader,
    ExtensionScope,
)
from extpoints.descriptors import ExtensionDescriptor, ExtensionPointDescriptor
from extpoints.errors import (
    ChannelMismatchError,
    DeclarationError,
    DiscoveryLoaderError,
    ExtensionError,
    IncompatibleVersionError,
    InstantiationError,
)
from extpoints.loader import (
    BuiltinLoader,
    ManifestCandidateProvider,
    ScopeCache,
    get_builtin_loader,
)
from extpoints.manager import ExtensionManager
from extpoints.registry import (
    DescriptorTable,
    descriptors,
    extension,
    extension_point,
    load_declarations,
    register_extension,
    register_extension_point,
)
from extpoints.version import Version

__all__ = [
    "BuiltinLoader",
    "CandidateProvider",
    "ChannelMismatchError",
    "DeclarationError",
    "DescriptorTable",
    "DiscoveryLoader",
    "DiscoveryLoaderError",
    "ExtensionDescriptor",
    "ExtensionError",
    "ExtensionManager",
    "ExtensionPointDescriptor",
    "ExtensionScope",
    "IncompatibleVersionError",
    "InstantiationError",
    "LoadContext",
    "ManifestCandidateProvider",
    "NORMAL_PRIORITY",
    "ScopeCache",
    "Version",
    "descriptors",
    "extension",
    "extension_point",
    "get_builtin_loader",
    "load_declarations",
    "register_extension",
    "register_extension_point",
]
