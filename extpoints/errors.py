"""Exception hierarchy. Only DeclarationError reaches callers of the manager."""


class ExtensionError(Exception):
    """Base class for all extpoints errors."""


class DeclarationError(ExtensionError, ValueError):
    """Malformed version, missing descriptor or unusable declaration. Programming defect."""


class InstantiationError(ExtensionError):
    """Extension class has no usable zero-argument constructor or construction failed."""


class IncompatibleVersionError(ExtensionError):
    """Extension targets an extension point version that is not compatible."""


class ChannelMismatchError(ExtensionError):
    """Extension's externally_managed flag disagrees with the loader that found it."""


class DiscoveryLoaderError(ExtensionError):
    """A discovery loader failed as a whole."""
