"""
Error taxonomy.

We separate error types so callers can react correctly.
Example:
PreconditionNotMet should block before any directory object is touched.
MutationFailed is recorded against one catalog entry and the pass continues.
LookupFailed is reported but treated as absence by the reconciler.
InvalidAddress and InvalidPrefixLength only fail the subnet derivation step.
"""


class DirectoryBootstrapError(Exception):
    """Base class for all bootstrap exceptions."""


class LookupFailed(DirectoryBootstrapError):
    """Raised by a facts provider when a read query could not be answered."""


class MutationFailed(DirectoryBootstrapError):
    """Raised by a mutation client when a create, rename, or update call fails."""


class InvalidAddress(DirectoryBootstrapError, ValueError):
    """Raised when an IPv4 address does not resolve to four octets in 0..255."""


class InvalidPrefixLength(DirectoryBootstrapError, ValueError):
    """Raised when a prefix length is outside 0..32."""


class PreconditionNotMet(DirectoryBootstrapError):
    """Raised when host or domain checks fail before reconciliation starts."""


class CatalogInvalid(DirectoryBootstrapError, ValueError):
    """Raised when a catalog is authored out of dependency order or malformed."""


class ConfigurationError(DirectoryBootstrapError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""
