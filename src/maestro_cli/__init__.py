"""maestro-cli: ManifestWork inspection and condition waits for Maestro."""

__version__ = "0.1.0"
