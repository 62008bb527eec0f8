"""jabterm: a terminal client for federated instant messaging."""
from jabterm.config import APP_VERSION as __version__

__all__ = ["__version__"]
