from typing import Final

# For hatchling to easily detect the version
__version__ = "0.3.0"

# Typed version for outside use
VERSION: Final[str] = __version__
