"""SpecLife — change lifecycle orchestration for spec-driven repositories."""

__version__ = "0.1.0"
__tagline__ = "Propose. Ship. Land. Release."

from speclife.controller import LifecycleOrchestrator  # noqa: E402
from speclife.errors import SpecLifeError  # noqa: E402

__all__ = ["LifecycleOrchestrator", "SpecLifeError", "__version__", "__tagline__"]
