from .adapter import GenerationResult, GeneratorAdapter
from .orchestrator import GenerationOrchestrator
from .publisher import PostPublisher, slugify

__all__ = [
    "GenerationResult",
    "GeneratorAdapter",
    "GenerationOrchestrator",
    "PostPublisher",
    "slugify",
]
