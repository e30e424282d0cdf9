from .scheduled_job import (
    ScheduledJobCreate,
    ScheduledJobUpdate,
    ScheduledJobResponse,
    GenerateNowRequest,
    AutoGenerationToggle,
    BulkActionRequest,
)
from .theme import ThemeCreate, ThemeUpdate, ThemeResponse
from .agent import AgentCreate, AgentUpdate, AgentResponse
from .blog_post import BlogPostResponse

__all__ = [
    "ScheduledJobCreate", "ScheduledJobUpdate", "ScheduledJobResponse",
    "GenerateNowRequest", "AutoGenerationToggle",
    "ThemeCreate", "ThemeUpdate", "ThemeResponse",
    "AgentCreate", "AgentUpdate", "AgentResponse",
    "BlogPostResponse",
]
