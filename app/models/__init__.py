from .scheduled_job import ScheduledJob, JobStatus, JobSource
from .theme import Theme
from .agent import Agent
from .blog_post import BlogPost
from .system_setting import SystemSetting
from .user import User

__all__ = [
    "ScheduledJob",
    "JobStatus",
    "JobSource",
    "Theme",
    "Agent",
    "BlogPost",
    "SystemSetting",
    "User",
]
