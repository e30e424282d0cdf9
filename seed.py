"""
Seed an admin account, the default blog agent and a few starter themes.

    ADMIN_EMAIL=... ADMIN_PASSWORD=... BLOG_AGENT_URL=... BLOG_AGENT_KEY=... python seed.py
"""
import os

from app import models  # noqa: F401
from app.auth import get_password_hash
from app.config import get_settings
from app.database import SessionLocal, engine, Base
from app.models import Agent, Theme, User

settings = get_settings()

THEMES = [
    Theme(
        name="Digital Marketing",
        description="Practical tactics for growing an audience online",
        prompt="Write a blog post about digital marketing strategies for small and medium businesses.",
        keywords=["seo", "social media", "content marketing", "email marketing"],
        tone="friendly and practical",
        target_audience="small business owners",
    ),
    Theme(
        name="Marketing Automation",
        description="Tools and workflows that save marketing teams time",
        prompt="Write a blog post about automating repetitive marketing work.",
        keywords=["automation", "crm", "workflows", "ai"],
        tone="informative",
        target_audience="marketing managers",
    ),
    Theme(
        name="Customer Success",
        description="Keeping customers happy after the sale",
        prompt="Write a blog post about customer success and retention.",
        keywords=["retention", "onboarding", "support"],
        tone="empathetic",
        target_audience="customer success teams",
        guidelines="Include at least one concrete example.",
    ),
]

# Create tables
Base.metadata.create_all(bind=engine)

db = SessionLocal()

admin_email = os.environ.get("ADMIN_EMAIL", "admin@example.com")
if not db.query(User).filter(User.email == admin_email).first():
    db.add(User(
        email=admin_email,
        hashed_password=get_password_hash(os.environ.get("ADMIN_PASSWORD", "change-me-now")),
        display_name="Admin",
        is_admin=True,
    ))

if not db.query(Agent).filter(Agent.agent_id == settings.blog_agent_id).first():
    db.add(Agent(
        name="Blog Writer",
        agent_id=settings.blog_agent_id,
        endpoint=os.environ.get("BLOG_AGENT_URL", "http://localhost:8100/rpc"),
        api_key=os.environ.get("BLOG_AGENT_KEY", ""),
    ))

for theme in THEMES:
    if not db.query(Theme).filter(Theme.name == theme.name).first():
        db.add(theme)

db.commit()
db.close()

print("Database seeded successfully!")
