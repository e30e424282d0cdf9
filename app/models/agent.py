"""
Agent model: an external AI content-generation endpoint.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from ..database import Base, utcnow


class Agent(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    agent_id = Column(String(100), unique=True, nullable=False, index=True)
    endpoint = Column(String(500), nullable=False)
    api_key = Column(String(500), nullable=False)  # read only by the generator adapter
    active = Column(Boolean, default=True, index=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<Agent id={self.id} agent_id={self.agent_id!r} active={self.active}>"
