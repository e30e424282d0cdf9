"""
Agent routes: registry of the external generation endpoints.

API keys can be set but are never returned.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..models.agent import Agent
from ..models.user import User
from ..auth import get_admin_user
from ..responses import conflict, not_found
from ..schemas.agent import AgentCreate, AgentUpdate, AgentResponse

router = APIRouter(prefix="/api/agents", tags=["agents"])


def agent_to_response(agent: Agent) -> AgentResponse:
    response = AgentResponse.model_validate(agent)
    response.has_api_key = bool(agent.api_key)
    return response


@router.get("", response_model=List[AgentResponse])
def get_agents(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    return [agent_to_response(a) for a in db.query(Agent).order_by(Agent.id).all()]


@router.post("", response_model=AgentResponse, status_code=201)
def create_agent(
    agent_data: AgentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    agent = Agent(**agent_data.model_dump())
    db.add(agent)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        conflict(f"Agent '{agent_data.agent_id}' already exists")
    db.refresh(agent)
    return agent_to_response(agent)


@router.patch("/{agent_pk}", response_model=AgentResponse)
def update_agent(
    agent_pk: int,
    agent_data: AgentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    agent = db.get(Agent, agent_pk)
    if not agent:
        not_found("Agent", agent_pk)

    for field, value in agent_data.model_dump(exclude_unset=True).items():
        setattr(agent, field, value)
    db.commit()
    db.refresh(agent)
    return agent_to_response(agent)
