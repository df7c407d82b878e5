"""
Pydantic schemas for client navigation
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class NavigateRequest(BaseModel):
    path: str = Field(..., min_length=1)


class RenderDecisionResponse(BaseModel):
    kind: str
    view: str
    path: str
    route: Optional[str] = None
    params: Dict[str, str] = {}


class NavigationResponse(BaseModel):
    current_path: str
    history: List[str]
    decision: RenderDecisionResponse
