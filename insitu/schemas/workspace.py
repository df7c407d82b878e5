"""
Pydantic schemas for the generation workspace
"""
from typing import List, Optional

from pydantic import BaseModel, model_validator


class PreviewResponse(BaseModel):
    index: int
    handle: str
    filename: str
    mime_type: str
    size: int
    url: str


class WorkspaceResponse(BaseModel):
    """Everything the client renders for its workspace"""

    state: str
    is_loading: bool
    prompt: str
    loading_message: str = ""
    error: Optional[str] = None
    result_url: Optional[str] = None
    record_id: Optional[str] = None
    images: List[PreviewResponse] = []
    max_files: int


class GenerateRequest(BaseModel):
    """Free-text prompt or a preset id, not both"""

    prompt: Optional[str] = None
    preset_id: Optional[str] = None

    @model_validator(mode="after")
    def check_one_source(self):
        if self.prompt is not None and self.preset_id is not None:
            raise ValueError("Provide either prompt or preset_id, not both")
        return self


class PresetResponse(BaseModel):
    id: str
    name: str
    prompt: str
    category: str
