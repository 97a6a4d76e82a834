from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator


# --- Enums ---
class NodeCategory(str, Enum):
    NETWORK = "NETWORK"
    COMMON = "COMMON"


# --- Models ---
class SelectOption(BaseModel):
    label: str
    value: Any
    description: Optional[str] = None


class NodeInput(BaseModel):
    """
    Definition of a single config field of a node.
    """
    name: str
    type: str  # string, number, boolean, select
    label: str
    default: Optional[Any] = None
    description: Optional[str] = None
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[Union[List[SelectOption], List[dict]]] = None


class NodeOutput(BaseModel):
    name: str
    type: str
    label: Optional[str] = None
    description: Optional[str] = None


class NodeManifest(BaseModel):
    """
    Describes a node type to the editor and the CLI.
    """
    model_config = ConfigDict(validate_default=True)

    id: str
    version: str = "1.0.0"

    name: Optional[str] = None
    displayName: Optional[str] = None

    description: str
    category: NodeCategory

    inputs: List[NodeInput] = []
    outputs: List[NodeOutput] = []

    tags: List[str] = []
    author: str = "httpin"

    @field_validator("name", mode="before")
    def set_name_fallback(cls, v, values):
        if v is None and "id" in values.data:
            return values.data["id"]
        return v

    @field_validator("displayName", mode="before")
    def set_display_name(cls, v, values):
        if not v and "name" in values.data:
            return values.data["name"]
        return v
