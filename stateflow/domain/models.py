"""
Domain Layer - Graph Definition Models

This module defines the static structure a request hands to the engine:
the node graph, the transition conditions gating each node, and the
declarations of the variables the graph extracts and consumes.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

"""
VariableType classifies the declared shape of a variable:
- string: Free text
- number: Integer or float (never boolean)
- boolean: True / False
- list: A single selection out of format.options (enum-selection)
- object: Opaque JSON document
"""
VariableType = Literal["string", "number", "boolean", "list", "object"]


class VariableFormat(BaseModel):
    """
    Declared format of a variable.

    Attributes:
        type: VariableType
        description: Free-text hint passed to the extraction prompt.
        options: Permitted selections. Required (and only allowed) for list.
    """
    type: VariableType = "string"
    description: Optional[str] = None
    options: Optional[List[str]] = None

    @model_validator(mode="after")
    def _check_options(self) -> "VariableFormat":
        if self.type == "list" and not self.options:
            raise ValueError("format.options is required when format.type is 'list'")
        if self.type != "list" and self.options is not None:
            raise ValueError("format.options is only allowed when format.type is 'list'")
        return self


class VariableDeclaration(BaseModel):
    """
    A piece of conversational state the graph extracts or consumes.

    Attributes:
        variable_id: Unique key within a request; used in conditions.
        variable_name: Display name.
        extraction_description: Guidance for the extraction step. Variables
            without one are never extracted from model output.
        format: VariableFormat used to parse and validate values.
        node_ids: Talk nodes whose output the variable is extracted from.
            Empty means every talk node.
    """
    variable_id: str
    variable_name: Optional[str] = None
    extraction_description: Optional[str] = None
    format: VariableFormat = Field(default_factory=VariableFormat)
    node_ids: List[str] = Field(default_factory=list)

    def applies_to(self, node_id: str) -> bool:
        return bool(self.extraction_description) and (
            not self.node_ids or node_id in self.node_ids
        )


class ContentMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str
    tool_call_id: Optional[str] = None


class TransitionCondition(BaseModel):
    """
    Predicate gating entry into a node.

    Attributes:
        condition: Boolean expression over variables and `content`.
        required_variables: variable_ids that must be bound before entry.
    """
    condition: Optional[str] = None
    required_variables: List[str] = Field(default_factory=list)


class NodeBase(BaseModel):
    """
    Fields shared by every node variant.

    Attributes:
        id: Unique identifier within the graph (generated when absent).
        transition_condition: Entry gate. None means unconditionally enterable.
        next: Explicit successor ids, tried in order after this node runs.
            When empty the remaining nodes are scanned in declaration order.
    """
    id: Optional[str] = None
    transition_condition: Optional[TransitionCondition] = None
    next: List[str] = Field(default_factory=list)


class TalkNode(NodeBase):
    """
    Invokes the language model.

    Attributes:
        system_prompt: System instruction for this node.
        tools: Tool specs (OpenAI function format) offered to the model.
        state: Variable bindings applied when the node is entered.
        content: Messages appended after the session history.
    """
    type: Literal["talk"] = "talk"
    system_prompt: Optional[str] = None
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    state: Dict[str, Any] = Field(default_factory=dict)
    content: List[ContentMessage] = Field(default_factory=list)


class ApiRequestNode(NodeBase):
    """
    Calls an external HTTP endpoint.

    Attributes:
        endpoint: URL, may reference variables as {{ variable_id }}.
        method: HTTP verb.
        headers: Header templates.
        body: JSON body; string leaves are rendered as templates.
        content: Sent as the body when no body is given.
        output_variables: variable_id -> dotted path into the JSON response
            ("" binds the whole document).
        timeout: Per-call timeout override in seconds.
    """
    type: Literal["api_request"] = "api_request"
    endpoint: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None
    content: Optional[Any] = None
    output_variables: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None


Node = Annotated[Union[TalkNode, ApiRequestNode], Field(discriminator="type")]


class Graph(BaseModel):
    """
    The node graph for one turn (the `states` block of a request).

    Attributes:
        nodes: Nodes in declaration order; order drives traversal.
        append_system_prompt: Append node system prompts to the existing
            system message instead of replacing it.
        ignore_first_system_prompt: Drop the first system message of the
            request input.
    """
    nodes: List[Node] = Field(..., min_length=1)
    append_system_prompt: bool = False
    ignore_first_system_prompt: bool = False

    @model_validator(mode="after")
    def _assign_node_ids(self) -> "Graph":
        seen = set()
        for node in self.nodes:
            if not node.id:
                continue
            if node.id in seen:
                raise ValueError(f"Duplicate node id '{node.id}'")
            seen.add(node.id)
        # Generated ids skip any id given explicitly elsewhere in the graph.
        for index, node in enumerate(self.nodes):
            if node.id:
                continue
            candidate, suffix = f"node_{index}", 1
            while candidate in seen:
                candidate = f"node_{index}_{suffix}"
                suffix += 1
            node.id = candidate
            seen.add(candidate)
        for node in self.nodes:
            unknown = [target for target in node.next if target not in seen]
            if unknown:
                raise ValueError(f"Node '{node.id}' lists unknown successors: {unknown}")
        return self

    def index_of(self, node_id: str) -> int:
        for index, node in enumerate(self.nodes):
            if node.id == node_id:
                return index
        raise KeyError(node_id)
