"""
Schemas - Structured Output Models for Variable Extraction

The strict JSON structure the model must produce when asked to extract
declared variables from a talk node's output.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class ExtractedValue(BaseModel):
    variable_id: str = Field(
        ...,
        description="The variable_id exactly as listed in the instructions."
    )
    value_json: Optional[str] = Field(
        None,
        description="The extracted value encoded as JSON (e.g. \"\\\"Business\\\"\", \"42\", \"true\"). Null when the conversation does not contain it."
    )


class ExtractionResult(BaseModel):
    values: List[ExtractedValue] = Field(default_factory=list)
