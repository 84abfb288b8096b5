"""Shared pydantic base for API payloads.

The web and mobile clients speak camelCase; Python code keeps snake_case.
Requests accept either spelling, responses are dumped by alias.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
