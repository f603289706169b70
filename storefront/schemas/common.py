from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from storefront.core.error_codes import ErrorCode


class CamelModel(BaseModel):
    # JSON uses camelCase; Python code keeps snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    error_code: ErrorCode
