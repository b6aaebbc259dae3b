from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FormOption(BaseModel):
    value: str
    label: str


class FormStep(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str = ""
    is_question: bool = True
    is_required: bool = False
    field_type: str = ""
    options: list[FormOption] = Field(default_factory=list)
    placeholder: str = ""
    validation_type: str = ""
    display_order: int = 0
    conditional_show: str = ""
    auto_advance: bool = False
    section: str = "default"


class FormConfigResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    form_steps: list[FormStep]
    last_updated: datetime
