"""Pydantic schemas for stored draft payloads"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bms_capital.domain.models import DraftItem, LoanFormData


class DraftPayloadSchema(BaseModel):
    """Single "last draft" slot: form data and wizard step"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    form_data: Dict[str, Any]
    current_step: Optional[int] = Field(default=1)


class DraftRecordSchema(DraftPayloadSchema):
    """Entry in the stored draft list"""

    id: str
    name: str
    saved_at: str

    @classmethod
    def from_item(cls, item: DraftItem) -> "DraftRecordSchema":
        return cls(
            id=item.id,
            name=item.name,
            saved_at=item.saved_at,
            form_data=item.form_data.to_dict(),
            current_step=item.current_step,
        )

    def to_item(self) -> DraftItem:
        return DraftItem(
            id=self.id,
            name=self.name,
            saved_at=self.saved_at,
            form_data=LoanFormData.from_dict(self.form_data),
            current_step=self.current_step or 1,
        )
