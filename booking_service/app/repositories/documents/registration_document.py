from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from ...models.registration import Registration


def _as_str(value: Any) -> str:
    return str(value)


class RegistrationDocument(BaseModel):
    """MongoDB registrations 컬렉션 도큐먼트 모델.

    등록 시스템이 쓰는 컬렉션이므로 _id 는 UUID 문자열/ObjectId 모두 허용하고,
    여기서 쓰지 않는 필드는 무시한다.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Annotated[str, BeforeValidator(_as_str)] = Field(alias="_id")
    owner_id: str
    player_name: str | None = None
    player_category: str | None = None
    program_type: str | None = None
    payment_status: str | None = None

    def to_domain(self) -> Registration:
        return Registration(
            id=self.id,
            owner_id=self.owner_id,
            player_name=self.player_name or "Unknown",
            player_category=self.player_category or "Unknown",
            program_type=self.program_type,
            payment_status=self.payment_status,
        )
