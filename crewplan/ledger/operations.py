"""
Ledger operations and mutation requests.

`Operation` values are what the history records: each knows its inverse.
`MutationRequest` is the validated payload a client sends into the session.
"""
from dataclasses import dataclass, replace
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..schemas.scheduling import ScheduleItemCreate, ScheduleItemUpdate


def _rebound(item: Optional[Dict], old_id: str, new_id: str) -> Optional[Dict]:
    if item is None or item.get("id") != old_id:
        return item
    return {**item, "id": new_id}


@dataclass(frozen=True)
class Create:
    item: Dict[str, Any]

    def inverse(self) -> "Delete":
        return Delete(self.item)

    def rebind(self, old_id: str, new_id: str) -> "Create":
        return replace(self, item=_rebound(self.item, old_id, new_id))


@dataclass(frozen=True)
class Update:
    item: Dict[str, Any]
    previous: Dict[str, Any]

    def inverse(self) -> "Update":
        return Update(item=self.previous, previous=self.item)

    def rebind(self, old_id: str, new_id: str) -> "Update":
        return replace(
            self,
            item=_rebound(self.item, old_id, new_id),
            previous=_rebound(self.previous, old_id, new_id),
        )


@dataclass(frozen=True)
class Delete:
    item: Dict[str, Any]

    def inverse(self) -> Create:
        return Create(self.item)

    def rebind(self, old_id: str, new_id: str) -> "Delete":
        return replace(self, item=_rebound(self.item, old_id, new_id))


Operation = Union[Create, Update, Delete]


class CreateRequest(BaseModel):
    kind: Literal["create"] = "create"
    item: ScheduleItemCreate


class UpdateRequest(BaseModel):
    kind: Literal["update"] = "update"
    id: str
    changes: ScheduleItemUpdate


class DeleteRequest(BaseModel):
    kind: Literal["delete"] = "delete"
    id: str


MutationRequest = Annotated[Union[CreateRequest, UpdateRequest, DeleteRequest], Field(discriminator="kind")]

_mutation_adapter = TypeAdapter(MutationRequest)


def parse_mutation(payload: Union[Dict[str, Any], BaseModel]) -> Union[CreateRequest, UpdateRequest, DeleteRequest]:
    if isinstance(payload, (CreateRequest, UpdateRequest, DeleteRequest)):
        return payload
    try:
        return _mutation_adapter.validate_python(payload)
    except PydanticValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid mutation: {errors}") from e
