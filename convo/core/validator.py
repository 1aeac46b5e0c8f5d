"""
Convo Backend — Payload Validator
==================================

What:  Schema-checks incoming JSON bodies and segregates the valid payload
       into one dict per physical table.
How:   Field rules are declared once per physical table (RULES). For each
       logical entity the rules of its tables are merged into a Pydantic model,
       built twice: a create model (required fields enforced) and an update
       model (every field optional). Unknown keys are rejected.
Who:   ResourceService, before anything reaches the mapper.

Segregation:
    validate("UserProfile", {"email": ..., "password": ..., "username": "ann"})
    → [{"username": "ann"}, {"email": ..., "password": ...}]
       ^ profiles table      ^ users table
    The order matches the entity's table configuration in convo.core.mapper.
"""

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Mapping, Tuple, Type

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    create_model,
)
from pydantic import ValidationError as PydanticValidationError

from convo.exceptions import ValidationError

_FORBIDDEN_CHARS = re.compile(r"[;,'\"`*=/]")
_ALPHANUM = r"^[a-zA-Z0-9]+$"


def _safe(value: str) -> str:
    if _FORBIDDEN_CHARS.search(value):
        raise ValueError("contains characters that are not allowed")
    return value


def _unique(values: List[str]) -> List[str]:
    if len(set(values)) != len(values):
        raise ValueError("contains a duplicate value")
    return values


def _iso_date(value: Any) -> Any:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        if len(value) > 30:
            raise ValueError("must be at most 30 characters")
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError("must be a valid ISO 8601 date")
    else:
        raise ValueError("must be a valid ISO 8601 date")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


SafeName = Annotated[str, StringConstraints(max_length=30), AfterValidator(_safe)]
Email = Annotated[EmailStr, AfterValidator(_safe)]
Password = Annotated[str, StringConstraints(min_length=5, max_length=30), AfterValidator(_safe)]
Label = Annotated[str, StringConstraints(max_length=30, pattern=_ALPHANUM)]
Gender = Annotated[str, StringConstraints(max_length=16, pattern=_ALPHANUM)]
IsoDate = Annotated[datetime, BeforeValidator(_iso_date)]
RecordId = Annotated[str, StringConstraints(min_length=1, max_length=32)]
IdList = Annotated[List[RecordId], AfterValidator(_unique)]
NonEmptyIdList = Annotated[List[RecordId], Field(min_length=1), AfterValidator(_unique)]
Text = Annotated[str, StringConstraints(min_length=1)]

# table → field → (type, required on create)
RULES: Dict[str, Dict[str, Tuple[Any, bool]]] = {
    "Users": {
        "email": (Email, True),
        "password": (Password, True),
    },
    "Profiles": {
        "username": (SafeName, False),
        "first_name": (SafeName, False),
        "last_name": (SafeName, False),
        "gender": (Gender, False),
        "birthday": (IsoDate, False),
        "categories": (IdList, False),
    },
    "Chats": {
        "profiles": (NonEmptyIdList, True),
        "messages": (IdList, False),
    },
    "Conversations": {
        "label": (Label, True),
    },
    "Messages": {
        "sender": (RecordId, True),
        "recipient": (RecordId, True),
        "text": (Text, True),
        "delivered": (IsoDate, True),
    },
    "Categories": {
        "conversations": (NonEmptyIdList, True),
        "label": (Label, True),
    },
}

# entity → table rules, in the entity's table configuration order
ENTITY_RULES: Dict[str, Tuple[str, ...]] = {
    "UserProfile": ("Profiles", "Users"),
    "Category": ("Categories",),
    "Conversation": ("Conversations", "Chats"),
    "Message": ("Messages",),
}

_STRICT = ConfigDict(extra="forbid")


def _build_schema(entity: str, update: bool) -> Type[BaseModel]:
    fields: Dict[str, Any] = {}
    for rule in ENTITY_RULES[entity]:
        for name, (annotation, required) in RULES[rule].items():
            # Defaults are not validated, so an explicit null is still rejected
            fields[name] = (annotation, ... if required and not update else None)
    suffix = "Update" if update else "Create"
    return create_model(f"{entity}{suffix}", __config__=_STRICT, **fields)


_SCHEMAS: Dict[Tuple[str, bool], Type[BaseModel]] = {
    (entity, update): _build_schema(entity, update)
    for entity in ENTITY_RULES
    for update in (False, True)
}


def schema_for(entity: str, update: bool = False) -> Type[BaseModel]:
    try:
        return _SCHEMAS[(entity, update)]
    except KeyError:
        raise ValueError(f"No validation schema for entity '{entity}'")


def field_errors(exc: PydanticValidationError) -> Dict[str, str]:
    """Flattens Pydantic errors into {field: message}, first error per field."""
    errors: Dict[str, str] = {}
    for err in exc.errors():
        loc = err.get("loc") or ()
        key = str(loc[0]) if loc else "body"
        if key in errors:
            continue
        if err.get("type") == "extra_forbidden":
            errors[key] = f'"{key}" is not allowed'
        elif err.get("type") == "missing":
            errors[key] = f'"{key}" is required'
        else:
            errors[key] = err.get("msg", "is invalid")
    return errors


def segregate(value: Mapping[str, Any], rules: Tuple[str, ...]) -> List[Dict[str, Any]]:
    """Splits a validated payload into per-table dicts following `rules`."""
    return [
        {key: item for key, item in value.items() if key in RULES[rule]}
        for rule in rules
    ]


def validate(entity: str, data: Any, update: bool = False) -> List[Dict[str, Any]]:
    """
    Validates `data` for `entity` and returns its per-table segregation.

    Only keys the client actually sent are carried over, so an update payload
    never resets fields it did not mention.

    Raises:
        ValidationError: with a field-keyed error map.
    """
    schema = schema_for(entity, update)
    if not isinstance(data, Mapping):
        raise ValidationError(errors={"body": "must be a JSON object"})
    try:
        model = schema.model_validate(dict(data))
    except PydanticValidationError as e:
        raise ValidationError(errors=field_errors(e))
    return segregate(model.model_dump(exclude_unset=True), ENTITY_RULES[entity])
