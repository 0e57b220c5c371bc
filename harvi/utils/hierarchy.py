"""
Shape of the content hierarchy: Year -> Module -> Subject -> Lecture.

Every other layer (validation, cascades, serialization) reads the
relationships from here instead of hard-coding them.
"""

from ..models.year import Year
from ..models.module import Module
from ..models.subject import Subject
from ..models.lecture import Lecture


ENTITY_CONFIG = {
    "year": {
        "model": Year,
        "display_name": "Year",
        "parent": None,
        "required_fields": ("id", "name"),
        "fields": {"id": "id", "name": "name", "icon": "icon"},
    },
    "module": {
        "model": Module,
        "display_name": "Module",
        # (parent kind, column on this model, wire field, optional)
        "parent": ("year", "year_id", "yearId", False),
        "required_fields": ("id", "name", "yearId"),
        "fields": {"id": "id", "name": "name", "yearId": "year_id"},
    },
    "subject": {
        "model": Subject,
        "display_name": "Subject",
        "parent": ("module", "module_id", "moduleId", False),
        "required_fields": ("id", "name", "moduleId"),
        "fields": {"id": "id", "name": "name", "moduleId": "module_id"},
    },
    "lecture": {
        "model": Lecture,
        "display_name": "Lecture",
        "parent": ("subject", "subject_id", "subjectId", True),
        "required_fields": ("id", "title"),
        "fields": {"id": "id", "title": "title", "subjectId": "subject_id", "questions": "questions"},
    },
}

# parent kind -> (child kind, foreign key column on the child)
CHILD_LINKS = {
    "year": ("module", "year_id"),
    "module": ("subject", "module_id"),
    "subject": ("lecture", "subject_id"),
    "lecture": None,
}

KINDS = tuple(ENTITY_CONFIG)


def get_config(kind: str) -> dict:
    try:
        return ENTITY_CONFIG[kind]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {kind}")


def model_for(kind: str):
    return get_config(kind)["model"]


def display_name(kind: str) -> str:
    return get_config(kind)["display_name"]


def to_columns(kind: str, data: dict) -> dict:
    """Map a camelCase payload onto model column names, dropping unknown keys."""
    fields = get_config(kind)["fields"]
    return {fields[key]: value for key, value in data.items() if key in fields}


def serialize_entity(kind: str, entity) -> dict:
    """Wire representation of a Year, Module or Subject row."""
    body = {}
    for wire_name, column in get_config(kind)["fields"].items():
        if column == "questions":
            continue
        body[wire_name] = getattr(entity, column)
    body["createdAt"] = entity.created_at
    body["updatedAt"] = entity.updated_at
    return body
