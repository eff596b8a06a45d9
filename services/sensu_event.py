#!/usr/bin/env python3
"""
Minimal view of a Sensu Go event.

Only the fields the handler reads are modelled: the check name and
annotations, the entity namespace, name, labels and annotations, and the
event id (used as the log correlation id). Everything else in the document
is ignored.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from handler_errors import InputError


@dataclass
class Check:
    name: str
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass
class Entity:
    namespace: str
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass
class Event:
    check: Optional[Check] = None
    entity: Optional[Entity] = None
    id: Optional[str] = None


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    meta = obj.get('metadata')
    if meta is None:
        return {}
    if not isinstance(meta, dict):
        raise InputError("invalid event: metadata must be an object")
    return meta


def _string_map(value: Any) -> Dict[str, str]:
    if not value:
        return {}
    if not isinstance(value, dict):
        raise InputError("invalid event: labels and annotations must be objects")
    return {str(k): str(v) for k, v in value.items()}


def event_from_dict(data: Any) -> Event:
    """
    Build an Event from a decoded Sensu event document.

    A missing check or entity is kept as None so that validation can report
    it; a document that is not an object at all is rejected here.
    """
    if not isinstance(data, dict):
        raise InputError("invalid event: expected a JSON object")

    check = None
    raw_check = data.get('check')
    if raw_check is not None:
        if not isinstance(raw_check, dict):
            raise InputError("invalid event: check must be an object")
        meta = _metadata(raw_check)
        check = Check(
            name=str(meta.get('name', '')),
            annotations=_string_map(meta.get('annotations')),
        )

    entity = None
    raw_entity = data.get('entity')
    if raw_entity is not None:
        if not isinstance(raw_entity, dict):
            raise InputError("invalid event: entity must be an object")
        meta = _metadata(raw_entity)
        entity = Entity(
            namespace=str(meta.get('namespace', '')),
            name=str(meta.get('name', '')),
            labels=_string_map(meta.get('labels')),
            annotations=_string_map(meta.get('annotations')),
        )

    event_id = data.get('id')
    return Event(check=check, entity=entity, id=str(event_id) if event_id else None)
