import pytest

from handler_errors import InputError
from sensu_event import event_from_dict

pytestmark = pytest.mark.unit


def test_missing_check_and_entity_kept_as_none():
    event = event_from_dict({"timestamp": 1700000000})

    assert event.check is None
    assert event.entity is None
    assert event.id is None


def test_annotations_and_labels(sample_event_document):
    sample_event_document["entity"]["metadata"]["annotations"] = {"owner": "ops"}
    sample_event_document["check"]["metadata"]["annotations"] = {"runbook": "https://wiki/keepalive"}

    event = event_from_dict(sample_event_document)

    assert event.entity.annotations == {"owner": "ops"}
    assert event.check.annotations == {"runbook": "https://wiki/keepalive"}


def test_null_labels_treated_as_empty(sample_event_document):
    sample_event_document["entity"]["metadata"]["labels"] = None

    assert event_from_dict(sample_event_document).entity.labels == {}


@pytest.mark.parametrize("document", [
    {"check": "keepalive"},
    {"entity": ["foo"]},
    {"entity": {"metadata": "foo"}},
    {"entity": {"metadata": {"name": "foo", "labels": ["a"]}}},
])
def test_malformed_sections_rejected(document):
    with pytest.raises(InputError):
        event_from_dict(document)
