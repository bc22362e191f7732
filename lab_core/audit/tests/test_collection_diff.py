# lab_core/audit/tests/test_collection_diff.py
from decimal import Decimal

from lab_core.audit.collection_diff import (
    diff_collection,
    is_collection_marker,
    line_item_key,
    line_item_name,
    line_item_signature,
)

T1 = {"testDefinitionId": "t1", "name": "CBC", "qty": 1, "cost": 200}
T2 = {"testDefinitionId": "t2", "name": "LFT", "qty": 1, "cost": 150}
T3 = {"testDefinitionId": "t3", "name": "TSH", "qty": 1, "cost": 300}


def _diff(before, after):
    return diff_collection(before, after, line_item_key, line_item_signature)


def test_reordered_collection_is_not_a_change():
    result = _diff([T1, T2, T3], [T3, T1, T2])

    assert not result
    assert result.added == [] and result.removed == [] and result.modified == []


def test_added_and_removed_items_by_key():
    result = _diff([T1, T2], [T2, T3])

    assert result.added == [T3]
    assert result.removed == [T1]
    assert result.modified == []


def test_signature_change_is_modified():
    t1_more = {**T1, "qty": 2}
    result = _diff([T1, T2], [t1_more, T2])

    assert result.modified == [t1_more]
    assert result.added == [] and result.removed == []


def test_fields_outside_signature_are_ignored():
    renamed = {**T1, "name": "Complete Blood Count", "sampleType": "EDTA"}

    assert not _diff([T1], [renamed])


def test_duplicate_keys_last_item_wins():
    first = {**T1, "cost": 100}
    last = {**T1, "cost": 200}

    # before collapses to cost=200, matching after
    assert not _diff([first, last], [T1])
    assert _diff([last, first], [T1]).modified == [T1]


def test_none_sides_are_empty():
    assert _diff(None, [T1]).added == [T1]
    assert _diff([T1], None).removed == [T1]
    assert not _diff(None, None)


def test_marker_shape():
    marker = _diff([T1], [T2]).as_marker()

    assert is_collection_marker(marker)
    assert marker == {"kind": "collection", "added": [T2], "removed": [T1], "modified": []}
    assert not is_collection_marker({"before": 1, "after": 2})


def test_line_item_key_precedence():
    assert line_item_key({"testDefinitionId": "a", "serviceHeadId": "b", "name": "X"}) == "a"
    assert line_item_key({"serviceHeadId": "b", "name": "X"}) == "b"
    assert line_item_key({"name": "  Lipid Profile "}) == "Lipid Profile"


def test_line_item_name_falls_back_to_key():
    assert line_item_name({"testName": "HbA1c"}) == "HbA1c"
    assert line_item_name({"testDefinitionId": "t9"}) == "t9"


def test_line_item_signature_defaults():
    assert line_item_signature({}) == (Decimal("1"), Decimal("0"), Decimal("0"))
    assert line_item_signature({"quantity": 2, "netAmount": "150.00", "discount": 10}) == (
        Decimal("2"),
        Decimal("150"),
        Decimal("10"),
    )
    assert line_item_signature({"qty": 1, "cost": 200}) == line_item_signature({"qty": "1", "cost": "200.0"})


def test_id_keyed_items_added_and_modified():
    before = [{"id": 1, "name": "CBC", "qty": 1, "cost": 100}]
    after = [{"id": 1, "name": "CBC", "qty": 2, "cost": 100}, {"id": 2, "name": "LFT", "qty": 1, "cost": 300}]

    result = _diff(before, after)

    assert result.added == [after[1]]
    assert result.modified == [after[0]]
    assert result.removed == []
