from datetime import datetime, timezone

from labtrack.parsers.attachments import (
    collect_record_attachments,
    matches,
    normalize_attachment,
    normalize_uploaded,
    reconcile_attachments,
)
from labtrack.parsers.models import EPOCH, Attachment
from labtrack.parsers.models import TestTarget as Target


def _utc(y, m, d):
    return datetime(y, m, d, tzinfo=timezone.utc)


def test_uploaded_copy_wins_and_newest_first():
    uploaded = [{"id": 1, "addedOn": "2024-01-02", "testID": 9}]
    fetched = [
        {"id": 1, "addedOn": "2024-01-01", "testID": 9},
        {"id": 2, "addedOn": "2024-01-03", "testID": 9},
    ]
    out = reconcile_attachments([uploaded, fetched], Target(test_id=9))
    assert [a.id for a in out] == [2, 1]
    assert out[1].added_on == _utc(2024, 1, 2)


def test_or_match_on_test_id_or_loinc():
    target = Target(test_id="12", loinc_code="LP1")
    by_id = normalize_attachment({"id": 1, "testID": 12})
    by_loinc = normalize_attachment({"id": 2, "loincCode": "LP1"})
    neither = normalize_attachment({"id": 3, "testID": 13, "loincCode": "LP2"})
    assert matches(by_id, target)
    assert matches(by_loinc, target)
    assert not matches(neither, target)


def test_empty_target_matches_nothing():
    att = normalize_attachment({"id": 1, "testID": 12, "loincCode": "LP1"})
    assert not matches(att, Target())


def test_first_source_has_priority_over_later_ones():
    completed = [{"id": 5, "fileName": "from-completed.pdf", "loincCode": "LP1"}]
    direct = [{"id": 5, "fileName": "from-direct.pdf", "loincCode": "LP1"}]
    out = reconcile_attachments([None, completed, direct], Target(loinc_code="LP1"))
    assert len(out) == 1
    assert out[0].file_name == "from-completed.pdf"


def test_equal_timestamps_keep_input_order():
    items = [
        {"id": i, "addedOn": "2024-05-01T10:00:00Z", "testID": 1} for i in (3, 1, 2)
    ]
    out = reconcile_attachments([items], Target(test_id=1))
    assert [a.id for a in out] == [3, 1, 2]


def test_unparseable_dates_sort_last_as_epoch():
    items = [
        {"id": 1, "addedOn": "not a date", "testID": 1},
        {"id": 2, "addedOn": "2023-06-01", "testID": 1},
        {"id": 3, "testID": 1},
    ]
    out = reconcile_attachments([items], Target(test_id=1))
    assert [a.id for a in out] == [2, 1, 3]
    assert out[1].added_on == EPOCH


def test_attachments_without_id_are_not_collapsed():
    items = [{"fileName": "a.pdf", "testID": 1}, {"fileName": "b.pdf", "testID": 1}]
    out = reconcile_attachments([items], Target(test_id=1))
    assert [a.file_name for a in out] == ["a.pdf", "b.pdf"]


def test_accepts_normalized_attachments():
    att = Attachment(id=7, file_name="r.pdf", file_url="", mime_type="application/pdf",
                     added_on=_utc(2024, 2, 2), test_id=4)
    out = reconcile_attachments([[att], [{"id": 7, "testID": 4}]], Target(test_id=4))
    assert out == [att]


def test_normalize_fills_defaults():
    att = normalize_attachment({"id": 4, "fileURL": "https://files/x/report.pdf"})
    assert att.file_name == "report.pdf"
    assert att.mime_type == "application/octet-stream"
    assert att.added_on == EPOCH


def test_epoch_millis_are_accepted():
    att = normalize_attachment({"id": 1, "addedOn": 1704067200000})
    assert att.added_on == _utc(2024, 1, 1)


def test_uploaded_without_timestamp_take_now():
    now = _utc(2025, 3, 3)
    out = normalize_uploaded([{"id": 1}, "junk", {"id": 2, "addedOn": "2024-01-01"}], now=now)
    assert [a.added_on for a in out] == [now, _utc(2024, 1, 1)]


def test_collect_record_attachments_flattens():
    records = [
        {"id": 1, "attachments": [{"id": 10}, "bad"]},
        {"id": 2},
        {"id": 3, "attachments": [{"id": 11}]},
    ]
    assert collect_record_attachments(records) == [{"id": 10}, {"id": 11}]
    assert collect_record_attachments(None) == []
