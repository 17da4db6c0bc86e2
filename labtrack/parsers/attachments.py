from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .base import first_present, key_str, parse_timestamp
from .models import EPOCH, Attachment, TestTarget

RawOrAttachment = Union[Attachment, Dict[str, Any]]


def normalize_attachment(raw: Dict[str, Any], default_added_on: datetime = EPOCH) -> Attachment:
    """Map a backend attachment object into `Attachment`.

    Missing `addedOn` takes `default_added_on` (epoch for fetched records,
    "now" for the ones the upload endpoint just returned).
    """
    added_raw = first_present(raw, "addedOn", "createdAt")
    added_on = parse_timestamp(added_raw, default=default_added_on)
    file_url = first_present(raw, "fileURL", "fileUrl", "url") or ""
    file_name = first_present(raw, "fileName", "name")
    if file_name is None and file_url:
        file_name = str(file_url).rsplit("/", 1)[-1]
    timeline = first_present(raw, "timelineID", "timeLineID")
    user_id = first_present(raw, "userID")
    return Attachment(
        id=first_present(raw, "id"),
        file_name=str(file_name or "Unknown File"),
        file_url=str(file_url),
        mime_type=str(first_present(raw, "mimeType", "type") or "application/octet-stream"),
        added_on=added_on,
        test_id=first_present(raw, "testID"),
        loinc_code=first_present(raw, "loincCode", "loinc_num_"),
        patient_id=first_present(raw, "patientID"),
        timeline_id=timeline,
        test=first_present(raw, "test", "testName"),
        user_id=user_id,
    )


def normalize_uploaded(raws: Iterable[Dict[str, Any]], now: Optional[datetime] = None) -> List[Attachment]:
    now = now or datetime.now(timezone.utc)
    return [normalize_attachment(r, default_added_on=now) for r in raws if isinstance(r, dict)]


def _coerce(items: Optional[Iterable[RawOrAttachment]]) -> List[Attachment]:
    out: List[Attachment] = []
    for it in items or []:
        if isinstance(it, Attachment):
            out.append(it)
        elif isinstance(it, dict):
            out.append(normalize_attachment(it))
    return out


def matches(att: Attachment, target: TestTarget) -> bool:
    """OR-match on test id / LOINC code; a missing key on the target is ignored."""
    tid = key_str(target.test_id)
    loinc = key_str(target.loinc_code)
    if tid is not None and key_str(att.test_id) == tid:
        return True
    if loinc is not None and key_str(att.loinc_code) == loinc:
        return True
    return False


def reconcile_attachments(
    sources: Sequence[Optional[Iterable[RawOrAttachment]]], target: TestTarget
) -> List[Attachment]:
    """Merge attachment lists into one view for `target`.

    `sources` are in priority order (uploaded, completed endpoint, direct
    endpoint). The first occurrence of an id wins; the result is newest
    first and keeps input order between equal timestamps.
    """
    seen = set()
    merged: List[Attachment] = []
    for src in sources:
        for att in _coerce(src):
            if not matches(att, target):
                continue
            dedup_key = key_str(att.id)
            if dedup_key is not None:
                if dedup_key in seen:
                    continue
                seen.add(dedup_key)
            merged.append(att)
    # sorted() stays stable with reverse=True
    return sorted(merged, key=lambda a: a.added_on, reverse=True)


def collect_record_attachments(records: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Flatten the `attachments` arrays carried by completed-list patient records."""
    out: List[Dict[str, Any]] = []
    for rec in records or []:
        atts = rec.get("attachments") if isinstance(rec, dict) else None
        if isinstance(atts, list):
            out.extend(a for a in atts if isinstance(a, dict))
    return out
