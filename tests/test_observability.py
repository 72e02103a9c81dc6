import pytest

from isr.invalidation import InvalidationResolver
from isr.observability import PurgeLogRecord


def test_purge_log_schema_roundtrip():
    resolver = InvalidationResolver()
    event = {"event": "post_updated", "entity_type": "post", "entity_id": 42}
    result = resolver.resolve(event)

    record = PurgeLogRecord.from_result(result, estimated_keys=resolver.estimate_count(event))
    payload = record.to_dict()

    assert payload["event_type"] == "post_updated"
    assert payload["keys_cleared"] == 2
    assert payload["estimated_keys"] == 2
    assert payload["purge_keys"] == result.purge_keys


def test_noop_record_is_valid():
    result = InvalidationResolver().resolve({"event": "nonexistent"})

    payload = PurgeLogRecord.from_result(result).to_dict()

    assert payload["keys_cleared"] == 0
    assert payload["estimated_keys"] is None


def test_malformed_key_rejected():
    record = PurgeLogRecord(event_type="post_updated", reason="Post updated affects 1 key(s)", purge_keys=["nope"])

    with pytest.raises(ValueError):
        record.to_dict()


def test_duplicate_keys_rejected():
    key = "0" * 32
    record = PurgeLogRecord(event_type="post_updated", reason="dup", purge_keys=[key, key])

    with pytest.raises(ValueError):
        record.to_dict()
