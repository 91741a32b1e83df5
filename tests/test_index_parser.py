"""Index decoding and the back-fill pass."""

from __future__ import annotations

import json

import pytest

from rulehub.domain.errors import IndexDecodeError, IndexLoadError
from rulehub.domain.models import ITEM_TYPES
from rulehub.services.index_parser import parse_index


def _index(**types) -> bytes:
    return json.dumps(types).encode("utf-8")


SAMPLE = _index(
    parsers={
        "crowdsecurity/sshd-logs": {
            "path": "parsers/s01-parse/crowdsecurity/sshd-logs.yaml",
            "stage": "s01-parse",
            "version": "0.3",
            "versions": {"0.3": {"digest": "abc"}, "0.2": {"digest": "def", "deprecated": True}},
            "description": "Parse openSSH logs",
        },
    },
    scenarios={
        "crowdsecurity/ssh-bf": {
            "path": "scenarios/crowdsecurity/ssh-bf.yaml",
            "author": "someone-else",
            "version": "0.1",
        },
        "standalone": {"path": "scenarios/standalone.yaml"},
    },
    collections={
        "crowdsecurity/sshd": {
            "path": "collections/crowdsecurity/sshd.yaml",
            "parsers": ["crowdsecurity/sshd-logs"],
            "scenarios": ["crowdsecurity/ssh-bf"],
        },
    },
)


def test_backfills_derived_fields():
    result = parse_index(SAMPLE)

    parser = result.items["parsers"]["crowdsecurity/sshd-logs"]
    assert parser.name == "crowdsecurity/sshd-logs"
    assert parser.author == "crowdsecurity"
    assert parser.type == "parsers"
    assert parser.file_name == "sshd-logs.yaml"
    assert parser.stage == "s01-parse"
    assert parser.versions["0.2"].deprecated is True
    assert parser.fq_name() == "parsers:crowdsecurity/sshd-logs"

    # an explicit author is kept
    assert result.items["scenarios"]["crowdsecurity/ssh-bf"].author == "someone-else"
    # no '/' in the name, no author to derive
    assert result.items["scenarios"]["standalone"].author == ""


def test_every_type_is_present():
    result = parse_index(b"{}")

    assert list(result.items) == list(ITEM_TYPES)
    assert all(not items for items in result.items.values())
    assert result.warnings == []


def test_file_name_is_last_segment_of_remote_path():
    result = parse_index(SAMPLE)

    for type_items in result.items.values():
        for item in type_items.values():
            assert item.remote_path.endswith("/" + item.file_name)


def test_parsing_is_deterministic():
    first = parse_index(SAMPLE)
    second = parse_index(SAMPLE)

    for item_type in ITEM_TYPES:
        dumped_first = {n: i.model_dump() for n, i in first.items[item_type].items()}
        dumped_second = {n: i.model_dump() for n, i in second.items[item_type].items()}
        assert dumped_first == dumped_second
    assert first.warnings == second.warnings


def test_missing_sub_item_is_a_warning():
    data = _index(
        parsers={"crowdsecurity/sshd-logs": {"path": "parsers/s01-parse/crowdsecurity/sshd-logs.yaml"}},
        collections={
            "crowdsecurity/sshd": {
                "path": "collections/crowdsecurity/sshd.yaml",
                "parsers": ["crowdsecurity/sshd-logs"],
                "scenarios": ["crowdsecurity/ghost"],
            },
        },
    )

    result = parse_index(data)

    assert result.warnings == [
        "can't find crowdsecurity/ghost in scenarios, required by crowdsecurity/sshd"
    ]
    assert "crowdsecurity/sshd" in result.items["collections"]


def test_dashed_keys_and_unknown_fields():
    data = _index(
        **{
            "appsec-rules": {"crowdsecurity/rule": {"path": "appsec-rules/crowdsecurity/rule.yaml"}},
            "collections": {
                "crowdsecurity/appsec": {
                    "path": "collections/crowdsecurity/appsec.yaml",
                    "appsec-rules": ["crowdsecurity/rule"],
                    "long_description": "ignored",
                    "labels": {"type": "exploit"},
                },
            },
            "profiles": {"crowdsecurity/linux": {"path": "profiles/crowdsecurity/linux.yaml"}},
        }
    )

    result = parse_index(data)

    collection = result.items["collections"]["crowdsecurity/appsec"]
    assert collection.appsec_rules == ["crowdsecurity/rule"]
    assert collection.sub_item_refs() == [("appsec-rules", "crowdsecurity/rule")]
    assert "profiles" not in result.items
    assert result.warnings == []


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"{not json",
        b"[]",
        b'{"parsers": []}',
        b'{"parsers": {"a/b": {"version": ["not", "a", "string"]}}}',
    ],
)
def test_invalid_documents_raise_decode_error(data):
    with pytest.raises(IndexDecodeError) as exc_info:
        parse_index(data)

    assert isinstance(exc_info.value, IndexLoadError)
    assert exc_info.value.stage == "load"
