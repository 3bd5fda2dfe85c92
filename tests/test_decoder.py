"""Tests for decoding the packed policy columns."""

from datetime import date

import pytest

from py_export_dspace.decoder import (
    BITSTREAM_FIELDS,
    classify_docversion,
    decode_bitstream_policies,
    decode_bitstream_policy,
    decode_bundle_policy,
    decode_item_policies,
    encode_policy_fields,
    relative_storage_path,
)
from py_export_dspace.exceptions import InvalidPolicyActionError, MalformedPolicyError
from py_export_dspace.models.item import DocVersion

from conftest import REFERENCE_DATE

pytestmark = pytest.mark.unit

BITSTREAM_ENTRY = (
    "501^77^0^^false^1^123456^12345678901234567890^paper.pdf^Author version^application/pdf"
)


def test_decode_item_policies_multiple_entries(settings):
    packed = "42^10^0^2030-01-01||42^11^0^"
    policies = decode_item_policies(packed, REFERENCE_DATE, settings)

    assert [p.policy_id for p in policies] == ["10", "11"]
    assert policies[0].start_date == date(2030, 1, 1)
    assert policies[0].embargo.has_embargo is True
    assert policies[0].embargo.lift_date == date(2030, 1, 1)
    assert policies[1].start_date is None
    assert policies[1].embargo.has_embargo is False


def test_decode_item_policies_empty_means_no_policies(settings):
    assert decode_item_policies("", REFERENCE_DATE, settings) == []
    assert decode_item_policies(None, REFERENCE_DATE, settings) == []


def test_decode_item_policy_accepts_dummy_and_withdrawn_read(settings):
    policies = decode_item_policies("42^-1^-1^||42^12^12^", REFERENCE_DATE, settings)
    assert [p.action_id for p in policies] == ["-1", "12"]


def test_decode_item_policy_rejects_unexpected_action(settings):
    with pytest.raises(InvalidPolicyActionError) as excinfo:
        decode_item_policies("42^10^11^", REFERENCE_DATE, settings)

    err = excinfo.value
    assert err.entity == "item"
    assert err.resource_id == "42"
    assert err.action_id == "11"
    assert "item_id 42" in str(err)


def test_decode_item_policy_wrong_arity_is_malformed(settings):
    with pytest.raises(MalformedPolicyError):
        decode_item_policies("42^10^0", REFERENCE_DATE, settings)


def test_decode_item_policy_bad_date_is_malformed(settings):
    with pytest.raises(MalformedPolicyError):
        decode_item_policies("42^10^0^not-a-date", REFERENCE_DATE, settings)


def test_decode_bundle_policy(settings):
    bundle = decode_bundle_policy("300^20^0^2020-01-01^ORIGINAL", REFERENCE_DATE, settings)
    assert bundle.resource_id == "300"
    assert bundle.bundle_title == "ORIGINAL"
    assert bundle.embargo.has_embargo is False


def test_decode_bundle_policy_absent(settings):
    assert decode_bundle_policy(None, REFERENCE_DATE, settings) is None
    assert decode_bundle_policy("", REFERENCE_DATE, settings) is None


def test_decode_bundle_policy_rejects_unexpected_action(settings):
    with pytest.raises(InvalidPolicyActionError) as excinfo:
        decode_bundle_policy("300^20^2^^ORIGINAL", REFERENCE_DATE, settings)
    assert excinfo.value.entity == "bundle"
    assert excinfo.value.resource_id == "300"


def test_decode_bitstream_policy_fields_and_derived_values(settings):
    bs = decode_bitstream_policy(BITSTREAM_ENTRY, REFERENCE_DATE, settings)

    assert bs.resource_id == "501"
    assert bs.deleted is False
    assert bs.sequence_id == "1"
    assert bs.size_bytes == "123456"
    assert bs.filename == "paper.pdf"
    assert bs.mime_type == "application/pdf"
    assert bs.file_path == "/dspace/assetstore/12/34/56/12345678901234567890"
    assert bs.file_url == "https://dspace.example.com/assetstore/12/34/56/12345678901234567890"
    assert bs.docversion == DocVersion.AUTHOR
    assert bs.embargo.has_embargo is False


def test_decode_bitstream_policy_without_mime_type(settings):
    entry = BITSTREAM_ENTRY.rsplit("^", 1)[0]
    bs = decode_bitstream_policy(entry, REFERENCE_DATE, settings)
    assert bs.mime_type is None


def test_decode_bitstream_policy_with_embargo(settings):
    entry = "501^77^0^2099-12-31^false^1^10^12345678^a.pdf^^"
    bs = decode_bitstream_policy(entry, REFERENCE_DATE, settings)
    assert bs.embargo.has_embargo is True
    assert bs.embargo.lift_date == date(2099, 12, 31)
    assert bs.docversion == DocVersion.UNKNOWN


def test_decode_bitstream_policy_rejects_unexpected_action(settings):
    entry = BITSTREAM_ENTRY.replace("501^77^0^", "501^77^1^")
    with pytest.raises(InvalidPolicyActionError) as excinfo:
        decode_bitstream_policy(entry, REFERENCE_DATE, settings)
    assert excinfo.value.entity == "bitstream"
    assert excinfo.value.resource_id == "501"


def test_decode_bitstream_policy_wrong_arity_is_malformed(settings):
    # A caret inside the file name adds a subfield.
    entry = BITSTREAM_ENTRY.replace("paper.pdf", "pa^per.pdf")
    with pytest.raises(MalformedPolicyError):
        decode_bitstream_policy(entry, REFERENCE_DATE, settings)


def test_decode_bitstream_policies_keeps_order(settings):
    second = BITSTREAM_ENTRY.replace("501^", "502^").replace("paper.pdf", "data.csv")
    policies = decode_bitstream_policies(
        f"{BITSTREAM_ENTRY}||{second}", REFERENCE_DATE, settings
    )
    assert [p.filename for p in policies] == ["paper.pdf", "data.csv"]


def test_decode_then_encode_preserves_subfields(settings):
    bs = decode_bitstream_policy(BITSTREAM_ENTRY, REFERENCE_DATE, settings)
    values = [
        bs.resource_id,
        bs.policy_id,
        bs.action_id,
        bs.start_date.isoformat() if bs.start_date else "",
        "true" if bs.deleted else "false",
        bs.sequence_id,
        bs.size_bytes,
        bs.internal_id,
        bs.filename,
        bs.description,
        bs.mime_type or "",
    ]
    assert len(values) == len(BITSTREAM_FIELDS)
    assert encode_policy_fields(values, settings) == BITSTREAM_ENTRY


@pytest.mark.parametrize(
    "description, expected",
    [
        ("Author version", DocVersion.AUTHOR),
        ("ACCEPTED AUTHOR MANUSCRIPT", DocVersion.AUTHOR),
        ("Published version", DocVersion.PUBLISHER),
        ("Publisher's PDF", DocVersion.PUBLISHER),
        ("Supplementary data", DocVersion.UNKNOWN),
        ("", DocVersion.UNKNOWN),
        (None, DocVersion.UNKNOWN),
    ],
)
def test_classify_docversion(description, expected):
    assert classify_docversion(description) == expected


def test_relative_storage_path_short_internal_id_unchanged():
    assert relative_storage_path("12345") == "12345"
    assert relative_storage_path("123456") == "12/34/56/123456"
