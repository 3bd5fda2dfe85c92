# Copyright 2025 Gowtham Rao <rao@ohdsi.org>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Decodes the packed policy columns of the item query.

Each policy column is a list of entries joined by the multi-value delimiter;
each entry is a positional tuple joined by the subfield delimiter, e.g.
``"1^22^0^2030-01-01||1^23^0^"``.
"""

import logging
import re
from datetime import date

from .config import Settings
from .embargo import evaluate_embargo, parse_policy_date
from .exceptions import InvalidPolicyActionError, MalformedPolicyError
from .models.item import BitstreamPolicy, BundlePolicy, DocVersion, ItemPolicy

logger = logging.getLogger(__name__)

# Substituted by the item query for a NULL policy id or action id.
DUMMY_ID = -1

# resourcepolicy.action_id values
POLICY_ACTION_IDS = {
    "read": 0,
    "write": 1,
    "delete": 2,
    "add": 3,
    "remove": 4,
    "workflow_step_1": 5,
    "workflow_step_2": 6,
    "workflow_step_3": 7,
    "workflow_abort": 8,
    "default_bitstream_read": 9,
    "default_item_read": 10,
    "admin": 11,
    "withdrawn_read": 12,
}

ALLOWED_ACTION_IDS = [
    str(POLICY_ACTION_IDS["read"]),
    str(POLICY_ACTION_IDS["withdrawn_read"]),
    str(DUMMY_ID),
]

ITEM_FIELDS = ("resource_id", "policy_id", "action_id", "start_date")
BUNDLE_FIELDS = ITEM_FIELDS + ("bundle_title",)
BITSTREAM_FIELDS = ITEM_FIELDS + (
    "deleted",
    "sequence_id",
    "size_bytes",
    "internal_id",
    "filename",
    "description",
    "mime_type",
)

# "12345678..." -> "12/34/56/12345678..."
_INTERNAL_ID_RE = re.compile(r"^((\d\d)(\d\d)(\d\d).*)$")
_AUTHOR_RE = re.compile("author", re.IGNORECASE)
_PUBLISH_RE = re.compile("publish", re.IGNORECASE)


def split_entries(packed: str | None, settings: Settings) -> list[str]:
    """Split a packed column into its entries; NULL or '' gives no entries."""
    if not packed:
        return []
    return packed.split(settings.multivalue_delim)


def _split_subfields(
    entry: str, names: tuple[str, ...], entity: str, settings: Settings,
    optional_trailing: int = 0,
) -> dict[str, str]:
    values = entry.split(settings.subfield_delim)
    if not len(names) - optional_trailing <= len(values) <= len(names):
        msg = (
            f"Malformed {entity} policy '{entry}': expected {len(names)} "
            f"subfields but got {len(values)}."
        )
        raise MalformedPolicyError(msg)
    fields = dict(zip(names, values))
    for name in names[len(values):]:
        fields[name] = None
    return fields


def _check_action(fields: dict[str, str], entity: str) -> None:
    if fields["action_id"] not in ALLOWED_ACTION_IDS:
        raise InvalidPolicyActionError(
            entity, fields["resource_id"], fields["action_id"], ALLOWED_ACTION_IDS,
        )


def _start_date(fields: dict[str, str], entity: str) -> date | None:
    try:
        return parse_policy_date(fields["start_date"])
    except ValueError as e:
        msg = (
            f"Malformed start_date '{fields['start_date']}' for {entity}_id "
            f"{fields['resource_id']}: {e}"
        )
        raise MalformedPolicyError(msg) from e


def classify_docversion(description: str | None) -> DocVersion:
    """Classify a bitstream's document version from its file description."""
    text = description or ""
    if _AUTHOR_RE.search(text):
        return DocVersion.AUTHOR
    if _PUBLISH_RE.search(text):
        return DocVersion.PUBLISHER
    return DocVersion.UNKNOWN


def relative_storage_path(internal_id: str) -> str:
    """Asset store path of a bitstream relative to the asset store root."""
    return _INTERNAL_ID_RE.sub(r"\2/\3/\4/\1", internal_id)


def decode_item_policy(
    entry: str, reference_date: date, settings: Settings,
) -> ItemPolicy:
    fields = _split_subfields(entry, ITEM_FIELDS, "item", settings)
    _check_action(fields, "item")
    start_date = _start_date(fields, "item")
    logger.debug("item %s start_date: %s", fields["resource_id"], start_date)
    return ItemPolicy(
        resource_id=fields["resource_id"],
        policy_id=fields["policy_id"],
        action_id=fields["action_id"],
        start_date=start_date,
        embargo=evaluate_embargo(start_date, reference_date),
    )


def decode_item_policies(
    packed: str | None, reference_date: date, settings: Settings,
) -> list[ItemPolicy]:
    """Decode all item-level policies.

    An empty list means the item has no public policy at all (e.g. it has
    been withdrawn).
    """
    return [
        decode_item_policy(entry, reference_date, settings)
        for entry in split_entries(packed, settings)
    ]


def decode_bundle_policy(
    packed: str | None, reference_date: date, settings: Settings,
) -> BundlePolicy | None:
    """Decode the ORIGINAL bundle policy, or return None if there is no bundle."""
    if not packed:
        return None
    fields = _split_subfields(packed, BUNDLE_FIELDS, "bundle", settings)
    _check_action(fields, "bundle")
    start_date = _start_date(fields, "bundle")
    return BundlePolicy(
        resource_id=fields["resource_id"],
        policy_id=fields["policy_id"],
        action_id=fields["action_id"],
        start_date=start_date,
        bundle_title=fields["bundle_title"],
        embargo=evaluate_embargo(start_date, reference_date),
    )


def decode_bitstream_policy(
    entry: str, reference_date: date, settings: Settings,
) -> BitstreamPolicy:
    """Decode one bitstream entry and derive its storage path and docversion.

    The trailing MIME type subfield is optional.
    """
    fields = _split_subfields(
        entry, BITSTREAM_FIELDS, "bitstream", settings, optional_trailing=1,
    )
    _check_action(fields, "bitstream")
    start_date = _start_date(fields, "bitstream")

    rel_path = relative_storage_path(fields["internal_id"])
    return BitstreamPolicy(
        resource_id=fields["resource_id"],
        policy_id=fields["policy_id"],
        action_id=fields["action_id"],
        start_date=start_date,
        deleted=fields["deleted"].strip().lower() in ("true", "t"),
        sequence_id=fields["sequence_id"],
        size_bytes=fields["size_bytes"],
        internal_id=fields["internal_id"],
        filename=fields["filename"],
        description=fields["description"],
        mime_type=fields["mime_type"] or None,
        file_path=settings.assetstore_dir + rel_path,
        file_url=settings.assetstore_base_url + rel_path,
        docversion=classify_docversion(fields["description"]),
        embargo=evaluate_embargo(start_date, reference_date),
    )


def decode_bitstream_policies(
    packed: str | None, reference_date: date, settings: Settings,
) -> list[BitstreamPolicy]:
    return [
        decode_bitstream_policy(entry, reference_date, settings)
        for entry in split_entries(packed, settings)
    ]


def encode_policy_fields(values: list[str], settings: Settings) -> str:
    """Pack subfield values into one entry, as the item query does."""
    return settings.subfield_delim.join(values)
