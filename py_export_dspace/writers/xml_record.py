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
"""Builds the enriched per-item XML record.

Layout::

    <dspace_item>
      <custom>
        <debug_db_info .../>
        <item_ids .../>
        <item_status .../>
        <item_embargo .../>            (one per item policy)
        <bundle_embargo ...>           (ORIGINAL bundle, if any)
          <bitstream_embargo .../>     (one per bitstream)
        </bundle_embargo>
        <matches ...>...</matches>
      </custom>
      <mets ...>...</mets>             (the DSpace AIP package)
    </dspace_item>
"""

import copy
import re
from datetime import date
from pathlib import Path
from typing import Any

from lxml import etree as ET

from ..exceptions import RecordWriteError
from ..models.export import ItemExport
from ..models.item import BitstreamPolicy, BundlePolicy, EmbargoStatus, ItemPolicy
from ..models.match import MatchResult

# Characters outside the XML 1.0 Char production, e.g. form feed or NUL.
_NON_XML_CHARS_RE = re.compile(
    "[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]",
)


def _attr_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return value.isoformat()
    return _NON_XML_CHARS_RE.sub("", str(value))


def _add(parent: ET._Element, tag: str, attrs: dict[str, Any] | None = None) -> ET._Element:
    """Add a child element with its attributes in name order."""
    child = ET.SubElement(parent, tag)
    for name in sorted(attrs or {}):
        child.set(name, _attr_value(attrs[name]))
    return child


def _embargo_attrs(embargo: EmbargoStatus) -> dict[str, Any]:
    attrs: dict[str, Any] = {"has_embargo": embargo.has_embargo}
    if embargo.has_embargo:
        attrs["lift_date"] = embargo.lift_date
    return attrs


def item_embargo_attrs(policy: ItemPolicy) -> dict[str, Any]:
    return {
        "policy_id": policy.policy_id,
        "action_id": policy.action_id,
        **_embargo_attrs(policy.embargo),
    }


def bundle_embargo_attrs(policy: BundlePolicy) -> dict[str, Any]:
    return {
        "bundle_id": policy.resource_id,
        "policy_id": policy.policy_id,
        "action_id": policy.action_id,
        "bundle_title": policy.bundle_title,
        **_embargo_attrs(policy.embargo),
    }


def bitstream_embargo_attrs(
    bs: BitstreamPolicy, is_open_access: bool, licence_draft: str | None = None,
    licence: str | None = None,
) -> dict[str, Any]:
    attrs = {
        "bitstream_id": bs.resource_id,
        "policy_id": bs.policy_id,
        "action_id": bs.action_id,
        "deleted": bs.deleted,
        "seq": bs.sequence_id,
        "bytes": bs.size_bytes,
        "fname": bs.filename,
        "file_title": bs.filename,
        "fdesc": bs.description,
        "fmime": bs.mime_type,
        "fpath": bs.file_path,
        "fpath_url": bs.file_url,
        "docversion": bs.docversion.verbose,
        "is_open_access": is_open_access,
        **_embargo_attrs(bs.embargo),
    }
    if licence_draft is not None:
        attrs["doclicence_draft"] = licence_draft
    if licence is not None:
        attrs["doclicence"] = licence
    return attrs


def add_match_info(parent: ET._Element, result: MatchResult) -> ET._Element:
    matches = _add(
        parent,
        "matches",
        {
            "type": result.strategy,
            "num_matching_ids": result.num_matches,
            "is_unique": result.is_unique,
        },
    )
    for rmid in result.sorted_rmids():
        match = result.matches[rmid]
        record = match.record
        child = _add(
            matches,
            "match",
            {
                "rmid": rmid,
                "externalId": record.external_id,
                "uuid": record.uuid,
                "pureId": record.pure_id,
                "researchOutput": record.rec_name,
            },
        )
        refs = _add(child, "pure_refs")
        for name, value in record.other_ids:
            _add(refs, "pure_ref", {"type": name, "value": value})

        id_type = result.id_type
        matching = _add(child, f"matching_{id_type}_refs")
        for local_id in sorted(match.matched_ids):
            _add(matching, f"matching_{id_type}_ref", {id_type: local_id})
    return matches


def build_record(export: ItemExport, package: ET._ElementTree) -> ET._Element:
    """Build the enriched record, grafting a copy of the package root into it."""
    item = export.item
    root = ET.Element("dspace_item")
    custom = _add(root, "custom")

    _add(custom, "debug_db_info", item.model_dump())
    _add(custom, "item_ids", {"item_id": item.item_id, "handle": item.handle, "url": item.url})
    _add(custom, "item_status", item.status())

    if export.item_policies:
        for policy in export.item_policies:
            _add(custom, "item_embargo", item_embargo_attrs(policy))
    else:
        # No public item policy, e.g. a withdrawn item.
        _add(custom, "item_embargo")

    if export.bundle_policy is not None:
        bundle = _add(custom, "bundle_embargo", bundle_embargo_attrs(export.bundle_policy))
        for bs in export.bitstreams:
            licences = export.bitstream_licences.get(bs.resource_id)
            _add(
                bundle,
                "bitstream_embargo",
                bitstream_embargo_attrs(
                    bs,
                    export.is_open_access,
                    licences.draft if licences else None,
                    licences.authority if licences else None,
                ),
            )

    add_match_info(custom, export.match_result)
    root.append(copy.deepcopy(package.getroot()))
    return root


def save_record(root: ET._Element, fpath: Path) -> None:
    try:
        fpath.parent.mkdir(parents=True, exist_ok=True)
        ET.ElementTree(root).write(
            str(fpath), pretty_print=True, xml_declaration=True, encoding="UTF-8",
        )
    except OSError as e:
        msg = f"Cannot write XML record {fpath}: {e}"
        raise RecordWriteError(msg) from e
