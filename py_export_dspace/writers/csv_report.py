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

"""Builds the CSV review report rows, one per undeleted bitstream."""

from typing import Any

from ..enrichment.publisher import publisher_flag_label
from ..exceptions import RecordWriteError
from ..models.export import ItemExport

CSV_HEADER = [
    "item_id",
    "hdl_url",
    "nFilesExist",
    "nFilesDel",
    "fname",
    "docversion",
    "doclicence_draft",
    "doclicence",
    "docdeleted",
    "itemlicence",
    "elsevier",
    "grant_warnings",
    "grant_ref",
    "grant_purl",
    "dois_clean",
    "doi_msg",
    "rmids_clean",
    "rmid_msg",
    "match_by",
    "uniq_match",
    "rmids_match",
    "rec_names_match",
    "dc_publisher",
    "dc_relation_grantnumber",
    "dc_relation",
    "dc_rights",
    "dc_description",
    "dc_title",
]


def _item_columns(export: ItemExport, delim: str, publisher_name: str) -> list[Any]:
    dc = export.dc
    result = export.match_result
    rmids = result.sorted_rmids()
    return [
        export.item_licence.code if export.item_licence else "",
        publisher_flag_label(export.publisher_flag, publisher_name),
        delim.join(export.grant_info.warnings),
        delim.join(g.reference for g in export.grant_info.grants),
        delim.join(g.purl for g in export.grant_info.grants),
        delim.join(export.doi_clean.ids),
        export.doi_clean.message,
        delim.join(export.rmid_clean.ids),
        export.rmid_clean.message,
        result.strategy,
        "true" if result.is_unique else "false",
        delim.join(rmids),
        delim.join(result.matches[rmid].record.rec_name for rmid in rmids),
        delim.join(dc.publisher),
        delim.join(dc.grantnumber),
        delim.join(dc.relation),
        delim.join(dc.rights),
        delim.join(dc.description),
        delim.join(dc.title),
    ]


def csv_rows(export: ItemExport, delim: str, publisher_name: str) -> list[list[Any]]:
    """
    Builds the review report rows for one item.

    Args:
        export: The enriched item.
        delim: Joins multi-valued fields within one cell.
        publisher_name: Label used for the restricted-publisher column.

    Returns:
        One row per undeleted bitstream, or a single row with empty bitstream
        columns if the item has none. Item-level columns are the same in
        every row.
    """
    undeleted = export.undeleted_bitstreams
    lead = [export.item.item_id, export.item.url or "", len(undeleted), export.num_deleted]
    tail = _item_columns(export, delim, publisher_name)

    if not undeleted:
        return [lead + ["", "", "", "", ""] + tail]

    rows = []
    for bs in undeleted:
        licences = export.bitstream_licences.get(bs.resource_id)
        rows.append(
            lead
            + [
                bs.filename,
                bs.docversion.value,
                (licences.draft if licences else None) or "",
                (licences.authority if licences else None) or "",
                "true" if bs.deleted else "false",
            ]
            + tail,
        )
    return rows


def write_rows(writer: Any, rows: list[list[Any]], item_id: int) -> None:
    try:
        writer.writerows(rows)
    except OSError as e:
        msg = f"Cannot write CSV rows for item {item_id}: {e}"
        raise RecordWriteError(msg) from e
