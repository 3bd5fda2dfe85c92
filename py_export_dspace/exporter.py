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
"""Drives the export of a batch of DSpace items, one item at a time.

For each item:

- Fetch the item row (handle, status flags, packed policies) from the database
- Decode the policies and evaluate their embargoes
- Get the item's AIP package via the DSpace packager (unless cached)
- Derive licence, publisher and grant info from the package's Dublin Core
- Match the item to Pure records by DOI or rmid
- Write the enriched XML record and the CSV review rows
"""

import csv
import logging
import re
import socket
from collections.abc import Iterable
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from lxml import etree as ET

from .config import Settings
from .decoder import (
    decode_bitstream_policies,
    decode_bundle_policy,
    decode_item_policies,
)
from .enrichment.grants import extract_grants
from .enrichment.licence import (
    build_licence_rules,
    expected_authority_labels,
    extract_licence,
    extract_licence_from_authority,
    fallback_licence,
)
from .enrichment.publisher import compile_publisher_pattern, detect_restricted_publisher
from .exceptions import ItemExportError, ItemStatusError, RunSetupError
from .matching.identifiers import clean_ids
from .matching.strategies import Matcher
from .models.enrichment import BitstreamLicence
from .models.export import BatchSummary, ItemExport
from .models.item import ItemRecord
from .package import PackageFetcher, load_package, output_path, parse_dublin_core
from .sources.base import BaseItemSource
from .writers.csv_report import CSV_HEADER, csv_rows, write_rows
from .writers.xml_record import build_record, save_record

logger = logging.getLogger(__name__)


def load_item_ids(path: str | Path) -> list[tuple[int, str | None]]:
    """Read item ids, one per line, each optionally followed by ', description'.

    Blank lines and lines starting with '#' are ignored.
    """
    item_ids = []
    try:
        with open(path) as f:
            lines = f.readlines()
    except OSError as e:
        msg = f"Cannot read item id file {path}: {e}"
        raise RunSetupError(msg) from e

    for line_num, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        s_id, _, descr = line.partition(",")
        try:
            item_ids.append((int(s_id.strip()), descr.strip() or None))
        except ValueError as e:
            msg = f"{path}:{line_num}: invalid item id '{s_id.strip()}'"
            raise RunSetupError(msg) from e
    return item_ids


def detect_open_access(pattern: str | None, hostname: str | None = None) -> bool:
    """Bitstreams are open access only on hosts whose name matches `pattern`."""
    if not pattern:
        return False
    hostname = hostname if hostname is not None else socket.gethostname()
    return re.search(pattern, hostname) is not None


def warn_if_dirs_not_empty(dirs: Iterable[Path]) -> None:
    for d in dirs:
        if d.is_dir():
            num_files = sum(1 for _ in d.iterdir())
            if num_files > 0:
                logger.warning("Directory %s is not empty (contains %d files/dirs).", d, num_files)


class ItemExporter:
    """Exports DSpace items as enriched XML records plus CSV review rows.

    All run-wide state (reference date, lookup tables inside the matcher,
    omit list) is supplied at construction and not modified afterwards.
    """

    def __init__(
        self,
        settings: Settings,
        source: BaseItemSource,
        matcher: Matcher,
        reference_date: date,
        omit_ids: Iterable[int] = (),
        is_open_access: bool = False,
        fetcher: PackageFetcher | None = None,
    ) -> None:
        self.settings = settings
        self.source = source
        self.matcher = matcher
        self.reference_date = reference_date
        self.omit_ids = frozenset(omit_ids)
        self.is_open_access = is_open_access
        self.fetcher = fetcher or PackageFetcher(settings)

        self.licence_rules = build_licence_rules(settings.licence_keys)
        self.authority_labels = expected_authority_labels(self.licence_rules)
        self.publisher_pattern = compile_publisher_pattern(
            settings.restricted_publisher_pattern,
        )

    def will_omit(self, item: ItemRecord) -> bool:
        """Return True if the item belongs in the omitted output.

        Raises:
            ItemStatusError: If a status flag used for classification is NULL.
        """
        status = item.status()
        missing = [k for k in self.settings.keep_status if status.get(k) is None]
        if missing:
            msg = f"Status attributes {missing} are NULL for item_id {item.item_id}."
            raise ItemStatusError(msg)

        if item.item_id in self.omit_ids:
            return True
        return any(status[k] != v for k, v in self.settings.keep_status.items())

    def export_item(self, conn: Any, item_id: int) -> tuple[ItemExport, ET._ElementTree]:
        """Run the enrichment pipeline for one item.

        Returns:
            The enriched item and its parsed AIP package.

        Raises:
            ItemExportError: If the item cannot be exported.
        """
        settings = self.settings
        item = self.source.fetch_item(conn, item_id)
        logger.debug("item: %s", item)

        item_policies = decode_item_policies(item.item_policies, self.reference_date, settings)
        bundle_policy = decode_bundle_policy(item.bundle_policy, self.reference_date, settings)
        bitstreams = []
        if bundle_policy is not None:
            bitstreams = decode_bitstream_policies(
                item.bitstream_policies, self.reference_date, settings,
            )

        package = load_package(self.fetcher.fetch(item))
        dc = parse_dublin_core(package, settings)

        item_licence = extract_licence(dc.description, dc.rights, self.licence_rules)
        publisher_flag = detect_restricted_publisher(
            dc.publisher, dc.description, dc.rights, self.publisher_pattern,
        )
        grant_info = extract_grants(
            dc.relation, dc.grantnumber, settings.funders, settings.grant_purl_prefix,
        )

        bitstream_licences = {}
        for bs in bitstreams:
            if bs.deleted:
                continue
            bitstream_licences[bs.resource_id] = BitstreamLicence(
                resource_id=bs.resource_id,
                draft=fallback_licence(
                    item_licence.code if item_licence else None,
                    bs.docversion,
                    publisher_flag,
                ),
                authority=extract_licence_from_authority(dc.license, self.authority_labels),
            )

        doi_clean = clean_ids(dc.doi, "doi")
        rmid_clean = clean_ids(dc.rmid, "rmid")
        cleaned = doi_clean if self.matcher.id_type == "doi" else rmid_clean
        match_result = self.matcher.match(cleaned.ids)

        export = ItemExport(
            item=item,
            item_policies=item_policies,
            bundle_policy=bundle_policy,
            bitstreams=bitstreams,
            is_open_access=self.is_open_access,
            dc=dc,
            item_licence=item_licence,
            publisher_flag=publisher_flag,
            grant_info=grant_info,
            bitstream_licences=bitstream_licences,
            doi_clean=doi_clean,
            rmid_clean=rmid_clean,
            match_result=match_result,
            omit=self.will_omit(item),
        )
        return export, package

    def process_batch(self, item_ids: Iterable[tuple[int, str | None]]) -> BatchSummary:
        """Export every item in order, writing the kept and omitted CSV files.

        An item which fails is logged and produces no output; the batch then
        continues with the next item.
        """
        settings = self.settings
        summary = BatchSummary(started_at_utc=datetime.now(timezone.utc))
        warn_if_dirs_not_empty([settings.out_dir, settings.out_omit_dir])
        for fpath in (settings.csv_out, settings.csv_out_omit):
            fpath.parent.mkdir(parents=True, exist_ok=True)

        with (
            self.source.get_conn() as conn,
            open(settings.csv_out, "w", newline="", encoding="utf-8") as f_out,
            open(settings.csv_out_omit, "w", newline="", encoding="utf-8") as f_omit,
        ):
            csv_out = csv.writer(f_out)
            csv_omit = csv.writer(f_omit)
            csv_out.writerow(CSV_HEADER)
            csv_omit.writerow(CSV_HEADER)

            for item_id, descr in item_ids:
                logger.info("### item_id='%s'%s", item_id, f" -- {descr}" if descr else "")
                try:
                    export, package = self.export_item(conn, item_id)
                    record = build_record(export, package)
                    fpath = output_path(export.item, export.omit, settings)
                    rows = csv_rows(
                        export, settings.csv_multivalue_delim, settings.restricted_publisher_name,
                    )
                    save_record(record, fpath)
                    write_rows(csv_omit if export.omit else csv_out, rows, item_id)
                except ItemExportError as e:
                    logger.error("item_id:'%s' -- %s", item_id, e)
                    summary.failed_item_ids.append(item_id)
                    continue

                if export.omit:
                    summary.omitted += 1
                else:
                    summary.kept += 1

        summary.finished_at_utc = datetime.now(timezone.utc)
        logger.info(
            "Exported %d kept and %d omitted items; %d failed.",
            summary.kept,
            summary.omitted,
            summary.failed,
        )
        if summary.failed:
            logger.warning("Failed item ids: %s", summary.failed_item_ids)
        return summary
