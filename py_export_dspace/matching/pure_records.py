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
"""Reads Pure research-output records from the local lookup files."""

import logging
from pathlib import Path

from lxml import etree as ET

from ..config import Settings
from ..exceptions import PureRecordError
from ..models.match import PureRecord

logger = logging.getLogger(__name__)


def pure_record_path(rmid: str, settings: Settings) -> Path:
    """Lookup file path for an rmid: <dir>/<rmid prefix>/<prefix><rmid>.<ext>."""
    subdir = rmid[: settings.pure_record_dir_width]
    fname = f"{settings.pure_record_prefix}{rmid}.{settings.pure_record_ext}"
    return settings.pure_records_dir / subdir / fname


def parse_pure_record(xml_content: bytes, settings: Settings) -> PureRecord:
    """
    Parses a Pure research-output XML document into its identifiers.

    Args:
        xml_content: The XML returned by the Pure API for one record.
        settings: Supplies the XPaths (relative to the root element) of the
            DOI, additional external id, previous UUID and portal URL elements.

    Returns:
        The record's identifiers.
    """
    root = ET.fromstring(xml_content)
    other_ids: list[tuple[str, str]] = []

    for e in root.xpath(settings.pure_xpath_doi):
        other_ids.append(("doi", (e.text or "").strip()))
    for e in root.xpath(settings.pure_xpath_ext_id):
        other_ids.append((e.get("idSource", "externalId"), (e.text or "").strip()))
    for e in root.xpath(settings.pure_xpath_uuid):
        other_ids.append(("previousUuid", (e.text or "").strip()))
    for e in root.xpath(settings.pure_xpath_portal):
        other_ids.append(("portalUrl", (e.text or "").strip()))

    return PureRecord(
        rec_name=ET.QName(root).localname,
        pure_id=root.get("pureId"),
        uuid=root.get("uuid"),
        external_id=root.get("externalId"),
        other_ids=other_ids,
    )


class PureRecordStore:
    """Resolves an rmid to its Pure record via the lookup files."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get(self, rmid: str) -> PureRecord:
        path = pure_record_path(rmid, self.settings)
        try:
            content = path.read_bytes()
        except OSError as e:
            msg = f"Cannot read Pure record file {path}: {e}"
            raise PureRecordError(msg) from e

        try:
            return parse_pure_record(content, self.settings)
        except ET.XMLSyntaxError as e:
            msg = f"Malformed Pure record file {path}: {e}"
            raise PureRecordError(msg) from e
