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
"""Extracts ARC & NHMRC grant references from dc.relation and dc.relation.grantnumber.

See https://help.nla.gov.au/trove/becoming-partner/for-content-partners/adding-NHMRC-ARC

The two fields describe the same grants in different forms:

- dc.relation:             http://purl.org/au-research/grants/<funder>/<grant_num>
- dc.relation.grantnumber: <funder>/<grant_num>

Funder and grant number are upper-cased (in both the reference and the PURL).
"""

import logging
import re
from collections.abc import Iterable

from ..models.enrichment import Grant, GrantInfo

logger = logging.getLogger(__name__)

RELATION_FIELD = "dc.relation"
GRANTNUMBER_FIELD = "dc.relation.grantnumber"

_NOT_FOUND_RE = re.compile(r"NOT\s*FOUND", re.IGNORECASE)
_FUNDER_GRANTNUM_RE = re.compile(r"^([^/\s]+)\s*/\s*(\S.*)$")


def purl_regex(purl_prefix: str) -> re.Pattern:
    """Regex for '<purl_prefix>/<funder>/<grant_num>', accepting http or https."""
    host_and_path = re.sub(r"^https?://", "", purl_prefix.rstrip("/"))
    return re.compile(
        rf"^https?://{re.escape(host_and_path)}/([^/\s]+)/(\S+?)/?$", re.IGNORECASE,
    )


class _GrantCollector:
    """Accumulates grants from both fields into one ordered, unique list."""

    def __init__(self, funders: Iterable[str], purl_prefix: str) -> None:
        self.funders = {f.upper() for f in funders}
        self.purl_prefix = purl_prefix.rstrip("/")
        self.grants: list[Grant] = []
        self.warnings: list[str] = []
        self._seen: set[str] = set()

    def add(
        self, funder: str, grant_num: str, field_name: str, this_field: dict[str, Grant],
    ) -> None:
        """Validate one candidate grant and record it if it is new."""
        funder, grant_num = funder.upper(), grant_num.upper()
        if funder not in self.funders:
            self.warnings.append(f"{field_name} unexpected funder")
            return

        if _NOT_FOUND_RE.search(grant_num):
            self.warnings.append(f"{field_name} unexpected grant number '{grant_num}'")
            return

        grant = Grant(
            funder=funder,
            grant_number=grant_num,
            purl=f"{self.purl_prefix}/{funder}/{grant_num}",
        )
        if grant.reference in this_field:
            self.warnings.append(f"{field_name} duplicate")
            return

        this_field[grant.reference] = grant
        if grant.reference not in self._seen:
            self._seen.add(grant.reference)
            self.grants.append(grant)


def extract_grants(
    relation_texts: Iterable[str],
    grantnumber_texts: Iterable[str],
    funders: Iterable[str],
    purl_prefix: str,
) -> GrantInfo:
    """Derive the list of grants for an item, with warnings.

    Both fields are processed independently; the merged list holds each
    (funder, grant number) once, in first-seen order. A warning is added if
    the two fields yield different grants.
    """
    collector = _GrantCollector(funders, purl_prefix)
    relation_re = purl_regex(purl_prefix)

    from_relation: dict[str, Grant] = {}
    for text in relation_texts:
        m = relation_re.match((text or "").strip())
        if m:
            collector.add(m.group(1), m.group(2), RELATION_FIELD, from_relation)
        else:
            collector.warnings.append(f"{RELATION_FIELD} purl format")

    from_grantnumber: dict[str, Grant] = {}
    for text in grantnumber_texts:
        m = _FUNDER_GRANTNUM_RE.match((text or "").strip())
        if m:
            collector.add(m.group(1), m.group(2).strip(), GRANTNUMBER_FIELD, from_grantnumber)
        else:
            collector.warnings.append(f"{GRANTNUMBER_FIELD} format")

    if from_relation.keys() != from_grantnumber.keys():
        collector.warnings.append(f"{RELATION_FIELD}/{GRANTNUMBER_FIELD} grants differ")

    if collector.warnings:
        logger.warning("Grant warnings: %s", "; ".join(collector.warnings))
    return GrantInfo(grants=collector.grants, warnings=collector.warnings)
