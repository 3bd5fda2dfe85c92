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
"""Identifier cleaning and the run-wide identifier lookup tables."""

import csv
import logging
import re
from collections.abc import Iterable
from pathlib import Path

from ..exceptions import RunSetupError
from ..models.enrichment import CleanIds

logger = logging.getLogger(__name__)

ID_TYPES = ("doi", "rmid")

# Removes the URL (or "doi:") prefix so DOIs are compared in non-URL form.
DOI_URL_PREFIX_RE = re.compile(
    r"^\s*(?:https?://(?:dx\.)?doi\.org/|doi:\s*)", re.IGNORECASE,
)


def clean_ids(values: Iterable[str | None], id_type: str) -> CleanIds:
    """Trim, strip DOI URL prefixes, drop empties and de-duplicate identifiers.

    Returns the cleaned identifiers in first-seen order and a message noting
    any de-duplication or more than one identifier.
    """
    if id_type not in ID_TYPES:
        msg = f"Expected id_type to be one of {ID_TYPES} but got '{id_type}'."
        raise ValueError(msg)

    ids = []
    for value in values:
        s = (value or "").strip()
        if id_type == "doi":
            s = DOI_URL_PREFIX_RE.sub("", s).strip()
        if s:
            ids.append(s)

    unique_ids = list(dict.fromkeys(ids))
    messages = []
    label = id_type.upper()
    if len(unique_ids) != len(ids):
        messages.append(f"De-dupped {label}s")
    if len(unique_ids) > 1:
        messages.append(f"More than 1 {label}")
    return CleanIds(ids=unique_ids, message="; ".join(messages))


def _read_lookup_rows(path: Path, delimiter: str) -> Iterable[tuple[int, list[str]]]:
    try:
        with open(path, newline="") as f:
            for line_num, fields in enumerate(csv.reader(f, delimiter=delimiter), 1):
                if fields:
                    yield line_num, fields
    except OSError as e:
        msg = f"Cannot read lookup file {path}: {e}"
        raise RunSetupError(msg) from e


def load_rmids_by_doi(path: Path, delimiter: str = "|") -> dict[str, list[str]]:
    """Load the 'rmid|doi' lookup file into a DOI -> [rmid, ...] mapping."""
    logger.info("Loading rmids by DOI from %s", path)
    rmids_by_doi: dict[str, list[str]] = {}
    for line_num, fields in _read_lookup_rows(path, delimiter):
        if len(fields) != 2:
            logger.error("%s:%d: expecting 2 fields in %s", path, line_num, fields)
            continue
        rmid, doi = fields[0].strip(), fields[1].strip()
        if not rmid or not doi:
            logger.error("%s:%d: one of the rmid/DOI fields is empty in %s", path, line_num, fields)
            continue
        rmids_by_doi.setdefault(doi, []).append(rmid)
    logger.info("Loaded %d DOIs", len(rmids_by_doi))
    return rmids_by_doi


def load_known_rmids(path: Path, delimiter: str = "|") -> set[str]:
    """Load the rmid lookup file (one rmid per line)."""
    logger.info("Loading rmids from %s", path)
    rmids = set()
    for line_num, fields in _read_lookup_rows(path, delimiter):
        if len(fields) != 1:
            logger.error("%s:%d: expecting 1 field in %s", path, line_num, fields)
            continue
        rmid = fields[0].strip()
        if not rmid:
            logger.error("%s:%d: the rmid field is empty", path, line_num)
            continue
        rmids.add(rmid)
    logger.info("Loaded %d rmids", len(rmids))
    return rmids
