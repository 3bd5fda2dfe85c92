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
"""Strategies for matching a DSpace item to Pure research-output records."""

import abc
import logging
from collections.abc import Mapping

from ..config import MatchStrategy, Settings
from ..exceptions import RunSetupError
from ..models.match import Match, MatchResult
from .identifiers import load_known_rmids, load_rmids_by_doi
from .pure_records import PureRecordStore

logger = logging.getLogger(__name__)


def dedup_matches(matches: dict[str, Match]) -> dict[str, Match]:
    """Keep at most one matching rmid per Pure record (UUID).

    A Pure record may carry more than one rmid: its externalId attribute and
    any additional external ids. If several of the item's rmids resolve to
    the same record, keep the one equal to the record's externalId, or else
    the first one found, and drop the others.
    """
    if len(matches) < 2:
        return matches

    rmids_by_uuid: dict[str | None, list[str]] = {}
    for rmid, match in matches.items():
        rmids_by_uuid.setdefault(match.record.uuid, []).append(rmid)

    discarded: set[str] = set()
    for uuid, rmids in rmids_by_uuid.items():
        if len(rmids) < 2:
            continue
        preferred = [r for r in rmids if r == matches[r].record.external_id]
        rmid_keep = preferred[0] if preferred else rmids[0]
        rmids_to_del = [r for r in rmids if r != rmid_keep]
        logger.info(
            "For uuid %s & rmid %s; deleting matching-rmids %s (%s)",
            uuid,
            rmid_keep,
            rmids_to_del,
            "externalId preferred" if preferred else "no rmid is the externalId; kept first",
        )
        discarded.update(rmids_to_del)

    return {rmid: m for rmid, m in matches.items() if rmid not in discarded}


class Matcher(abc.ABC):
    """Matches cleaned item identifiers to Pure records.

    Subclasses decide which local identifiers (DOIs or rmids) lead to which
    rmids; resolution against the lookup files and de-duplication are shared.
    """

    id_type: str
    name: str

    def __init__(self, store: PureRecordStore) -> None:
        self.store = store

    @abc.abstractmethod
    def candidate_rmids(self, cleaned_ids: list[str]) -> dict[str, list[str]]:
        """Map each candidate rmid to the local identifiers which led to it."""
        raise NotImplementedError

    def match(self, cleaned_ids: list[str]) -> MatchResult:
        matches = {
            rmid: Match(rmid=rmid, record=self.store.get(rmid), matched_ids=ids)
            for rmid, ids in self.candidate_rmids(cleaned_ids).items()
        }
        return MatchResult(
            strategy=self.name, id_type=self.id_type, matches=dedup_matches(matches),
        )


class DoiMatcher(Matcher):
    """Matches item DOIs to rmids using the DOI lookup table."""

    id_type = "doi"
    name = "by_doi"

    def __init__(
        self, rmids_by_doi: Mapping[str, list[str]], store: PureRecordStore,
    ) -> None:
        super().__init__(store)
        self.rmids_by_doi = rmids_by_doi

    def candidate_rmids(self, cleaned_ids: list[str]) -> dict[str, list[str]]:
        by_rmid: dict[str, list[str]] = {}
        for doi in cleaned_ids:
            rmids = self.rmids_by_doi.get(doi)
            if not rmids:
                continue
            logger.debug("DOI %s matches rmids %s", doi, rmids)
            for rmid in rmids:
                by_rmid.setdefault(rmid, []).append(doi)
        return by_rmid


class DirectMatcher(Matcher):
    """Matches item rmids that are known to Pure."""

    id_type = "rmid"
    name = "by_rmid"

    def __init__(self, known_rmids: set[str], store: PureRecordStore) -> None:
        super().__init__(store)
        self.known_rmids = known_rmids

    def candidate_rmids(self, cleaned_ids: list[str]) -> dict[str, list[str]]:
        by_rmid = {}
        for rmid in cleaned_ids:
            if rmid in self.known_rmids:
                logger.debug("rmid %s is known", rmid)
                by_rmid[rmid] = [rmid]
        return by_rmid


def build_matcher(settings: Settings) -> Matcher:
    """Create the configured matcher, loading its lookup table once for the run."""
    store = PureRecordStore(settings)
    logger.info("How to match: %s", settings.match_strategy.value)
    if settings.match_strategy == MatchStrategy.DOI:
        return DoiMatcher(
            load_rmids_by_doi(settings.doi_lookup_file, settings.lookup_file_delim), store,
        )
    if settings.match_strategy == MatchStrategy.RMID:
        return DirectMatcher(
            load_known_rmids(settings.rmid_lookup_file, settings.lookup_file_delim), store,
        )
    msg = f"Unknown match strategy {settings.match_strategy!r}."
    raise RunSetupError(msg)
