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
"""Derives a Creative Commons licence code from free-text metadata."""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from ..models.enrichment import LicenceMatch, PublisherFlag
from ..models.item import DocVersion

logger = logging.getLogger(__name__)

IN_COPYRIGHT = "In Copyright"

# Separators tolerated between abbreviation tokens, e.g. "CC BY-NC", "CCBY\nNC".
_TOKEN_SEP = r"[\s\-]*"
# Whitespace tolerated around URL path separators.
_URL_SEP = r"\s*/\s*"


@dataclass(frozen=True)
class LicenceRule:
    """One entry of the ordered licence rule list."""

    key: str
    code: str
    abbr_regex: re.Pattern
    url_regex: re.Pattern

    def match(self, text: str) -> str | None:
        """Return 'abbreviation' or 'url' if this rule matches `text`."""
        if self.abbr_regex.search(text):
            return "abbreviation"
        if self.url_regex.search(text):
            return "url"
        return None


def licence_code(key: str) -> str:
    """'cc_by_nc' -> 'CC-BY-NC'."""
    return key.upper().replace("_", "-")


def _abbr_regex(key: str) -> re.Pattern:
    tokens = key.split("_")
    if tokens == ["cc0"]:
        tokens = ["cc", "0"]
    body = _TOKEN_SEP.join(re.escape(t) for t in tokens)
    return re.compile(rf"(?<![a-z]){body}(?![a-z0-9])", re.IGNORECASE)


def _url_regex(key: str) -> re.Pattern:
    if key == "cc0":
        path = ["publicdomain", "zero"]
    else:
        slug = "-".join(key.split("_")[1:])
        path = ["licenses", slug]
    body = _URL_SEP.join(re.escape(p) for p in path)
    return re.compile(
        rf"creativecommons\.org{_URL_SEP}{body}{_URL_SEP}", re.IGNORECASE,
    )


def build_licence_rules(keys: Iterable[str]) -> list[LicenceRule]:
    """Build the ordered licence rules from licence keys such as 'cc_by_nc'.

    The order of `keys` is kept as given: a more restrictive licence must be
    listed before the licence it extends (e.g. 'cc_by_nc' before 'cc_by'),
    otherwise its text would be classified as the parent licence.
    """
    return [
        LicenceRule(
            key=key,
            code=licence_code(key),
            abbr_regex=_abbr_regex(key),
            url_regex=_url_regex(key),
        )
        for key in keys
    ]


def expected_authority_labels(rules: Iterable[LicenceRule]) -> set[str]:
    """Labels allowed in the licence authority field."""
    return {rule.code for rule in rules} | {IN_COPYRIGHT}


def extract_licence(
    description_texts: Iterable[str],
    rights_texts: Iterable[str],
    rules: list[LicenceRule],
) -> LicenceMatch | None:
    """Find the licence stated in dc.description or dc.rights.

    Each candidate text, in order, is tested against every rule in order; the
    first rule that matches the first matching text wins.
    """
    for text in [*description_texts, *rights_texts]:
        if not text:
            continue
        for rule in rules:
            matched_by = rule.match(text)
            if matched_by:
                return LicenceMatch(code=rule.code, rule=rule.key, matched_by=matched_by)
    return None


def extract_licence_from_authority(
    licence_texts: list[str], expected: set[str],
) -> str | None:
    """Return the licence from the licence authority field, if present.

    The authority value is trusted even when it is not one of the expected
    labels; such values are only logged.
    """
    if not licence_texts:
        logger.warning("No licence in the licence authority field.")
        return None
    licence = licence_texts[0]
    if licence not in expected:
        logger.warning("Unexpected licence '%s' in the licence authority field.", licence)
    return licence


def fallback_licence(
    item_licence: str | None,
    docversion: DocVersion,
    publisher_flag: PublisherFlag | None,
) -> str | None:
    """Licence of a bitstream when no licence is known at the item level.

    An author version not published by the restricted publisher is
    'In Copyright'; otherwise no licence can be determined.
    """
    if item_licence:
        return item_licence
    if docversion == DocVersion.AUTHOR and publisher_flag is None:
        return IN_COPYRIGHT
    return None
