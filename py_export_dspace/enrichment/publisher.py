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
"""Detects the restricted publisher (Elsevier by default) in item metadata."""

import re
from collections.abc import Iterable

from ..models.enrichment import PublisherFlag


def compile_publisher_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def detect_restricted_publisher(
    publisher_texts: Iterable[str],
    description_texts: Iterable[str],
    rights_texts: Iterable[str],
    pattern: re.Pattern,
) -> PublisherFlag | None:
    """Look for the restricted publisher in dc.publisher, then dc.description/dc.rights.

    A match in dc.publisher confirms the publisher. A match only in the
    description or rights text means it might be the publisher.
    """
    if any(text and pattern.search(text) for text in publisher_texts):
        return PublisherFlag.CONFIRMED

    for text in [*description_texts, *rights_texts]:
        if text and pattern.search(text):
            return PublisherFlag.MAYBE
    return None


def publisher_flag_label(flag: PublisherFlag | None, name: str) -> str:
    """Render the flag for the review report: 'Elsevier', '[Elsevier???]' or ''."""
    if flag == PublisherFlag.CONFIRMED:
        return name
    if flag == PublisherFlag.MAYBE:
        return f"[{name}???]"
    return ""
