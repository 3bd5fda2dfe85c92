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
"""Embargo evaluation for read policies."""

from datetime import date

from .models.item import EmbargoStatus


def parse_policy_date(text: str | None) -> date | None:
    """Parse a policy start date ('YYYY-MM-DD'); empty text means no date."""
    if text is None or not text.strip():
        return None
    return date.fromisoformat(text.strip())


def evaluate_embargo(start_date: date | None, reference_date: date) -> EmbargoStatus:
    """Compute the embargo status of a policy.

    A policy is embargoed only when its start date lies strictly after the
    reference date; the lift date is then the start date. A start date on
    or before the reference date means the embargo has already lifted.

    Args:
        start_date: The policy's start date, or None if it has none.
        reference_date: The date the export run began.

    Returns:
        The embargo status.
    """
    if start_date is not None and start_date > reference_date:
        return EmbargoStatus(has_embargo=True, lift_date=start_date)
    return EmbargoStatus(has_embargo=False)
