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
"""Exception hierarchy for the exporter.

`RunSetupError` aborts the whole batch. `ItemExportError` and its
subclasses abort only the item being processed; the batch continues.
"""


class ExportError(Exception):
    """Base class for all exporter errors."""


class RunSetupError(ExportError):
    """The run cannot start (bad configuration or missing lookup files)."""


class ItemExportError(ExportError):
    """Processing of a single item cannot continue."""


class UnexpectedRowCountError(ItemExportError):
    """The item query did not return exactly one row."""

    def __init__(self, item_id: int, row_count: int) -> None:
        self.item_id = item_id
        self.row_count = row_count
        super().__init__(
            f"Expected 1 but got {row_count} rows for item_id {item_id}.",
        )


class MalformedPolicyError(ItemExportError):
    """A packed policy entry does not have the expected number of subfields."""


class InvalidPolicyActionError(ItemExportError):
    """A policy uses an action id outside the allowed set."""

    def __init__(
        self, entity: str, resource_id: str, action_id: str, allowed: list[str],
    ) -> None:
        self.entity = entity
        self.resource_id = resource_id
        self.action_id = action_id
        super().__init__(
            f"For {entity}_id {resource_id}, expected action_id of "
            f"{','.join(allowed)} but got '{action_id}'.",
        )


class HandleNotFoundError(ItemExportError):
    """An output path was requested for an item without a handle."""


class ItemStatusError(ItemExportError):
    """One of the item status flags needed for classification is NULL."""


class PackageError(ItemExportError):
    """The DSpace package could not be produced or read."""


class PureRecordError(ItemExportError):
    """A Pure lookup file is missing or unreadable."""


class RecordWriteError(ItemExportError):
    """An item's XML record or CSV rows could not be written."""
