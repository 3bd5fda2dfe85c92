from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EmbargoStatus(BaseModel):
    """Embargo state of one policy relative to the run's reference date."""

    model_config = ConfigDict(frozen=True)

    has_embargo: bool = False
    lift_date: date | None = None


class DocVersion(str, Enum):
    AUTHOR = "author"
    PUBLISHER = "publisher"
    UNKNOWN = "unknown"

    @property
    def verbose(self) -> str:
        return f"{self.value.capitalize()} version"


class ItemRecord(BaseModel):
    """One row of the item query.

    The three policy columns hold packed strings: entries separated by the
    multi-value delimiter, each entry a subfield-delimited tuple.
    """

    model_config = ConfigDict(frozen=True)

    item_id: int = Field(..., description="DSpace item id.")
    handle: str | None = Field(
        default=None, description="Persistent handle, e.g. '123456789/1234'."
    )
    url: str | None = Field(default=None, description="Handle URL of the item.")
    in_archive: bool | None = None
    withdrawn: bool | None = None
    discoverable: bool | None = None
    item_policies: str | None = None
    bundle_policy: str | None = None
    bitstream_policies: str | None = None

    @property
    def handle_part(self) -> str | None:
        """The handle made safe for use in a file name ('111/2222' -> '111_2222')."""
        if not self.handle:
            return None
        return self.handle.replace("/", "_")

    def status(self) -> dict[str, bool | None]:
        return {
            "in_archive": self.in_archive,
            "withdrawn": self.withdrawn,
            "discoverable": self.discoverable,
        }


class ItemPolicy(BaseModel):
    """Public read policy attached to an item."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    policy_id: str
    action_id: str
    start_date: date | None = None
    embargo: EmbargoStatus = EmbargoStatus()


class BundlePolicy(BaseModel):
    """Public read policy attached to the ORIGINAL bundle."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    policy_id: str
    action_id: str
    start_date: date | None = None
    bundle_title: str
    embargo: EmbargoStatus = EmbargoStatus()


class BitstreamPolicy(BaseModel):
    """Public read policy and file details for one bitstream."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    policy_id: str
    action_id: str
    start_date: date | None = None
    deleted: bool
    sequence_id: str
    size_bytes: str
    internal_id: str
    filename: str
    description: str
    mime_type: str | None = None

    # Derived from the fields above
    file_path: str
    file_url: str
    docversion: DocVersion
    embargo: EmbargoStatus = EmbargoStatus()
