from datetime import datetime

from pydantic import BaseModel, Field

from py_export_dspace.models.enrichment import (
    BitstreamLicence,
    CleanIds,
    DublinCoreFields,
    GrantInfo,
    LicenceMatch,
    PublisherFlag,
)
from py_export_dspace.models.item import (
    BitstreamPolicy,
    BundlePolicy,
    ItemPolicy,
    ItemRecord,
)
from py_export_dspace.models.match import MatchResult


class ItemExport(BaseModel):
    """Everything derived for one item, ready for the XML and CSV writers."""

    item: ItemRecord
    item_policies: list[ItemPolicy] = []
    bundle_policy: BundlePolicy | None = None
    bitstreams: list[BitstreamPolicy] = []
    is_open_access: bool = False

    dc: DublinCoreFields = DublinCoreFields()
    item_licence: LicenceMatch | None = None
    publisher_flag: PublisherFlag | None = None
    grant_info: GrantInfo = GrantInfo()
    bitstream_licences: dict[str, BitstreamLicence] = {}
    doi_clean: CleanIds = CleanIds()
    rmid_clean: CleanIds = CleanIds()
    match_result: MatchResult

    omit: bool = False

    @property
    def undeleted_bitstreams(self) -> list[BitstreamPolicy]:
        return [bs for bs in self.bitstreams if not bs.deleted]

    @property
    def num_deleted(self) -> int:
        return len(self.bitstreams) - len(self.undeleted_bitstreams)


class BatchSummary(BaseModel):
    started_at_utc: datetime
    finished_at_utc: datetime | None = None
    kept: int = 0
    omitted: int = 0
    failed_item_ids: list[int] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_item_ids)
