from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DC_KEYS = (
    "description",
    "rights",
    "license",
    "publisher",
    "relation",
    "grantnumber",
    "title",
    "doi",
    "rmid",
)


class DublinCoreFields(BaseModel):
    """Dublin Core values read from the item package.

    Repeated elements keep their document order and duplicates.
    """

    description: list[str] = []
    rights: list[str] = []
    license: list[str] = []
    publisher: list[str] = []
    relation: list[str] = []
    grantnumber: list[str] = []
    title: list[str] = []
    doi: list[str] = []
    rmid: list[str] = []


class LicenceMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Canonical licence code, e.g. 'CC-BY-NC'.")
    rule: str = Field(..., description="Licence key that matched, e.g. 'cc_by_nc'.")
    matched_by: str = Field(..., description="Either 'abbreviation' or 'url'.")


class PublisherFlag(str, Enum):
    CONFIRMED = "confirmed"
    MAYBE = "maybe"


class Grant(BaseModel):
    model_config = ConfigDict(frozen=True)

    funder: str
    grant_number: str
    purl: str

    @property
    def reference(self) -> str:
        return f"{self.funder}/{self.grant_number}"


class GrantInfo(BaseModel):
    grants: list[Grant] = []
    warnings: list[str] = []


class CleanIds(BaseModel):
    """Identifiers after trimming, URL-prefix removal and de-duplication."""

    ids: list[str] = []
    message: str = ""


class BitstreamLicence(BaseModel):
    """Licences derived for one undeleted bitstream."""

    resource_id: str
    draft: str | None = None
    authority: str | None = None
