from pydantic import BaseModel, ConfigDict, Field


class PureRecord(BaseModel):
    """Identifiers of one Pure research-output record, read from a lookup file."""

    model_config = ConfigDict(frozen=True)

    rec_name: str = Field(
        ..., description="Root element name, e.g. 'contributionToJournal'."
    )
    pure_id: str | None = None
    uuid: str | None = None
    # May differ from the rmid used to find the record, since that rmid
    # may be one of the record's additional external ids.
    external_id: str | None = None
    other_ids: list[tuple[str, str]] = []


class Match(BaseModel):
    rmid: str
    record: PureRecord
    matched_ids: list[str] = Field(
        default_factory=list,
        description="Local DOIs or rmids which led to this record.",
    )


class MatchResult(BaseModel):
    strategy: str = Field(..., description="Matcher name, e.g. 'by_doi'.")
    id_type: str
    matches: dict[str, Match] = {}

    @property
    def num_matches(self) -> int:
        return len(self.matches)

    @property
    def is_unique(self) -> bool:
        return len(self.matches) == 1

    def sorted_rmids(self) -> list[str]:
        return sorted(self.matches)
