from datetime import date
from pathlib import Path

import pytest

from py_export_dspace.config import Settings
from py_export_dspace.models.enrichment import CleanIds, DublinCoreFields, Grant, GrantInfo
from py_export_dspace.models.export import ItemExport
from py_export_dspace.models.item import BitstreamPolicy, DocVersion, ItemPolicy, ItemRecord
from py_export_dspace.models.match import Match, MatchResult, PureRecord

REFERENCE_DATE = date(2024, 6, 1)

PACKAGE_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<mets xmlns="http://www.loc.gov/METS/" xmlns:dim="http://www.dspace.org/xmlns/dspace/dim"
      ID="DSpace_ITEM_123456789-1234" OBJID="hdl:123456789/1234">
  <dmdSec ID="dmdSec_1">
    <mdWrap MDTYPE="OTHER" OTHERMDTYPE="DIM">
      <xmlData>
        <dim:dim dspaceType="ITEM">
{fields}
        </dim:dim>
      </xmlData>
    </mdWrap>
  </dmdSec>
  <amdSec ID="amd_1">
    <techMD ID="techMD_1">
      <mdWrap MDTYPE="OTHER" OTHERMDTYPE="DIM">
        <xmlData>
          <dim:dim dspaceType="BITSTREAM">
            <dim:field mdschema="dc" element="title">paper.pdf</dim:field>
          </dim:dim>
        </xmlData>
      </mdWrap>
    </techMD>
  </amdSec>
</mets>
"""

PURE_RECORD_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<contributionToJournal pureId="{pure_id}" uuid="{uuid}" externalId="{external_id}" externalIdSource="researchoutputwizard">
  <title>A title</title>
  <electronicVersions>
    <electronicVersion>
      <doi>{doi}</doi>
    </electronicVersion>
  </electronicVersions>
  <info>
    <additionalExternalIds>
      <id idSource="researchoutputwizard">{additional_id}</id>
    </additionalExternalIds>
    <previousUuids>
      <previousUuid>old-{uuid}</previousUuid>
    </previousUuids>
    <portalUrl>https://research.example.com/{uuid}</portalUrl>
  </info>
</contributionToJournal>
"""


def dim_fields(fields: list[tuple[str, str | None, str]]) -> str:
    """Render (element, qualifier, value) triples as dim:field elements."""
    lines = []
    for element, qualifier, value in fields:
        q = f' qualifier="{qualifier}"' if qualifier else ""
        lines.append(
            f'          <dim:field mdschema="dc" element="{element}"{q}>{value}</dim:field>'
        )
    return "\n".join(lines)


def make_package(fields: list[tuple[str, str | None, str]]) -> str:
    return PACKAGE_TEMPLATE.format(fields=dim_fields(fields))


def write_pure_record(
    settings: Settings,
    rmid: str,
    uuid: str,
    external_id: str,
    pure_id: str = "1001",
    doi: str = "10.1000/xyz",
    additional_id: str = "",
) -> Path:
    subdir = settings.pure_records_dir / rmid[: settings.pure_record_dir_width]
    subdir.mkdir(parents=True, exist_ok=True)
    fpath = subdir / f"{settings.pure_record_prefix}{rmid}.{settings.pure_record_ext}"
    fpath.write_text(
        PURE_RECORD_TEMPLATE.format(
            pure_id=pure_id,
            uuid=uuid,
            external_id=external_id,
            doi=doi,
            additional_id=additional_id,
        )
    )
    return fpath


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every output and lookup location under a temporary directory."""
    return Settings(
        results_dir=tmp_path / "results",
        package_dir=tmp_path / "results" / "aip",
        out_dir=tmp_path / "results" / "out",
        out_omit_dir=tmp_path / "results" / "out_omit",
        csv_out=tmp_path / "results" / "export_items.csv",
        csv_out_omit=tmp_path / "results" / "export_items_omit.csv",
        pure_records_dir=tmp_path / "pure",
        doi_lookup_file=tmp_path / "rmid_doi.psv",
        rmid_lookup_file=tmp_path / "rmids.psv",
        assetstore_dir="/dspace/assetstore/",
        assetstore_base_url="https://dspace.example.com/assetstore/",
        handle_url_prefix="https://dspace.example.com/xmlui/handle/",
        packager_command="/dspace/bin/dspace packager --disseminate --type AIP",
    )


def make_bitstream(resource_id: str = "501", **overrides) -> BitstreamPolicy:
    fields = dict(
        resource_id=resource_id,
        policy_id="77",
        action_id="0",
        deleted=False,
        sequence_id="1",
        size_bytes="1024",
        internal_id="12345678901234567890",
        filename=f"file_{resource_id}.pdf",
        description="Author version",
        mime_type="application/pdf",
        file_path="/dspace/assetstore/12/34/56/12345678901234567890",
        file_url="https://dspace.example.com/assetstore/12/34/56/12345678901234567890",
        docversion=DocVersion.AUTHOR,
    )
    fields.update(overrides)
    return BitstreamPolicy(**fields)


def make_export(**overrides) -> ItemExport:
    """An enriched item with one unique DOI match and no bitstreams."""
    record = PureRecord(
        rec_name="contributionToJournal",
        pure_id="1001",
        uuid="u-1",
        external_id="100",
        other_ids=[("doi", "10.1000/xyz")],
    )
    fields = dict(
        item=ItemRecord(
            item_id=42,
            handle="123456789/1234",
            url="https://dspace.example.com/xmlui/handle/123456789/1234",
            in_archive=True,
            withdrawn=False,
            discoverable=True,
        ),
        item_policies=[ItemPolicy(resource_id="42", policy_id="10", action_id="0")],
        dc=DublinCoreFields(
            title=["A study"], publisher=["Elsevier"], description=["d1", "d2"]
        ),
        grant_info=GrantInfo(
            grants=[
                Grant(
                    funder="ARC",
                    grant_number="DP1",
                    purl="http://purl.org/au-research/grants/ARC/DP1",
                )
            ]
        ),
        doi_clean=CleanIds(ids=["10.1000/xyz"]),
        match_result=MatchResult(
            strategy="by_doi",
            id_type="doi",
            matches={"100": Match(rmid="100", record=record, matched_ids=["10.1000/xyz"])},
        ),
    )
    fields.update(overrides)
    return ItemExport(**fields)
