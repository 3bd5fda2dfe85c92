import csv
import logging
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest
from lxml import etree as ET

from py_export_dspace.exceptions import (
    ItemStatusError,
    RunSetupError,
    UnexpectedRowCountError,
)
from py_export_dspace.exporter import (
    ItemExporter,
    detect_open_access,
    load_item_ids,
    warn_if_dirs_not_empty,
)
from py_export_dspace.matching.pure_records import PureRecordStore
from py_export_dspace.matching.strategies import DoiMatcher
from py_export_dspace.models.item import ItemRecord
from py_export_dspace.package import package_path
from py_export_dspace.sources.base import BaseItemSource
from py_export_dspace.writers.csv_report import CSV_HEADER

from conftest import REFERENCE_DATE, make_package, write_pure_record

pytestmark = pytest.mark.unit

BITSTREAMS = (
    "501^77^0^^false^1^1024^12345678901234567890^paper.pdf^Author version^application/pdf"
    "||502^78^0^2099-01-01^false^2^2048^22345678901234567890^data.csv^Dataset^text/csv"
)

PACKAGE_FIELDS = [
    ("title", None, "A study"),
    ("publisher", None, "Springer"),
    ("description", None, "Open access under CC BY-NC 4.0"),
    ("rights", "license", "CC-BY-NC"),
    ("relation", None, "http://purl.org/au-research/grants/arc/DP1"),
    ("relation", "grantnumber", "ARC/DP1"),
    ("identifier", "doi", "https://doi.org/10.1000/xyz"),
]


class FakeItemSource(BaseItemSource):
    def __init__(self, items):
        self.items = {item.item_id: item for item in items}

    @contextmanager
    def get_conn(self):
        yield MagicMock()

    def fetch_item(self, conn, item_id):
        if item_id not in self.items:
            raise UnexpectedRowCountError(item_id, 0)
        return self.items[item_id]


def _item(item_id, **overrides):
    fields = dict(
        item_id=item_id,
        handle=f"123456789/{item_id}",
        url=f"https://dspace.example.com/xmlui/handle/123456789/{item_id}",
        in_archive=True,
        withdrawn=False,
        discoverable=True,
        item_policies=f"{item_id}^10^0^",
        bundle_policy="300^20^0^^ORIGINAL",
        bitstream_policies=BITSTREAMS,
    )
    fields.update(overrides)
    return ItemRecord(**fields)


def _cache_package(item, settings, fields=PACKAGE_FIELDS):
    fpath = package_path(item, settings)
    fpath.parent.mkdir(parents=True, exist_ok=True)
    fpath.write_text(make_package(fields), encoding="utf-8")


@pytest.fixture
def make_exporter(settings):
    write_pure_record(settings, "100", uuid="u-1", external_id="100")

    def _make(items, **kwargs):
        for item in items:
            if item.handle:
                _cache_package(item, settings)
        matcher = DoiMatcher({"10.1000/xyz": ["100"]}, PureRecordStore(settings))
        return ItemExporter(
            settings=settings,
            source=FakeItemSource(items),
            matcher=matcher,
            reference_date=REFERENCE_DATE,
            **kwargs,
        )

    return _make


def _read_csv(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def test_export_item_enriches_item(make_exporter):
    exporter = make_exporter([_item(1)])

    export, package = exporter.export_item(None, 1)

    assert export.omit is False
    assert export.item_licence.code == "CC-BY-NC"
    assert export.publisher_flag is None
    assert [g.reference for g in export.grant_info.grants] == ["ARC/DP1"]
    assert export.grant_info.warnings == []
    assert export.doi_clean.ids == ["10.1000/xyz"]
    assert export.match_result.sorted_rmids() == ["100"]
    assert [bs.filename for bs in export.bitstreams] == ["paper.pdf", "data.csv"]
    assert export.bitstreams[1].embargo.has_embargo is True
    assert export.bitstream_licences["501"].draft == "CC-BY-NC"
    assert export.bitstream_licences["501"].authority == "CC-BY-NC"
    assert package.getroot().tag == "{http://www.loc.gov/METS/}mets"


def test_bitstreams_ignored_without_bundle(make_exporter):
    exporter = make_exporter([_item(1, bundle_policy=None)])
    export, _ = exporter.export_item(None, 1)
    assert export.bundle_policy is None
    assert export.bitstreams == []


def test_will_omit(make_exporter):
    exporter = make_exporter([], omit_ids=[7])

    assert exporter.will_omit(_item(1)) is False
    assert exporter.will_omit(_item(7)) is True
    assert exporter.will_omit(_item(1, withdrawn=True)) is True
    assert exporter.will_omit(_item(1, discoverable=False)) is True


def test_will_omit_null_status_is_item_error(make_exporter):
    exporter = make_exporter([])
    with pytest.raises(ItemStatusError, match="in_archive"):
        exporter.will_omit(_item(1, in_archive=None))


def test_process_batch_writes_outputs_and_continues_after_failure(make_exporter, settings):
    items = [
        _item(1),
        _item(2, item_policies="2^10^11^"),  # unexpected action id
        _item(3, withdrawn=True),
        _item(4, handle=None, url=None),
    ]
    exporter = make_exporter(items)

    summary = exporter.process_batch([(1, None), (2, "bad policy"), (3, None), (4, None), (5, None)])

    assert summary.kept == 1
    assert summary.omitted == 1
    assert summary.failed_item_ids == [2, 4, 5]
    assert summary.finished_at_utc >= summary.started_at_utc

    assert (settings.out_dir / "123456789_1.d" / "out_123456789_1.xml").is_file()
    assert (settings.out_omit_dir / "123456789_3.d" / "out_123456789_3.xml").is_file()
    assert not (settings.out_dir / "123456789_2.d").exists()
    assert not (settings.out_omit_dir / "123456789_2.d").exists()

    kept_rows = _read_csv(settings.csv_out)
    assert kept_rows[0] == CSV_HEADER
    assert [row[0] for row in kept_rows[1:]] == ["1", "1"]
    assert [row[4] for row in kept_rows[1:]] == ["paper.pdf", "data.csv"]

    omit_rows = _read_csv(settings.csv_out_omit)
    assert omit_rows[0] == CSV_HEADER
    assert {row[0] for row in omit_rows[1:]} == {"3"}


def test_process_batch_missing_pure_record_fails_only_that_item(make_exporter, settings):
    items = [_item(1), _item(2)]
    exporter = make_exporter(items)
    # Item 2 has a DOI which leads to an rmid without a lookup file.
    _cache_package(items[1], settings, PACKAGE_FIELDS[:-1] + [("identifier", "doi", "10.1/none")])
    exporter.matcher.rmids_by_doi["10.1/none"] = ["404"]

    summary = exporter.process_batch([(1, None), (2, None)])

    assert summary.kept == 1
    assert summary.failed_item_ids == [2]


def test_process_batch_strips_control_characters_from_record(make_exporter, settings):
    bitstreams = BITSTREAMS.replace("Author version", "Author\x0cversion").replace(
        "paper.pdf", "pa\x00per.pdf"
    )
    exporter = make_exporter([_item(1, bitstream_policies=bitstreams), _item(2)])

    summary = exporter.process_batch([(1, None), (2, None)])

    assert summary.kept == 2
    assert summary.failed_item_ids == []
    record = ET.parse(str(settings.out_dir / "123456789_1.d" / "out_123456789_1.xml"))
    first = record.find("custom/bundle_embargo/bitstream_embargo")
    assert first.get("fdesc") == "Authorversion"
    assert first.get("fname") == "paper.pdf"
    assert first.get("docversion") == "Author version"


def test_process_batch_unwritable_record_fails_only_that_item(make_exporter, settings, caplog):
    exporter = make_exporter([_item(1), _item(2)])
    # A plain file where item 1's output directory should go.
    settings.out_dir.mkdir(parents=True)
    (settings.out_dir / "123456789_1.d").write_text("in the way")

    with caplog.at_level(logging.WARNING):
        summary = exporter.process_batch([(1, None), (2, None)])

    assert summary.kept == 1
    assert summary.failed_item_ids == [1]
    assert "Cannot write XML record" in caplog.text
    assert "Failed item ids: [1]" in caplog.text
    kept_rows = _read_csv(settings.csv_out)
    assert {row[0] for row in kept_rows[1:]} == {"2"}


def test_process_batch_writes_csv_as_utf8(make_exporter, settings):
    item = _item(1)
    exporter = make_exporter([item])
    _cache_package(item, settings, [("title", None, "Études sur l’été")] + PACKAGE_FIELDS[1:])

    exporter.process_batch([(1, None)])

    kept_rows = _read_csv(settings.csv_out)
    assert kept_rows[1][CSV_HEADER.index("dc_title")] == "Études sur l’été"


def test_load_item_ids(tmp_path):
    path = tmp_path / "ids.txt"
    path.write_text("# header\n12\n\n 34 , withdrawn item\n")
    assert load_item_ids(path) == [(12, None), (34, "withdrawn item")]


def test_load_item_ids_errors(tmp_path):
    with pytest.raises(RunSetupError):
        load_item_ids(tmp_path / "missing.txt")

    path = tmp_path / "ids.txt"
    path.write_text("12\nabc\n")
    with pytest.raises(RunSetupError, match=":2:"):
        load_item_ids(path)


def test_detect_open_access():
    assert detect_open_access(None, "repo.example.com") is False
    assert detect_open_access(r"^oa-", "oa-repo.example.com") is True
    assert detect_open_access(r"^oa-", "repo.example.com") is False


def test_warn_if_dirs_not_empty(tmp_path, caplog):
    full = tmp_path / "full"
    full.mkdir()
    (full / "a.xml").write_text("x")
    empty = tmp_path / "empty"
    empty.mkdir()

    warn_if_dirs_not_empty([full, empty, tmp_path / "missing"])

    assert "full is not empty (contains 1 files/dirs)" in caplog.text
    assert "empty is not empty" not in caplog.text
