from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import psycopg
from jinja2 import Environment, FileSystemLoader
from psycopg.rows import dict_row

from py_export_dspace.config import Settings
from py_export_dspace.decoder import DUMMY_ID
from py_export_dspace.exceptions import UnexpectedRowCountError
from py_export_dspace.models.item import ItemRecord
from py_export_dspace.sources.base import BaseItemSource

SQL_DIR = Path(__file__).resolve().parent.parent / "sql"

# handle.resource_type_id / resourcepolicy.resource_type_id values
RESOURCE_TYPE_IDS = {
    "bitstream": 0,
    "bundle": 1,
    "item": 2,
    "collection": 3,
    "community": 4,
}

# epersongroup_id of the Anonymous (public) group
PUBLIC_GROUP_ID = 0

BUNDLE_TITLE = "ORIGINAL"


class PostgresItemSource(BaseItemSource):
    """Reads DSpace 5.x items from PostgreSQL.

    The item query is a Jinja2 template (``sql/get_item.sql``) rendered once
    with the DSpace constants and delimiters; the item id is passed as a
    bound parameter on each execution.
    """

    def __init__(self, dsn: str, settings: Settings):
        """Initializes the source with connection details.

        Args:
            dsn: The connection string for the DSpace PostgreSQL database.
            settings: Supplies the delimiters and the handle URL prefix.
        """
        self.dsn = dsn
        self.settings = settings
        self.jinja_env = Environment(
            loader=FileSystemLoader(SQL_DIR),
            autoescape=False,  # SQL is not HTML
        )
        self.item_sql = self.render_item_sql()

    def render_item_sql(self) -> str:
        template = self.jinja_env.get_template("get_item.sql")
        return template.render(
            resource_type_ids=RESOURCE_TYPE_IDS,
            public_group_id=PUBLIC_GROUP_ID,
            dummy_id=DUMMY_ID,
            bundle_title=BUNDLE_TITLE,
            multivalue_delim=self.settings.multivalue_delim,
            subfield_delim=self.settings.subfield_delim,
        )

    @contextmanager
    def get_conn(self) -> Iterator[psycopg.Connection]:
        """Opens a read-only connection for the batch, closed on exit."""
        with psycopg.connect(self.dsn, row_factory=dict_row) as conn:
            conn.read_only = True
            yield conn

    def fetch_item(self, conn: psycopg.Connection, item_id: int) -> ItemRecord:
        with conn.cursor() as cur:
            cur.execute(self.item_sql, {"item_id": item_id})
            rows = cur.fetchall()

        if len(rows) != 1:
            raise UnexpectedRowCountError(item_id, len(rows))
        return self.row_to_item(rows[0])

    def row_to_item(self, row: dict[str, Any]) -> ItemRecord:
        handle = row["item_hdl"]
        return ItemRecord(
            item_id=row["item_id"],
            handle=handle,
            url=f"{self.settings.handle_url_prefix}{handle}" if handle else None,
            in_archive=row["in_archive"],
            withdrawn=row["withdrawn"],
            discoverable=row["discoverable"],
            item_policies=row["item_policies"],
            bundle_policy=row["bundle_policy"],
            bitstream_policies=row["bitstream_policies"],
        )
