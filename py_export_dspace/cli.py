import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

import psycopg
import typer
from pydantic import ValidationError

from py_export_dspace.config import MatchStrategy, Settings, load_config
from py_export_dspace.exceptions import RunSetupError
from py_export_dspace.exporter import ItemExporter, detect_open_access, load_item_ids
from py_export_dspace.matching.identifiers import load_known_rmids
from py_export_dspace.matching.strategies import build_matcher
from py_export_dspace.pure_client import PureClient
from py_export_dspace.sources.postgres import PostgresItemSource

# Log to stderr, away from the XML and CSV output files.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Export enriched DSpace item metadata as XML and CSV.")


def build_settings(config_file: Optional[str], **overrides) -> Settings:
    """Settings from env vars and the YAML file, then non-None CLI overrides."""
    config = load_config(config_file)
    config.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**config)


@app.command()
def export(
    item_ids_file: Path = typer.Argument(..., help="File with one DSpace item id per line."),
    omit_ids_file: Optional[Path] = typer.Option(
        None, help="File with item ids to write to the omitted output."
    ),
    config_file: str = typer.Option("config.yaml", help="Path to YAML config file."),
    strategy: Optional[MatchStrategy] = typer.Option(
        None, help="Match items to Pure records by 'doi' or 'rmid'.", case_sensitive=False
    ),
    force_package: Optional[bool] = typer.Option(
        None,
        "--force-package/--no-force-package",
        help="Re-run the DSpace packager even if the package file exists.",
    ),
    debug: bool = typer.Option(False, help="Enable debug logging."),
):
    """Export the listed items as enriched XML records plus CSV review files."""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)

    start_time = datetime.now(timezone.utc)
    # Fixed for the whole run so all items share the same embargo reference.
    reference_date = date.today()
    logger.info("Exporting items in XML format; embargo reference date %s", reference_date)

    try:
        settings = build_settings(
            config_file, match_strategy=strategy, force_get_item_package=force_package
        )
        item_ids = load_item_ids(item_ids_file)
        omit_ids = [i for i, _ in load_item_ids(omit_ids_file)] if omit_ids_file else []
        matcher = build_matcher(settings)
        is_open_access = detect_open_access(settings.open_access_host_pattern)
        logger.info(
            "%s bitstreams are open access on this host", "ALL" if is_open_access else "NO"
        )

        exporter = ItemExporter(
            settings=settings,
            source=PostgresItemSource(settings.db_connection_string, settings),
            matcher=matcher,
            reference_date=reference_date,
            omit_ids=omit_ids,
            is_open_access=is_open_access,
        )
        exporter.process_batch(item_ids)
    except (RunSetupError, ValidationError, psycopg.OperationalError) as e:
        logger.error("Export failed: %s", e)
        raise typer.Exit(code=1)
    finally:
        duration = datetime.now(timezone.utc) - start_time
        logger.info("Export run finished in %s.", duration)


@app.command("fetch-pure-records")
def fetch_pure_records(
    rmids_file: Path = typer.Argument(..., help="File with one Pure source id (rmid) per line."),
    config_file: str = typer.Option("config.yaml", help="Path to YAML config file."),
):
    """Download Pure research-output records into the local lookup files."""
    try:
        settings = build_settings(config_file)
        rmids = sorted(load_known_rmids(rmids_file, settings.lookup_file_delim))
    except (RunSetupError, ValidationError) as e:
        logger.error("Fetch failed: %s", e)
        raise typer.Exit(code=1)

    written = PureClient(settings).fetch_records(rmids)
    logger.info("Fetched %d of %d Pure records.", len(written), len(rmids))


def main():
    app()


if __name__ == "__main__":
    main()
