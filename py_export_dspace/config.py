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
"""Manages the application's configuration using Pydantic."""

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import RunSetupError

logger = logging.getLogger(__name__)

NAMESPACES = {
    "mets": "http://www.loc.gov/METS/",
    "dim": "http://www.dspace.org/xmlns/dspace/dim",
}


def _dim_xpath(element: str, qualifier: str | None = None) -> str:
    """Build an XPath selecting item-level DIM fields in an AIP package."""
    if qualifier:
        qualifier_test = f"[@qualifier='{qualifier}']"
    else:
        qualifier_test = "[not(@qualifier)]"
    return (
        "//mets:dmdSec//dim:field"
        f"[@mdschema='dc'][@element='{element}']{qualifier_test}"
    )


class MatchStrategy(str, Enum):
    """How DSpace items are matched to Pure research-output records."""

    DOI = "doi"
    RMID = "rmid"


class Settings(BaseSettings):
    """Manages configuration for the exporter.

    Reads settings from environment variables with the prefix 'DSPACE_EXPORT_'.
    Values may also be supplied from a YAML file (see `load_config`).
    """

    model_config = SettingsConfigDict(env_prefix="DSPACE_EXPORT_")

    # Database connection settings
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "dspace"
    # S105: Hardcoded password is used for local development.
    # In production, this should be set via environment variables.
    db_password: str = "dspace"
    db_name: str = "dspace"

    # Database multi-value field & subfield delimiters.
    # Combined usage: "subfldA1^subfldA2^subfldA3||subfldB1^subfldB2^subfldB3"
    multivalue_delim: str = "||"
    subfield_delim: str = "^"
    csv_multivalue_delim: str = "||"

    results_dir: Path = Path("results")
    package_dir: Path = Path("results/aip")
    package_prefix: str = "aip_"
    out_dir: Path = Path("results/out")
    out_omit_dir: Path = Path("results/out_omit")
    out_prefix: str = "out_"
    csv_out: Path = Path("results/export_items.csv")
    csv_out_omit: Path = Path("results/export_items_omit.csv")

    assetstore_dir: str = "/file/path/to/dspace/assetstore/"
    assetstore_base_url: str = "https://dspace.example.com/assetstore/"
    handle_url_prefix: str = "https://dspace.example.com/xmlui/handle/"

    packager_command: str = (
        "/file/path/to/dspace/bin/dspace packager --disseminate --type AIP "
        "--option manifestOnly=true --eperson admin_user@example.com"
    )
    force_get_item_package: bool = False

    # Pure matching
    match_strategy: MatchStrategy = MatchStrategy.DOI
    doi_lookup_file: Path = Path("etc/rmid_doi.psv")
    rmid_lookup_file: Path = Path("etc/rmids.psv")
    lookup_file_delim: str = "|"
    pure_records_dir: Path = Path("results/pure")
    pure_record_prefix: str = "pureIdsByRmid_"
    pure_record_ext: str = "xml"
    pure_record_dir_width: int = 6
    pure_xpath_doi: str = "electronicVersions/electronicVersion/doi"
    pure_xpath_ext_id: str = "info/additionalExternalIds/id"
    pure_xpath_uuid: str = "info/previousUuids/previousUuid"
    pure_xpath_portal: str = "info/portalUrl"

    # Pure REST API, used only to populate the lookup files
    pure_api_url: str = "https://my-pure-server/ws/api/514/research-outputs"
    pure_api_key: str = ""
    pure_api_fields: str = (
        "title,personAssociations.personAssociation,"
        "electronicVersions.electronicVersion.*,info.*"
    )

    # Package (AIP) metadata locations
    namespaces: dict[str, str] = NAMESPACES
    dc_xpaths: dict[str, str] = {
        "description": _dim_xpath("description"),
        "rights": _dim_xpath("rights"),
        "license": _dim_xpath("rights", "license"),
        "publisher": _dim_xpath("publisher"),
        "relation": _dim_xpath("relation"),
        "grantnumber": _dim_xpath("relation", "grantnumber"),
        "title": _dim_xpath("title"),
        "doi": _dim_xpath("identifier", "doi"),
        "rmid": _dim_xpath("identifier", "rmid"),
    }

    # An item is kept only if every status flag has the value given here.
    keep_status: dict[str, bool] = {
        "in_archive": True,
        "withdrawn": False,
        "discoverable": True,
    }

    funders: list[str] = ["ARC", "NHMRC"]
    grant_purl_prefix: str = "http://purl.org/au-research/grants"

    # Order matters: most restrictive variants must precede their parents.
    licence_keys: list[str] = [
        "cc_by_nc_nd",
        "cc_by_nc_sa",
        "cc_by_nc",
        "cc_by_nd",
        "cc_by_sa",
        "cc0",
        "cc_by",
    ]
    restricted_publisher_pattern: str = r"\belsevier\b"
    restricted_publisher_name: str = "Elsevier"

    # Bitstreams are flagged open access when the host name matches.
    open_access_host_pattern: str | None = None

    @computed_field
    @property
    def db_connection_string(self) -> str:
        """Construct the libpq connection string from individual settings."""
        return (
            f"host='{self.db_host}' port='{self.db_port}' "
            f"user='{self.db_user}' password='{self.db_password}' "
            f"dbname='{self.db_name}'"
        )


def load_config(config_file: str | Path | None) -> dict[str, Any]:
    """Loads configuration values from a YAML file.

    A missing file is logged and ignored; a file that is not a YAML mapping
    is a setup error.
    """
    if not config_file:
        return {}
    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning("Config file not found: %s", config_file)
        return {}

    if config is None:
        return {}
    if not isinstance(config, dict):
        msg = f"Config file {config_file} must contain a YAML mapping."
        raise RunSetupError(msg)
    return config
