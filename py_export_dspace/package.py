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
"""Retrieves DSpace AIP packages and reads their Dublin Core metadata."""

import logging
import os
import shlex
import subprocess
from pathlib import Path

from lxml import etree as ET

from .config import Settings
from .exceptions import HandleNotFoundError, PackageError
from .models.enrichment import DC_KEYS, DublinCoreFields
from .models.item import ItemRecord

logger = logging.getLogger(__name__)


def _handle_part(item: ItemRecord, purpose: str) -> str:
    if not item.handle_part:
        msg = f"Unable to determine file path for '{purpose}' of item_id {item.item_id}. Handle not found."
        raise HandleNotFoundError(msg)
    return item.handle_part


def package_path(item: ItemRecord, settings: Settings) -> Path:
    """Path of the item's AIP package, e.g. results/aip/aip_123456789_1234.xml."""
    fpart = _handle_part(item, "package")
    return settings.package_dir / f"{settings.package_prefix}{fpart}.xml"


def output_path(item: ItemRecord, omit: bool, settings: Settings) -> Path:
    """Path of the enriched XML record under the kept or omitted output directory."""
    fpart = _handle_part(item, "output")
    top = settings.out_omit_dir if omit else settings.out_dir
    return top / f"{fpart}.d" / f"{settings.out_prefix}{fpart}.xml"


class PackageFetcher:
    """Runs the DSpace packager to produce an item's AIP package file."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def fetch(self, item: ItemRecord) -> Path:
        """Produce the package file for `item`, unless a readable copy exists.

        Set `force_get_item_package` to re-run the packager regardless; this
        takes several seconds per item.

        Returns:
            The package file path.

        Raises:
            PackageError: If the packager fails.
        """
        fpath = package_path(item, self.settings)
        if os.access(fpath, os.R_OK) and not self.settings.force_get_item_package:
            logger.debug("Using cached package %s", fpath)
            return fpath

        fpath.parent.mkdir(parents=True, exist_ok=True)
        cmd = shlex.split(self.settings.packager_command) + [
            "--identifier",
            item.handle,
            str(fpath),
        ]
        logger.info("Command: %s", shlex.join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            msg = f"Cannot execute packager command {cmd[0]}: {e}"
            raise PackageError(msg) from e

        if result.returncode != 0:
            msg = (
                f"Return code {result.returncode} when executing command: "
                f"{shlex.join(cmd)}\n{result.stderr}"
            )
            raise PackageError(msg)
        return fpath


def load_package(fpath: Path) -> ET._ElementTree:
    """Parse a package file; a missing or malformed file aborts the item."""
    if not os.access(fpath, os.R_OK):
        msg = f"Cannot find DSpace package file: {fpath}"
        raise PackageError(msg)
    try:
        return ET.parse(str(fpath))
    except ET.XMLSyntaxError as e:
        msg = f"Malformed DSpace package file {fpath}: {e}"
        raise PackageError(msg) from e


def parse_dublin_core(tree: ET._ElementTree, settings: Settings) -> DublinCoreFields:
    """Collect the Dublin Core values used for enrichment and the review report."""
    values: dict[str, list[str]] = {}
    for key in DC_KEYS:
        elements = tree.xpath(settings.dc_xpaths[key], namespaces=settings.namespaces)
        values[key] = [e.text or "" for e in elements]
    return DublinCoreFields(**values)
