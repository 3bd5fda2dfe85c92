from abc import ABC, abstractmethod
from typing import ContextManager, TypeVar

from py_export_dspace.models.item import ItemRecord

ConnType = TypeVar("ConnType")


class BaseItemSource(ABC):
    """Abstract Base Class for the DSpace item source.

    Defines the interface used by the exporter to read items, keeping the
    exporter independent of the database driver.
    """

    @abstractmethod
    def get_conn(self) -> ContextManager[ConnType]:
        """Manages the database connection for the whole batch.

        Should be implemented as a context manager that yields a connection
        object and closes it on exit. A connection failure here is fatal to
        the run.
        """
        ...

    @abstractmethod
    def fetch_item(self, conn: ConnType, item_id: int) -> ItemRecord:
        """Fetches a single item with its packed policy columns.

        Args:
            conn: An active database connection object.
            item_id: The DSpace item id.

        Raises:
            UnexpectedRowCountError: If the query does not return exactly one row.
        """
        ...
