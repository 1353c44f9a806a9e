"""Bridge between spreadsheet formulas and the DataSetIQ time-series API."""

from datasetiq_bridge.config import CONNECT_MESSAGE, Settings
from datasetiq_bridge.data import SeriesFetcher, get_store
from datasetiq_bridge.data.errors import DataSetIQError
from datasetiq_bridge.functions import SeriesFunctions

__all__ = [
    "CONNECT_MESSAGE",
    "DataSetIQError",
    "SeriesFetcher",
    "SeriesFunctions",
    "Settings",
    "get_store",
]
