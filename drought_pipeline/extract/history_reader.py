import logging
from datetime import date, datetime
from typing import Iterable, Iterator, List, Optional

from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from drought_pipeline.extract.base_extractor import BaseExtractor
from drought_pipeline.extract.source_adapter import SourceAdapter
from drought_pipeline.schemas.raw_models import ObservationPoint
from drought_pipeline.transform.cleaning import clean_observation_doc
from drought_pipeline.utils.errors import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

RAW_PROJECTION = {"_id": 0, "entity_id": 1, "obs_date": 1, "source_hour": 1, "value": 1}


class RawHistoryReader:
    """
    Read side of a raw observation collection (see load.raw_writer for the layout).
    Serves both the collection cursor and the reconstruction history.
    """

    def __init__(self, extractor: BaseExtractor, collection: str):
        self.extractor = extractor
        self.collection = collection

    def get_last_cursor(self, entity_id: str) -> Result:
        """Ok(datetime of the latest persisted reading) or Ok(None) if never collected."""
        try:
            doc = self.extractor.find_latest(self.collection, {"entity_id": entity_id}, "observed_at")
        except PyMongoError as e:
            return Err(ErrorKind.PERSISTENCE, f"cursor lookup failed for {entity_id} in {self.collection}: {e}")
        return Ok(doc["observed_at"] if doc else None)

    def read_history(
        self,
        entity_ids: Iterable[str],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Iterator[ObservationPoint]:
        """
        Streams persisted readings of the given entities, optionally restricted
        to obs_date in [start, end). Raises PyMongoError on database failure.
        """
        query = {"entity_id": {"$in": list(entity_ids)}}
        if start is not None or end is not None:
            query["obs_date"] = {}
            if start is not None:
                query["obs_date"]["$gte"] = start
            if end is not None:
                query["obs_date"]["$lt"] = end

        docs = self.extractor.fetch_batch(
            self.collection,
            query,
            RAW_PROJECTION,
            sort=[("obs_date", ASCENDING), ("source_hour", ASCENDING)]
        )
        for doc in docs:
            point = clean_observation_doc(doc)
            if point is not None:
                yield point

    def distinct_entities(self) -> List[str]:
        return sorted(str(e) for e in self.extractor.distinct(self.collection, "entity_id"))

    def latest_observation_date(self) -> Optional[date]:
        """Most recent obs_date carrying a value, across every entity."""
        doc = self.extractor.find_latest(self.collection, {"value": {"$ne": None}}, "obs_date")
        if not doc:
            return None
        obs_date = doc["obs_date"]
        return obs_date.date() if isinstance(obs_date, datetime) else obs_date


class MongoHistoryAdapter(SourceAdapter):
    """
    Source adapter over already-collected readings. Reconstruction reads
    its input through this, so it shares the adapter contract with the collectors.
    """

    def __init__(self, reader: RawHistoryReader):
        self.reader = reader
        self.name = f"history:{reader.collection}"

    def fetch(self, entity_id: str, start: datetime, end: datetime) -> Result:
        try:
            points: List[ObservationPoint] = list(self.reader.read_history([entity_id], start, end))
        except PyMongoError as e:
            return Err(ErrorKind.PERSISTENCE, f"{self.name} read failed for {entity_id}: {e}")
        return Ok(points)
