import logging
from datetime import datetime, timezone
from typing import List, Sequence

from pymongo import ASCENDING, UpdateOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from drought_pipeline.schemas.raw_models import ObservationPoint
from drought_pipeline.transform.cleaning import observation_timestamp
from drought_pipeline.utils.errors import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


class RawObservationWriter:
    """
    Upserts collected readings into a raw collection.

    Document layout:
        entity_id, obs_date (UTC-naive midnight), source_hour (None for daily),
        value, observed_at (obs_date + hour, the collection cursor), collected_at
    """

    def __init__(self, db: Database, collection: str):
        self.collection: Collection = db[collection]
        self.collection_name = collection

    def ensure_indexes(self):
        self.collection.create_index(
            [("entity_id", ASCENDING), ("obs_date", ASCENDING), ("source_hour", ASCENDING)],
            unique=True,
            name="uniq_entity_reading"
        )
        self.collection.create_index([("entity_id", ASCENDING), ("observed_at", ASCENDING)])

    def write(self, points: Sequence[ObservationPoint]) -> Result:
        """Ok(number of upserted + modified documents) or Err(PERSISTENCE)."""
        if not points:
            return Ok(0)

        collected_at = datetime.now(timezone.utc)
        operations: List[UpdateOne] = []
        for p in points:
            obs_date = datetime(p.obs_date.year, p.obs_date.month, p.obs_date.day)
            operations.append(UpdateOne(
                {"entity_id": p.entity_id, "obs_date": obs_date, "source_hour": p.source_hour},
                {"$set": {
                    "value": p.value,
                    "observed_at": observation_timestamp(p.obs_date, p.source_hour),
                    "collected_at": collected_at,
                }},
                upsert=True
            ))

        try:
            result = self.collection.bulk_write(operations, ordered=False)
        except PyMongoError as e:
            return Err(ErrorKind.PERSISTENCE, f"upsert into {self.collection_name} failed: {e}")

        written = result.upserted_count + result.modified_count
        logger.info(f"📥 Load [{self.collection_name}]: {written} reading(s) upserted/updated of {len(operations)}")
        return Ok(written)
