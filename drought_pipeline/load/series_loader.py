import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from drought_pipeline.schemas.series_models import DroughtSeriesRow
from drought_pipeline.utils.errors import Err, ErrorKind, Ok, Result

# Configure Logger
logger = logging.getLogger(__name__)

SERIES_COLLECTION = "tb_actualdrought_dam"


class SeriesStore:
    """
    Persistence gateway for reconstructed series.

    `replace_range` is an idempotent 'Delete -> Insert' of one partition
    (e.g. {"series": "dam_rsrt", "sgg_cd": "11110"}). With a session factory
    both steps run in one transaction, so readers never see a half-written region.
    """

    def __init__(
        self,
        db: Database,
        collection: str = SERIES_COLLECTION,
        session_factory: Optional[Callable[[], ClientSession]] = None
    ):
        self.collection: Collection = db[collection]
        self.collection_name = collection
        self.session_factory = session_factory

    def _overwrite(
        self,
        key: Dict[str, Any],
        docs: List[Dict[str, Any]],
        session: Optional[ClientSession] = None
    ) -> int:
        delete_result = self.collection.delete_many(key, session=session)

        inserted_count = 0
        if docs:
            insert_result = self.collection.insert_many(docs, ordered=False, session=session)
            inserted_count = len(insert_result.inserted_ids)

        logger.info(
            f"📥 Load [{self.collection_name}] {key}: "
            f"Deleted {delete_result.deleted_count} stale records | "
            f"Inserted {inserted_count} new records."
        )
        return inserted_count

    def replace_range(self, key: Dict[str, Any], rows: Sequence[DroughtSeriesRow]) -> Result:
        """
        Replaces every row matching `key` with `rows`.

        Returns:
            Ok(inserted count) or Err(PERSISTENCE); on Err the transaction
            (when enabled) has been rolled back.
        """
        docs = [row.model_dump() for row in rows]
        for doc in docs:
            mismatched = {k: v for k, v in key.items() if doc.get(k) != v}
            if mismatched:
                return Err(ErrorKind.PERSISTENCE, f"row outside partition {key}: {mismatched}")

        try:
            if self.session_factory is None:
                return Ok(self._overwrite(key, docs))

            with self.session_factory() as session:
                inserted = session.with_transaction(
                    lambda s: self._overwrite(key, docs, session=s)
                )
            return Ok(inserted)

        except PyMongoError as e:
            logger.error(f"❌ Failed to load data into {self.collection_name} for {key}: {e}")
            return Err(ErrorKind.PERSISTENCE, f"replace_range {key} failed: {e}")
