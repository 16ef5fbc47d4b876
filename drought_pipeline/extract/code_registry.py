import logging
from datetime import date, datetime
from typing import Dict, List, Mapping, Optional

from pydantic import ValidationError

from drought_pipeline.extract.base_extractor import BaseExtractor
from drought_pipeline.schemas.raw_models import RegionCode, RegionWeighting, WeightEntry
from drought_pipeline.utils.errors import ReconstructionError

logger = logging.getLogger(__name__)

CODES_COLLECTION = "drought_codes"
WEIGHTS_COLLECTION = "thiessen_weights"

# ASOS 174 (Suncheon) only reports from 2011-04-01
DEFAULT_EFFECTIVE_FROM: Dict[str, date] = {"174": date(2011, 4, 1)}


def split_obs_codes(raw: Optional[str]) -> List[str]:
    """'1001210_1001310' -> ['1001210', '1001310']"""
    if not raw:
        return []
    return [code.strip() for code in str(raw).split("_") if code.strip()]


class CodeRegistry:
    """
    Reference data: which observation codes feed which region, and the
    Thiessen station weights of every region.
    """

    def __init__(
        self,
        extractor: BaseExtractor,
        default_effective_from: Optional[Mapping[str, date]] = None
    ):
        self.extractor = extractor
        self.default_effective_from = dict(
            DEFAULT_EFFECTIVE_FROM if default_effective_from is None else default_effective_from
        )

    def region_codes(self, sort: str) -> List[RegionCode]:
        """Regions of one series sort (Dam, Ar, FR, SM), in sgg_cd order."""
        docs = self.extractor.fetch_batch(
            CODES_COLLECTION,
            {"sort": sort},
            {"_id": 0, "sgg_cd": 1, "sort": 1, "obs_cd": 1}
        )
        regions = []
        for doc in docs:
            codes = split_obs_codes(doc.get("obs_cd"))
            if not doc.get("sgg_cd") or not codes:
                logger.warning(f"⚠️ Skipping drought code without region/observation codes: {doc}")
                continue
            regions.append(RegionCode(region_code=str(doc["sgg_cd"]), sort=sort, obs_codes=codes))
        return sorted(regions, key=lambda r: r.region_code)

    def entity_ids(self, sort: str) -> List[str]:
        """Every observation code referenced by a sort, deduplicated."""
        return sorted({code for region in self.region_codes(sort) for code in region.obs_codes})

    def weighting_regions(self) -> List[str]:
        return sorted(str(code) for code in self.extractor.distinct(WEIGHTS_COLLECTION, "sgg_cd"))

    def station_ids(self) -> List[str]:
        return sorted(str(code) for code in self.extractor.distinct(WEIGHTS_COLLECTION, "code"))

    def weighting_for(self, region_code: str) -> RegionWeighting:
        """
        Raises:
            ReconstructionError: when the stored weights do not form a valid table.
        """
        docs = self.extractor.fetch_batch(
            WEIGHTS_COLLECTION,
            {"sgg_cd": region_code},
            {"_id": 0, "code": 1, "ratio": 1, "effective_from": 1}
        )
        entries = []
        try:
            for doc in docs:
                station = str(doc.get("code"))
                effective_from = doc.get("effective_from") or self.default_effective_from.get(station)
                if isinstance(effective_from, datetime):
                    effective_from = effective_from.date()
                entries.append(WeightEntry(
                    entity_id=station,
                    weight=doc.get("ratio"),
                    effective_from=effective_from
                ))
        except ValidationError as e:
            raise ReconstructionError(f"Region {region_code} has a malformed weight entry: {e}")

        return RegionWeighting(region_code=region_code, entries=entries)
