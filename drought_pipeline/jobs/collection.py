from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, List

from drought_pipeline.config.settings import Settings
from drought_pipeline.extract.code_registry import CodeRegistry
from drought_pipeline.extract.planner import StepUnit
from drought_pipeline.extract.source_adapter import (
    ECOWATER_STORAGE_RATE,
    KMA_ASOS_DAILY,
    SOIL_MOISTURE_DAILY,
    JsonSourceAdapter,
    SourceAdapter,
    WamisSourceAdapter,
)


@dataclass(frozen=True)
class CollectionSource:
    name: str
    raw_collection: str
    step: StepUnit
    default_lookback: timedelta
    build_adapter: Callable[[Settings], SourceAdapter]
    entities: Callable[[CodeRegistry], List[str]]


COLLECTION_SOURCES: Dict[str, CollectionSource] = {
    "dam_hourly": CollectionSource(
        name="dam_hourly",
        raw_collection="raw_dam_hourly",
        step=StepUnit.HOURLY,
        default_lookback=timedelta(days=30),
        build_adapter=lambda cfg: WamisSourceAdapter(
            "dam_hourly", cfg.wamis_base_url, cfg.wamis_api_key, cfg.http_timeout_seconds
        ),
        entities=lambda registry: registry.entity_ids("Dam"),
    ),
    "flow_daily": CollectionSource(
        name="flow_daily",
        raw_collection="raw_flow_daily",
        step=StepUnit.DAILY,
        default_lookback=timedelta(days=365),
        build_adapter=lambda cfg: WamisSourceAdapter(
            "flow_daily", cfg.wamis_base_url, cfg.wamis_api_key, cfg.http_timeout_seconds
        ),
        entities=lambda registry: registry.entity_ids("FR"),
    ),
    "asos_daily": CollectionSource(
        name="asos_daily",
        raw_collection="raw_asos_daily",
        step=StepUnit.DAILY,
        default_lookback=timedelta(days=30),
        build_adapter=lambda cfg: JsonSourceAdapter(
            "kma:asos_daily", KMA_ASOS_DAILY, cfg.kma_base_url, cfg.kma_api_key, cfg.http_timeout_seconds
        ),
        entities=lambda registry: registry.station_ids(),
    ),
    "reservoir_daily": CollectionSource(
        name="reservoir_daily",
        raw_collection="raw_reservoir_daily",
        step=StepUnit.DAILY,
        default_lookback=timedelta(days=7),
        build_adapter=lambda cfg: JsonSourceAdapter(
            "ecowater:storage_rate", ECOWATER_STORAGE_RATE, cfg.ecowater_base_url,
            cfg.ecowater_api_key, cfg.http_timeout_seconds
        ),
        entities=lambda registry: registry.entity_ids("Ar"),
    ),
    "soil_moisture_daily": CollectionSource(
        name="soil_moisture_daily",
        raw_collection="raw_soil_moisture_daily",
        step=StepUnit.DAILY,
        default_lookback=timedelta(days=3),
        build_adapter=lambda cfg: JsonSourceAdapter(
            "soil_moisture", SOIL_MOISTURE_DAILY, cfg.soil_moisture_base_url,
            cfg.soil_moisture_api_key, cfg.http_timeout_seconds
        ),
        entities=lambda registry: registry.entity_ids("SM"),
    ),
}
