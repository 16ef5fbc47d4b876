import logging
import time
from datetime import date, datetime, timezone
from typing import Callable, Iterable, List, Optional

from drought_pipeline.config.mongo_client import DroughtMongoClient, mongo_client
from drought_pipeline.config.settings import Settings, settings as default_settings
from drought_pipeline.extract.base_extractor import MongoExtractor
from drought_pipeline.extract.code_registry import CodeRegistry
from drought_pipeline.extract.history_reader import MongoHistoryAdapter, RawHistoryReader
from drought_pipeline.jobs.collection import COLLECTION_SOURCES, CollectionSource
from drought_pipeline.jobs.orchestrator import RunSummary, run_collection, run_reconstruction
from drought_pipeline.jobs.reconstruction import (
    AGAG,
    AR_DAM,
    AREA_RAINFALL,
    DAM_RSRT,
    DISCONTINUED_FACILITY_CODES,
    FLOW_RATE,
    ReconstructionTarget,
    SeriesDefinition,
    SeriesReconstructor,
)
from drought_pipeline.load.csv_writer import extend_discontinued
from drought_pipeline.load.raw_writer import RawObservationWriter
from drought_pipeline.load.series_loader import SeriesStore

logger = logging.getLogger(__name__)

STAGES = ("collect", "reconstruct", "all")


def _aborted(pipeline: str, error: Exception) -> RunSummary:
    summary = RunSummary(pipeline=pipeline, aborted=True, abort_reason=str(error))
    summary.finished_at = datetime.now(timezone.utc)
    return summary


def run_collection_stage(
    config: Settings,
    client: DroughtMongoClient,
    sources: Optional[Iterable[CollectionSource]] = None,
    sleep: Callable[[float], None] = time.sleep
) -> List[RunSummary]:
    """
    Incremental fetch of every raw source. Each source is its own run:
    a broken source never stops the others.
    """
    logger.info("📡 [Collect] Starting incremental collection...")
    raw_db = client.get_raw_db()
    registry = CodeRegistry(MongoExtractor(raw_db))
    summaries = []

    for source in sources or COLLECTION_SOURCES.values():
        adapter = None
        try:
            adapter = source.build_adapter(config)
            reader = RawHistoryReader(MongoExtractor(raw_db), source.raw_collection)
            writer = RawObservationWriter(raw_db, source.raw_collection)
            writer.ensure_indexes()

            summaries.append(run_collection(
                source.name,
                lambda source=source: source.entities(registry),
                reader,
                adapter,
                writer,
                step=source.step,
                default_lookback=source.default_lookback,
                delay_seconds=config.inter_entity_delay_seconds,
                sleep=sleep,
            ))
        except Exception as e:
            logger.exception(f"❌ [Collect] Source {source.name} could not run")
            summaries.append(_aborted(source.name, e))
        finally:
            if adapter is not None:
                adapter.close()

    return summaries


def _region_targets(registry: CodeRegistry, sort: str) -> List[ReconstructionTarget]:
    return [
        ReconstructionTarget(key=region.region_code, members=tuple(region.obs_codes))
        for region in registry.region_codes(sort)
    ]


def run_reconstruction_stage(
    config: Settings,
    client: DroughtMongoClient,
    today: Optional[date] = None
) -> List[RunSummary]:
    """
    Rebuilds every drought series from the persisted history.
    """
    today = today or date.today()
    logger.info(f"🧮 [Reconstruct] Rebuilding series up to {today} (from {config.start_year})")

    raw_db = client.get_raw_db()
    extractor = MongoExtractor(raw_db)
    registry = CodeRegistry(extractor)
    store = SeriesStore(
        client.get_analytics_db(),
        session_factory=client.start_session if config.use_transactions else None
    )

    def reconstructor(definition: SeriesDefinition, reader: RawHistoryReader, **kwargs) -> SeriesReconstructor:
        return SeriesReconstructor(
            definition,
            MongoHistoryAdapter(reader),
            config.output_dir,
            today,
            start_year=config.start_year,
            gap_window_days=config.gap_window_days,
            store=store,
            **kwargs
        )

    def with_master_end(recon: SeriesReconstructor, reader: RawHistoryReader, targets: Callable[[], List[ReconstructionTarget]]):
        # The common end date is resolved with the entity list, so a failing lookup aborts only this run
        def provider():
            recon.master_end = reader.latest_observation_date()
            logger.info(f"📅 [{recon.definition.name}] Common end date: {recon.master_end or today}")
            return targets()
        return provider

    dam_reader = RawHistoryReader(extractor, "raw_dam_hourly")
    reservoir_reader = RawHistoryReader(extractor, "raw_reservoir_daily")
    flow_reader = RawHistoryReader(extractor, "raw_flow_daily")
    rainfall_reader = RawHistoryReader(extractor, "raw_asos_daily")

    dam = reconstructor(DAM_RSRT, dam_reader)
    ar_dam = reconstructor(AR_DAM, reservoir_reader)
    flow = reconstructor(FLOW_RATE, flow_reader)
    agag = reconstructor(AGAG, reservoir_reader)
    rainfall = reconstructor(AREA_RAINFALL, rainfall_reader, weighting_loader=registry.weighting_for)

    def by_facility() -> List[ReconstructionTarget]:
        return [ReconstructionTarget(key=code, members=(code,)) for code in reservoir_reader.distinct_entities()]

    def by_weighting_region() -> List[ReconstructionTarget]:
        return [ReconstructionTarget(key=code) for code in registry.weighting_regions()]

    runs = [
        (dam, lambda: _region_targets(registry, "Dam")),
        (ar_dam, lambda: _region_targets(registry, "Ar")),
        (flow, with_master_end(flow, flow_reader, lambda: _region_targets(registry, "FR"))),
        (agag, by_facility),
        (rainfall, with_master_end(rainfall, rainfall_reader, by_weighting_region)),
    ]

    summaries = []
    for recon, targets in runs:
        name = recon.definition.name
        try:
            summaries.append(run_reconstruction(
                name, targets, recon.process, key=lambda t: t.key, log=recon.log
            ))
        except Exception as e:
            logger.exception(f"❌ [Reconstruct] Series {name} could not run")
            summaries.append(_aborted(name, e))

    try:
        extend_discontinued(
            agag.output_dir,
            DISCONTINUED_FACILITY_CODES,
            agag.emitter,
            new_file_start=date(config.start_year, 1, 1)
        )
    except Exception:
        logger.exception("❌ [Reconstruct] Extending discontinued facility files failed")

    return summaries


def run_daily_pipeline(
    stage: str = "all",
    today: Optional[date] = None,
    config: Optional[Settings] = None,
    client: Optional[DroughtMongoClient] = None
) -> List[RunSummary]:
    """
    Orchestrates the collection and/or reconstruction stages.
    """
    if stage not in STAGES:
        raise ValueError(f"Unknown stage '{stage}'. Expected one of {STAGES}")

    config = config or default_settings
    client = client or mongo_client
    summaries: List[RunSummary] = []

    started = time.time()
    logger.info(f"🚀 Starting drought pipeline (stage: {stage})")

    if stage in ("collect", "all"):
        summaries.extend(run_collection_stage(config, client))
    if stage in ("reconstruct", "all"):
        summaries.extend(run_reconstruction_stage(config, client, today))

    duration = round(time.time() - started, 2)
    failed_runs = [s.pipeline for s in summaries if s.aborted]
    if failed_runs:
        logger.warning(f"⚠️ Pipeline finished in {duration}s with aborted runs: {', '.join(failed_runs)}")
    else:
        logger.info(f"🎉 Pipeline Completed in {duration} seconds.")
    return summaries
