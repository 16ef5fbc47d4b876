"""
Provider adapters. Each adapter returns Ok([ObservationPoint]) or
Err(TRANSPORT | PARSE, message); nothing here raises for provider failures.
"""
import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from drought_pipeline.schemas.raw_models import ObservationPoint
from drought_pipeline.transform.cleaning import build_observation, observation_timestamp
from drought_pipeline.utils.errors import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """
    Abstract provider of raw observations for one dataset.
    """

    name: str = "source"

    @abstractmethod
    def fetch(self, entity_id: str, start: datetime, end: datetime) -> Result:
        """
        Returns readings for `entity_id` inside the half-open window [start, end).
        """
        pass

    def close(self):
        """Releases any connection the adapter holds."""
        pass


def _within_window(point: ObservationPoint, start: datetime, end: datetime) -> bool:
    stamp = observation_timestamp(point.obs_date, point.source_hour)
    return start <= stamp < end


# --- WAMIS (XML) ---

@dataclass(frozen=True)
class WamisDataset:
    path: str
    entity_param: str
    start_param: str
    end_param: str
    stamp_field: str
    value_field: str


WAMIS_DATASETS: Dict[str, WamisDataset] = {
    # Hourly dam operation data, obsdh = yyyyMMddHH, rsrt = storage rate (%)
    "dam_hourly": WamisDataset(
        path="wamis/openapi/wkd/mn_hrdata",
        entity_param="damcd", start_param="startdt", end_param="enddt",
        stamp_field="obsdh", value_field="rsrt",
    ),
    # Daily river flow, ymd = yyyyMMdd, flow = m3/s
    "flow_daily": WamisDataset(
        path="wamis/openapi/wkd/flowdtd",
        entity_param="obscd", start_param="startymd", end_param="endymd",
        stamp_field="ymd", value_field="flow",
    ),
}


class WamisSourceAdapter(SourceAdapter):
    """
    Client for the WAMIS open API (XML payloads).
    """

    def __init__(
        self,
        dataset: str,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        if dataset not in WAMIS_DATASETS:
            raise ValueError(f"Unknown WAMIS dataset: {dataset}")
        self.name = f"wamis:{dataset}"
        self.dataset = WAMIS_DATASETS[dataset]
        self.api_key = api_key
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def fetch(self, entity_id: str, start: datetime, end: datetime) -> Result:
        ds = self.dataset
        params = {
            ds.entity_param: entity_id,
            ds.start_param: start.strftime("%Y%m%d"),
            # WAMIS end dates are inclusive; the window is trimmed below
            ds.end_param: end.strftime("%Y%m%d"),
            "authKey": self.api_key,
        }

        try:
            logger.info(f"📡 [{self.name}] Requesting {entity_id}: {params[ds.start_param]} -> {params[ds.end_param]}")
            response = self._client.get(ds.path, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            return Err(ErrorKind.TRANSPORT, f"{self.name} request failed for {entity_id}: {e}")

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            return Err(ErrorKind.PARSE, f"{self.name} returned malformed XML for {entity_id}: {e}")

        # Provider-level error envelope
        reason = root.findtext("cmmnMsgHeader/returnReasonCode")
        if root.tag == "OpenAPI_ServiceResponse" or (reason and reason != "00"):
            message = root.findtext("cmmnMsgHeader/returnAuthMsg") or root.findtext("cmmnMsgHeader/errMsg") or ""
            return Err(ErrorKind.TRANSPORT, f"{self.name} error {reason} for {entity_id}: {message}")

        points = []
        for item in root.iter("item"):
            point = build_observation(
                entity_id,
                item.findtext(ds.stamp_field),
                item.findtext(ds.value_field),
            )
            if point is not None and _within_window(point, start, end):
                points.append(point)

        logger.info(f"✅ [{self.name}] {entity_id}: {len(points)} reading(s)")
        return Ok(points)

    def close(self):
        self._client.close()


# --- JSON providers (KMA ASOS, EcoWater, soil moisture) ---

@dataclass(frozen=True)
class JsonEndpoint:
    path: str
    entity_param: str
    stamp_field: str
    value_field: str
    items_path: Tuple[str, ...]
    key_param: str = "serviceKey"
    start_param: Optional[str] = None
    end_param: Optional[str] = None
    # When set, the provider is queried one day at a time with this parameter
    single_date_param: Optional[str] = None
    date_format: str = "%Y%m%d"
    static_params: Dict[str, Any] = field(default_factory=dict)
    # Dotted path of a result code that must equal success_code, if present
    result_code_path: Optional[Tuple[str, ...]] = None
    success_code: str = "00"
    # Value substituted for a blank field (KMA leaves dry days empty)
    blank_value: Optional[float] = None


def _dig(payload: Any, path: Sequence[str]) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


class JsonSourceAdapter(SourceAdapter):
    """
    Generic client for JSON providers described by a JsonEndpoint.
    """

    def __init__(
        self,
        name: str,
        endpoint: JsonEndpoint,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        self.name = name
        self.endpoint = endpoint
        self.api_key = api_key
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def _request_params(self, entity_id: str, start: datetime, end: datetime) -> List[Tuple[Dict[str, Any], Optional[date]]]:
        ep = self.endpoint
        base = dict(ep.static_params)
        base[ep.entity_param] = entity_id
        base[ep.key_param] = self.api_key

        if ep.single_date_param:
            requests = []
            day = start.date()
            while datetime(day.year, day.month, day.day) < end:
                params = dict(base)
                params[ep.single_date_param] = day.strftime(ep.date_format)
                requests.append((params, day))
                day += timedelta(days=1)
            return requests

        params = dict(base)
        if ep.start_param:
            params[ep.start_param] = start.strftime(ep.date_format)
        if ep.end_param:
            params[ep.end_param] = end.strftime(ep.date_format)
        return [(params, None)]

    def fetch(self, entity_id: str, start: datetime, end: datetime) -> Result:
        ep = self.endpoint
        points = []

        for params, request_day in self._request_params(entity_id, start, end):
            try:
                response = self._client.get(ep.path, params=params)
                response.raise_for_status()
            except httpx.HTTPError as e:
                return Err(ErrorKind.TRANSPORT, f"{self.name} request failed for {entity_id}: {e}")

            try:
                payload = response.json()
            except ValueError as e:
                return Err(ErrorKind.PARSE, f"{self.name} returned malformed JSON for {entity_id}: {e}")

            if ep.result_code_path:
                code = _dig(payload, ep.result_code_path)
                if code is not None and str(code) != ep.success_code:
                    return Err(ErrorKind.TRANSPORT, f"{self.name} error {code} for {entity_id}")

            items = _dig(payload, ep.items_path)
            if items is None:
                items = []
            elif isinstance(items, dict):
                # Single-row responses are not wrapped in a list
                items = [items]
            elif not isinstance(items, list):
                return Err(ErrorKind.PARSE, f"{self.name} unexpected items type {type(items).__name__} for {entity_id}")

            for item in items:
                if not isinstance(item, dict):
                    continue
                stamp = item.get(ep.stamp_field) or request_day
                raw_value = item.get(ep.value_field)
                if ep.blank_value is not None and (raw_value is None or str(raw_value).strip() == ""):
                    raw_value = ep.blank_value
                point = build_observation(entity_id, stamp, raw_value)
                if point is not None and _within_window(point, start, end):
                    points.append(point)

        logger.info(f"✅ [{self.name}] {entity_id}: {len(points)} reading(s)")
        return Ok(points)

    def close(self):
        self._client.close()


KMA_ASOS_DAILY = JsonEndpoint(
    path="AsosDalyInfoService/getWthrDataList",
    entity_param="stnIds",
    start_param="startDt",
    end_param="endDt",
    stamp_field="tm",
    value_field="sumRn",
    items_path=("response", "body", "items", "item"),
    static_params={
        "pageNo": 1, "numOfRows": 999, "dataType": "JSON",
        "dataCd": "ASOS", "dateCd": "DAY",
    },
    result_code_path=("response", "header", "resultCode"),
    blank_value=0.0,
)

ECOWATER_STORAGE_RATE = JsonEndpoint(
    path="openapi/storagerate/list",
    entity_param="fac_code",
    start_param="stdt",
    stamp_field="check_date",
    value_field="rate",
    items_path=("items",),
    static_params={"type": "json"},
)

SOIL_MOISTURE_DAILY = JsonEndpoint(
    path="v1/soilmoisture",
    entity_param="area",
    key_param="apikey",
    single_date_param="date",
    stamp_field="date",
    value_field="moisture",
    items_path=("data",),
    static_params={"format": "json"},
)
