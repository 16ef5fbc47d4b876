import unittest
from datetime import date, datetime
from unittest.mock import MagicMock

import httpx
from pymongo.errors import PyMongoError

from drought_pipeline.extract.base_extractor import MongoExtractor
from drought_pipeline.extract.code_registry import CodeRegistry, split_obs_codes
from drought_pipeline.extract.history_reader import MongoHistoryAdapter, RawHistoryReader
from drought_pipeline.extract.source_adapter import (
    KMA_ASOS_DAILY,
    SOIL_MOISTURE_DAILY,
    JsonSourceAdapter,
    WamisSourceAdapter,
)
from drought_pipeline.utils.errors import Err, ErrorKind, Ok, ReconstructionError

WAMIS_DAM_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<response>
  <list>
    <item><damcd>1001210</damcd><obsdh>2024010123</obsdh><rsrt>55.1</rsrt></item>
    <item><damcd>1001210</damcd><obsdh>2024010124</obsdh><rsrt>55.2</rsrt></item>
    <item><damcd>1001210</damcd><obsdh>2024010201</obsdh><rsrt>-9999</rsrt></item>
    <item><damcd>1001210</damcd><obsdh>2024010205</obsdh><rsrt>56.0</rsrt></item>
  </list>
</response>"""

WAMIS_ERROR_XML = b"""<OpenAPI_ServiceResponse>
  <cmmnMsgHeader><returnReasonCode>30</returnReasonCode><returnAuthMsg>SERVICE_KEY_IS_NOT_REGISTERED_ERROR</returnAuthMsg></cmmnMsgHeader>
</OpenAPI_ServiceResponse>"""


def _client(handler):
    return httpx.Client(base_url="http://test/", transport=httpx.MockTransport(handler))


class TestWamisSourceAdapter(unittest.TestCase):

    def test_parses_hourly_items_inside_window(self):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, content=WAMIS_DAM_XML)

        adapter = WamisSourceAdapter("dam_hourly", "http://test/", "KEY", client=_client(handler))
        result = adapter.fetch("1001210", datetime(2024, 1, 1, 23), datetime(2024, 1, 2, 5))

        self.assertIsInstance(result, Ok)
        points = result.value
        # 05:00 is outside the half-open window
        self.assertEqual([(p.obs_date, p.source_hour) for p in points], [
            (date(2024, 1, 1), 23), (date(2024, 1, 1), 24), (date(2024, 1, 2), 1)
        ])
        self.assertIsNone(points[2].value)
        self.assertEqual(seen["damcd"], "1001210")
        self.assertEqual(seen["startdt"], "20240101")
        self.assertEqual(seen["enddt"], "20240102")
        self.assertEqual(seen["authKey"], "KEY")

    def test_provider_error_envelope(self):
        adapter = WamisSourceAdapter(
            "flow_daily", "http://test/", "BAD",
            client=_client(lambda request: httpx.Response(200, content=WAMIS_ERROR_XML))
        )
        result = adapter.fetch("2004690", datetime(2024, 1, 1), datetime(2024, 1, 5))
        self.assertIsInstance(result, Err)
        self.assertEqual(result.kind, ErrorKind.TRANSPORT)
        self.assertIn("SERVICE_KEY", result.message)

    def test_malformed_xml_is_parse_error(self):
        adapter = WamisSourceAdapter(
            "flow_daily", "http://test/", "KEY",
            client=_client(lambda request: httpx.Response(200, content=b"<response><list>"))
        )
        result = adapter.fetch("2004690", datetime(2024, 1, 1), datetime(2024, 1, 5))
        self.assertEqual(result.kind, ErrorKind.PARSE)

    def test_http_failure_is_transport_error(self):
        adapter = WamisSourceAdapter(
            "flow_daily", "http://test/", "KEY",
            client=_client(lambda request: httpx.Response(503))
        )
        result = adapter.fetch("2004690", datetime(2024, 1, 1), datetime(2024, 1, 5))
        self.assertEqual(result.kind, ErrorKind.TRANSPORT)


class TestJsonSourceAdapter(unittest.TestCase):

    def test_asos_rainfall_items(self):
        payload = {"response": {
            "header": {"resultCode": "00"},
            "body": {"items": {"item": [
                {"tm": "2024-01-01", "sumRn": "3.5"},
                {"tm": "2024-01-02", "sumRn": ""},
            ]}},
        }}
        adapter = JsonSourceAdapter(
            "kma", KMA_ASOS_DAILY, "http://test/", "KEY",
            client=_client(lambda request: httpx.Response(200, json=payload))
        )
        result = adapter.fetch("108", datetime(2024, 1, 1), datetime(2024, 1, 3))
        self.assertEqual([(p.obs_date, p.value) for p in result.value], [
            (date(2024, 1, 1), 3.5), (date(2024, 1, 2), 0.0)
        ])
        self.assertTrue(all(p.source_hour is None for p in result.value))

    def test_asos_result_code_error(self):
        payload = {"response": {"header": {"resultCode": "03"}, "body": {}}}
        adapter = JsonSourceAdapter(
            "kma", KMA_ASOS_DAILY, "http://test/", "KEY",
            client=_client(lambda request: httpx.Response(200, json=payload))
        )
        result = adapter.fetch("108", datetime(2024, 1, 1), datetime(2024, 1, 3))
        self.assertEqual(result.kind, ErrorKind.TRANSPORT)

    def test_malformed_json_is_parse_error(self):
        adapter = JsonSourceAdapter(
            "kma", KMA_ASOS_DAILY, "http://test/", "KEY",
            client=_client(lambda request: httpx.Response(200, content=b"{not json"))
        )
        result = adapter.fetch("108", datetime(2024, 1, 1), datetime(2024, 1, 3))
        self.assertEqual(result.kind, ErrorKind.PARSE)

    def test_single_date_provider_queries_each_day(self):
        requested = []

        def handler(request):
            requested.append(request.url.params["date"])
            return httpx.Response(200, json={"data": {"moisture": "21.5"}})

        adapter = JsonSourceAdapter("soil", SOIL_MOISTURE_DAILY, "http://test/", "KEY", client=_client(handler))
        result = adapter.fetch("4613", datetime(2024, 1, 1), datetime(2024, 1, 3))

        self.assertEqual(requested, ["20240101", "20240102"])
        self.assertEqual([p.obs_date for p in result.value], [date(2024, 1, 1), date(2024, 1, 2)])
        self.assertEqual(result.value[0].value, 21.5)


class TestHistoryReader(unittest.TestCase):

    def setUp(self):
        self.mock_extractor = MagicMock(spec=MongoExtractor)
        self.reader = RawHistoryReader(self.mock_extractor, "raw_flow_daily")

    def test_cursor_lookup(self):
        self.mock_extractor.find_latest.return_value = {"observed_at": datetime(2024, 1, 5)}
        self.assertEqual(self.reader.get_last_cursor("2004690"), Ok(datetime(2024, 1, 5)))
        collection, query, field = self.mock_extractor.find_latest.call_args[0]
        self.assertEqual((collection, query, field), ("raw_flow_daily", {"entity_id": "2004690"}, "observed_at"))

        self.mock_extractor.find_latest.return_value = None
        self.assertEqual(self.reader.get_last_cursor("2004690"), Ok(None))

    def test_cursor_failure_is_persistence_error(self):
        self.mock_extractor.find_latest.side_effect = PyMongoError("timeout")
        result = self.reader.get_last_cursor("2004690")
        self.assertEqual(result.kind, ErrorKind.PERSISTENCE)

    def test_history_query_structure(self):
        self.mock_extractor.fetch_batch.return_value = iter([
            {"entity_id": "2004690", "obs_date": datetime(2024, 1, 1), "source_hour": None, "value": 4.2},
        ])
        start, end = datetime(1990, 12, 31), datetime(2024, 6, 2)
        points = list(self.reader.read_history(["2004690"], start, end))

        self.assertEqual(points[0].value, 4.2)
        args, kwargs = self.mock_extractor.fetch_batch.call_args
        collection, query, projection = args
        self.assertEqual(collection, "raw_flow_daily")
        self.assertEqual(query["entity_id"], {"$in": ["2004690"]})
        self.assertEqual(query["obs_date"], {"$gte": start, "$lt": end})
        self.assertEqual(projection["_id"], 0)

    def test_history_adapter_wraps_database_errors(self):
        self.mock_extractor.fetch_batch.side_effect = PyMongoError("down")
        adapter = MongoHistoryAdapter(self.reader)
        result = adapter.fetch("2004690", datetime(1990, 12, 31), datetime(2024, 6, 2))
        self.assertEqual(result.kind, ErrorKind.PERSISTENCE)


class TestCodeRegistry(unittest.TestCase):

    def setUp(self):
        self.mock_extractor = MagicMock(spec=MongoExtractor)
        self.registry = CodeRegistry(self.mock_extractor)

    def test_split_obs_codes(self):
        self.assertEqual(split_obs_codes("1001210_1001310"), ["1001210", "1001310"])
        self.assertEqual(split_obs_codes(""), [])

    def test_region_codes(self):
        self.mock_extractor.fetch_batch.return_value = iter([
            {"sgg_cd": "47170", "sort": "Dam", "obs_cd": "2012210_2012110"},
            {"sgg_cd": "11110", "sort": "Dam", "obs_cd": ""},
        ])
        regions = self.registry.region_codes("Dam")
        self.assertEqual(len(regions), 1)
        self.assertEqual(regions[0].obs_codes, ["2012210", "2012110"])
        self.assertEqual(self.mock_extractor.fetch_batch.call_args[0][1], {"sort": "Dam"})

    def test_weighting_applies_default_effective_date(self):
        self.mock_extractor.fetch_batch.return_value = iter([
            {"code": "156", "ratio": 0.7},
            {"code": 174, "ratio": 0.3},
        ])
        weighting = self.registry.weighting_for("46150")
        self.assertIsNone(weighting.entries[0].effective_from)
        self.assertEqual(weighting.entries[1].effective_from, date(2011, 4, 1))

    def test_negative_ratio_is_reconstruction_error(self):
        self.mock_extractor.fetch_batch.return_value = iter([{"code": "156", "ratio": -0.2}])
        with self.assertRaises(ReconstructionError):
            self.registry.weighting_for("46150")


if __name__ == '__main__':
    unittest.main()
