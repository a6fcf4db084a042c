"""
Tests for pipeline encoding and the MongoDB service helpers
"""

import datetime
import json

import pytest
from bson import ObjectId
from hypothesis import given, strategies as st

from stitch_client import ConfigurationError, PipelineStage
from stitch_client.pipeline import (
    METADATA_KEY,
    decode_pipeline_response,
    default_decoder,
    default_encoder,
    encode_pipeline,
    resolve_codec,
)
from stitch_client.services import MongoService, get_service


HEX_STR = "5899445b275d3ebe8f2ab8c0"


class RecordingClient:
    """Stands in for a client and records the pipelines it is asked to run."""

    def __init__(self):
        self.pipelines = []

    def execute_pipeline(self, stages):
        self.pipelines.append([s.to_dict() if isinstance(s, PipelineStage) else s for s in stages])
        return {"result": []}


# =============================================================================
# Codec Tests
# =============================================================================

class TestCodec:
    def test_defaults(self):
        assert resolve_codec() == (default_encoder, default_decoder)

    def test_custom_codec(self):
        encoder, decoder = resolve_codec(json.dumps, json.loads)
        assert encoder is json.dumps
        assert decoder is json.loads

    @pytest.mark.parametrize("option", ["encoder", "decoder"])
    def test_non_callable_rejected(self, option):
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_codec(**{option: "json"})
        assert str(exc_info.value) == f'{option} option must be a function, but "str" was provided'
        assert isinstance(exc_info.value, TypeError)

    def test_extended_json_types_survive(self):
        doc = {
            "_id": ObjectId(HEX_STR),
            "when": datetime.datetime(2017, 2, 7, tzinfo=datetime.timezone.utc),
        }
        encoded = encode_pipeline([PipelineStage("literal", {"items": [doc]})], default_encoder)

        assert json.loads(encoded)[0]["args"]["items"][0]["_id"] == {"$oid": HEX_STR}

        decoded = default_decoder(encoded)
        item = decoded[0]["args"]["items"][0]
        assert item["_id"] == ObjectId(HEX_STR)
        assert item["when"].year == 2017

    def test_encode_accepts_plain_mappings(self):
        encoded = encode_pipeline([{"action": "literal", "args": {"items": [1]}}], json.dumps)
        assert json.loads(encoded) == [{"action": "literal", "args": {"items": [1]}}]

    def test_stage_service_is_optional(self):
        assert PipelineStage("literal").to_dict() == {"action": "literal", "args": {}}
        assert PipelineStage("find", {}, "mdb1").to_dict()["service"] == "mdb1"

    @given(st.recursive(
        st.none() | st.booleans() | st.integers() | st.text(),
        lambda children: st.lists(children, max_size=3)
        | st.dictionaries(st.text(alphabet="abcxyz", min_size=1), children, max_size=3),
        max_leaves=10,
    ))
    def test_plain_json_values_unchanged(self, value):
        """Property: values without BSON types encode as ordinary JSON."""
        assert json.loads(default_encoder(value)) == value


# =============================================================================
# Response Decoding Tests
# =============================================================================

class TestDecodeResponse:
    def test_warnings_moved_to_metadata(self):
        body = b'{"result": [{"x": 1}], "warnings": ["slow query"]}'
        data = decode_pipeline_response(body, default_decoder)

        assert data["result"] == [{"x": 1}]
        assert "warnings" not in data
        assert data[METADATA_KEY] == {"warnings": ["slow query"]}

    def test_without_warnings(self):
        data = decode_pipeline_response(b'{"result": []}', default_decoder)
        assert METADATA_KEY not in data

    def test_custom_decoder_sees_text(self):
        seen = []

        def decoder(text):
            seen.append(text)
            return {"result": "custom"}

        assert decode_pipeline_response(b'{"result": 1}', decoder) == {"result": "custom"}
        assert seen == ['{"result": 1}']

    def test_malformed_utf8_is_replaced(self):
        data = decode_pipeline_response(b'{"result": ["caf\xe9"]}', default_decoder)
        assert data["result"] == ["caf\ufffd"]

    def test_non_object_response(self):
        assert decode_pipeline_response(b"[1, 2]", default_decoder) == [1, 2]


# =============================================================================
# MongoDB Service Tests
# =============================================================================

class TestMongoService:
    """Tests for the stages built by collection helpers."""

    @pytest.fixture
    def client(self):
        return RecordingClient()

    @pytest.fixture
    def items(self, client):
        return MongoService(client, "mdb1").db("todo").collection("items")

    def test_find(self, client, items):
        result = items.find({"owner_id": HEX_STR}, project={"text": 1})

        assert result == {"result": []}
        assert client.pipelines == [[{
            "service": "mdb1",
            "action": "find",
            "args": {
                "database": "todo",
                "collection": "items",
                "query": {"owner_id": HEX_STR},
                "project": {"text": 1},
            },
        }]]

    def test_find_without_projection(self, client, items):
        items.find({})
        assert "project" not in client.pipelines[0][0]["args"]

    def test_insert_single_document(self, client, items):
        items.insert({"text": "hello"})

        literal, insert = client.pipelines[0]
        assert literal == {"action": "literal", "args": {"items": [{"text": "hello"}]}}
        assert insert == {
            "service": "mdb1",
            "action": "insert",
            "args": {"database": "todo", "collection": "items"},
        }

    def test_insert_many_documents(self, client, items):
        items.insert([{"n": 1}, {"n": 2}])
        assert client.pipelines[0][0]["args"]["items"] == [{"n": 1}, {"n": 2}]

    def test_update_variants(self, client, items):
        items.update_one({"a": 1}, {"$set": {"b": 2}})
        items.update_many({"a": 1}, {"$set": {"b": 2}})
        items.upsert({"a": 1}, {"$set": {"b": 2}})

        one, many, upsert = (p[0]["args"] for p in client.pipelines)
        assert "multi" not in one and "upsert" not in one
        assert many["multi"] is True
        assert upsert["upsert"] is True
        assert all(p[0]["action"] == "update" for p in client.pipelines)

    def test_delete_variants(self, client, items):
        items.delete_one({"a": 1})
        items.delete_many({"a": 1})

        assert client.pipelines[0][0]["args"]["singleDoc"] is True
        assert client.pipelines[1][0]["args"]["singleDoc"] is False

    def test_get_service(self, client):
        service = get_service(client, "mongodb", "mdb1")
        assert isinstance(service, MongoService)
        assert service.service == "mdb1"

    def test_get_unknown_service(self, client):
        with pytest.raises(ConfigurationError):
            get_service(client, "twilio", "tw1")
