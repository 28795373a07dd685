"""Tests for vision response parsing and the extractor collaborator."""
import asyncio
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from agents.extractor import Extractor, VisionExtractor, extract_json_array, parse_candidates
from errors import TransientExternalError
from improvement.refiner import base_instructions


class TestExtractJsonArray:
    def test_plain_array(self):
        assert extract_json_array('[{"bil": 1}]') == [{"bil": 1}]

    def test_code_fence(self):
        response = 'Here you go:\n```json\n[{"bil": 1}, {"bil": 2}]\n```\nDone.'
        assert extract_json_array(response) == [{"bil": 1}, {"bil": 2}]

    def test_embedded_array(self):
        assert extract_json_array('Rows: [{"bil": 3}] end') == [{"bil": 3}]

    def test_single_object_wrapped(self):
        assert extract_json_array('{"bil": 1}') == [{"bil": 1}]

    @pytest.mark.parametrize("response", ["", "no rows here", "[{broken", "42", '"text"'])
    def test_malformed_degrades_to_empty(self, response):
        assert extract_json_array(response) == []


class TestParseCandidates:
    def test_skips_non_objects(self):
        candidates = parse_candidates('[{"bil": 1}, 5, "x", {"bil": 2}]')
        assert [c.data["bil"] for c in candidates] == [1, 2]

    def test_score(self):
        [candidate] = parse_candidates('[{"bil": 1, "kod_bidang": "12345"}]')
        record = candidate.score()
        assert record.errors == {"code": "invalid fixed-length code"}
        assert record.raw_response == candidate.raw_text


class FakeMessages:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.text)])


def fake_client(**kwargs):
    return SimpleNamespace(messages=FakeMessages(**kwargs))


@pytest.fixture
def pdf(tmp_path):
    path = tmp_path / "page-1.pdf"
    path.write_bytes(b"%PDF-1.4 fake")
    return path


class TestVisionExtractor:
    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            VisionExtractor(api_key="", model="claude-sonnet-4-5")

    def test_sends_document_and_instructions(self, pdf):
        client = fake_client(text='[{"bil": 1, "status": "Aktif"}]')
        extractor = VisionExtractor("key", "claude-sonnet-4-5", client=client)

        candidates = asyncio.run(extractor.extract(pdf))

        assert [c.data for c in candidates] == [{"bil": 1, "status": "Aktif"}]
        [request] = client.messages.requests
        assert request["model"] == "claude-sonnet-4-5"
        document, prompt = request["messages"][0]["content"]
        assert document["type"] == "document"
        assert document["source"]["media_type"] == "application/pdf"
        assert prompt["text"] == base_instructions().text

    def test_install_instructions(self, pdf):
        client = fake_client(text="[]")
        extractor = VisionExtractor("key", "m", client=client)
        extractor.install_instructions("# New rules")
        asyncio.run(extractor.extract(pdf))
        assert extractor.revision == 1
        assert client.messages.requests[0]["messages"][0]["content"][1]["text"] == "# New rules"

    def test_malformed_response_is_empty(self, pdf):
        extractor = VisionExtractor("key", "m", client=fake_client(text="Sorry, I cannot read this."))
        assert asyncio.run(extractor.extract(pdf)) == []

    def test_api_error_is_transient(self, pdf):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = anthropic.APIConnectionError(request=request)
        extractor = VisionExtractor("key", "m", client=fake_client(error=error))
        with pytest.raises(TransientExternalError):
            asyncio.run(extractor.extract(pdf))

    def test_missing_document_is_transient(self, tmp_path):
        extractor = VisionExtractor("key", "m", client=fake_client(text="[]"))
        with pytest.raises(TransientExternalError):
            asyncio.run(extractor.extract(tmp_path / "missing.pdf"))


class TestExtractorInterface:
    def test_extract_is_abstract(self):
        with pytest.raises(TypeError):
            Extractor()

    def test_subclass_gets_base_instructions(self):
        class Canned(Extractor):
            async def extract(self, document_path):
                return []

        extractor = Canned()
        assert extractor.instructions == base_instructions().text
        assert asyncio.run(extractor.extract("page.pdf")) == []
