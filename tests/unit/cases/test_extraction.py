"""Unit tests for structured case extraction.

Tests defensive response parsing and the extractor's truncation,
retry and failure handling against a scripted client.

Run with: pytest tests/unit/cases/test_extraction.py -v
"""

import asyncio
import json

import pytest

from lawkita.cases.errors import ExtractionMalformedError, ExtractionTransportError, JobFatalError
from lawkita.cases.extraction import (
    OpenAIExtractionClient,
    get_extraction_client,
    parse_extraction_response,
    truncate_content,
)
from lawkita.cases.extraction.extractor import TRUNCATION_MARKER
from lawkita.cases.extraction.parsing import coerce_role, find_first_json_object, strip_code_fences
from lawkita.cases.models import CaseCategory, CaseStatus, LawyerRole
from lawkita.config import Settings
from tests.fixtures import (
    ConcurrencyTrackingClient,
    ScriptedExtractionClient,
    case_response,
    make_document,
    no_case_response,
)


class TestResponseLocation:
    """Tests for finding JSON inside model output."""

    def test_strips_json_fence(self):
        """Test that a fenced block's body is returned."""
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_unfenced_text_unchanged(self):
        """Test that text without fences is returned as is."""
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_finds_object_after_prose(self):
        """Test that leading and trailing prose is skipped."""
        text = 'Sure! {"a": {"b": 2}} Hope that helps.'
        assert find_first_json_object(text) == '{"a": {"b": 2}}'

    def test_braces_inside_strings_ignored(self):
        """Test that braces in string values do not end the object."""
        text = '{"summary": "the {sealed} exhibit", "n": 1}'
        assert json.loads(find_first_json_object(text))["n"] == 1

    def test_no_object(self):
        """Test that text with no object yields None."""
        assert find_first_json_object("no json here") is None


class TestParseExtractionResponse:
    """Tests for schema validation of extraction responses."""

    def test_parses_full_response(self):
        """Test that a well-formed response becomes an ExtractedCase."""
        raw = case_response(
            "PP v Najib Razak",
            confidence=85,
            alternative_names=["1MDB trial"],
            lawyers=[
                {"name": "Muhammad Shafee Abdullah", "role": "defense", "confidence": 90},
                {"name": "Gopal Sri Ram", "role": "prosecution", "roleDescription": "Lead DPP"},
            ],
            key_dates=[{"date": "2020-07-28", "event": "Convicted on all counts"}],
            category="corruption",
            status="appeal",
            charges=["Abuse of power", "Money laundering"],
        )

        case = parse_extraction_response(raw, "news:abc")

        assert case.case_name == "PP v Najib Razak"
        assert case.alternative_names == ["1MDB trial"]
        assert case.category == CaseCategory.CORRUPTION
        assert case.status == CaseStatus.APPEAL
        assert case.confidence == 85
        assert case.source_document_id == "news:abc"
        assert [l.role for l in case.lawyers] == [LawyerRole.DEFENSE, LawyerRole.PROSECUTION]
        assert case.lawyers[1].role_description == "Lead DPP"
        assert case.key_dates[0].date == "2020-07-28"
        assert case.charges == ["Abuse of power", "Money laundering"]

    def test_parses_fenced_response(self):
        """Test that Markdown fences and prose are tolerated."""
        case = parse_extraction_response(case_response("PP v Rosmah", fenced=True), "news:x")
        assert case.case_name == "PP v Rosmah"

    def test_no_legal_case_returns_none(self):
        """Test that hasLegalCase false is not an error."""
        assert parse_extraction_response(no_case_response(), "news:x") is None

    def test_bare_case_object_accepted(self):
        """Test a response without the hasLegalCase envelope."""
        raw = json.dumps({"caseName": "PP v Lim Guan Eng", "confidence": 70})
        case = parse_extraction_response(raw, "news:x")
        assert case.case_name == "PP v Lim Guan Eng"

    def test_missing_fields_default_to_neutral(self):
        """Test that absent arrays and confidence default safely."""
        raw = json.dumps({"hasLegalCase": True, "caseData": {"caseName": "PP v Zahid"}})
        case = parse_extraction_response(raw, "news:x")

        assert case.confidence == 0
        assert case.lawyers == []
        assert case.key_dates == []
        assert case.judges == []
        assert case.category == CaseCategory.OTHER
        assert case.status == CaseStatus.ONGOING

    def test_out_of_enum_role_coerced_to_other(self):
        """Test that an unknown role becomes other instead of failing."""
        raw = case_response("PP v Zahid", lawyers=[{"name": "Hisyam Teh", "role": "watching brief"}])
        case = parse_extraction_response(raw, "news:x")
        assert case.lawyers[0].role == LawyerRole.OTHER

    def test_role_synonyms(self):
        """Test that British spellings and abbreviations map to the role set."""
        assert coerce_role("Defence") == LawyerRole.DEFENSE
        assert coerce_role("DPP") == LawyerRole.PROSECUTION
        assert coerce_role("Justice") == LawyerRole.JUDGE

    def test_confidence_clamped(self):
        """Test that out-of-range confidence is clamped to 0..100."""
        assert parse_extraction_response(case_response("PP v A Name", confidence=150), "x").confidence == 100
        assert parse_extraction_response(case_response("PP v A Name", confidence=-5), "x").confidence == 0

    def test_missing_case_name_rejected(self):
        """Test that a case without a name is malformed."""
        raw = json.dumps({"hasLegalCase": True, "caseData": {"confidence": 80}})
        with pytest.raises(ExtractionMalformedError) as exc_info:
            parse_extraction_response(raw, "news:x")
        assert exc_info.value.raw_response == raw

    @pytest.mark.parametrize("envelope", [
        {"hasLegalCase": True, "caseData": None},
        {"hasLegalCase": True},
    ])
    def test_case_flag_without_case_data_rejected(self, envelope):
        """Test that claiming a case but sending no data is malformed, keeping the raw text."""
        raw = json.dumps(envelope)
        with pytest.raises(ExtractionMalformedError) as exc_info:
            parse_extraction_response(raw, "news:x")
        assert exc_info.value.raw_response == raw

    def test_lawyer_without_name_rejected(self):
        """Test that a nameless lawyer entry is malformed."""
        raw = case_response("PP v Zahid", lawyers=[{"role": "defense"}])
        with pytest.raises(ExtractionMalformedError):
            parse_extraction_response(raw, "news:x")

    def test_invalid_json_rejected(self):
        """Test that truncated JSON is malformed."""
        with pytest.raises(ExtractionMalformedError):
            parse_extraction_response('{"hasLegalCase": true, "caseData": {', "news:x")

    def test_empty_response_rejected(self):
        """Test that an empty response is malformed."""
        with pytest.raises(ExtractionMalformedError):
            parse_extraction_response("   ", "news:x")


class TestTruncation:
    """Tests for the content character budget."""

    def test_short_content_untouched(self):
        assert truncate_content("short", 100) == "short"

    def test_long_content_cut_and_marked(self):
        """Test that content over budget is cut and marked within the budget."""
        text = truncate_content("x" * 500, 100)
        assert text == "x" * (100 - len(TRUNCATION_MARKER)) + TRUNCATION_MARKER
        assert len(text) == 100

    def test_budget_smaller_than_marker(self):
        assert truncate_content("x" * 500, 10) == "x" * 10


class TestStructuredExtractor:
    """Tests for StructuredExtractor against a scripted client."""

    @pytest.mark.asyncio
    async def test_extracts_case(self, make_extractor):
        """Test a successful extraction."""
        document = make_document(1)
        client = ScriptedExtractionClient({document.title: case_response("PP v Najib Razak")})

        outcome = await make_extractor(client).extract(document)

        assert outcome.failed is False
        assert outcome.has_legal_case is True
        assert outcome.case.source_document_id == document.source_id

    @pytest.mark.asyncio
    async def test_no_case_is_not_failure(self, make_extractor):
        """Test that a no-case answer is neither a case nor an error."""
        outcome = await make_extractor(ScriptedExtractionClient()).extract(make_document(1))

        assert outcome.failed is False
        assert outcome.case is None

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, make_extractor):
        """Test that transport errors are retried up to success."""
        document = make_document(1)
        client = ScriptedExtractionClient({
            document.title: [
                ExtractionTransportError("timeout"),
                ExtractionTransportError("rate limited"),
                case_response("PP v Najib Razak"),
            ]
        })

        outcome = await make_extractor(client, max_attempts=3).extract(document)

        assert outcome.case is not None
        assert client.calls_for(document.title) == 3

    @pytest.mark.asyncio
    async def test_transport_error_exhausts_attempts(self, make_extractor):
        """Test that persistent transport errors become a failed outcome."""
        document = make_document(1)
        client = ScriptedExtractionClient({document.title: ExtractionTransportError("down")})

        outcome = await make_extractor(client, max_attempts=2).extract(document)

        assert outcome.failed is True
        assert outcome.error_code == "EXTRACTION_TRANSPORT"
        assert client.calls_for(document.title) == 2

    @pytest.mark.asyncio
    async def test_malformed_not_retried(self, make_extractor):
        """Test that malformed responses fail once without retry."""
        document = make_document(1)
        client = ScriptedExtractionClient({document.title: "I could not find a case, sorry."})

        outcome = await make_extractor(client).extract(document)

        assert outcome.failed is True
        assert outcome.error_code == "EXTRACTION_MALFORMED"
        assert outcome.raw_response == "I could not find a case, sorry."
        assert client.calls_for(document.title) == 1

    @pytest.mark.asyncio
    async def test_content_truncated_before_submission(self, make_extractor):
        """Test that the request carries at most the character budget."""
        document = make_document(1, content="court trial judge " * 2000)
        client = ScriptedExtractionClient()

        await make_extractor(client, char_budget=1000).extract(document)

        sent = client.requests[0].document_content
        assert sent.startswith(document.content[:900])
        assert len(sent) == 1000

    @pytest.mark.asyncio
    async def test_calls_beyond_ceiling_wait(self, make_extractor):
        """Test that extra calls queue behind the concurrency ceiling and all complete."""
        documents = [make_document(i) for i in range(8)]
        client = ConcurrencyTrackingClient(
            {d.title: case_response(f"PP v Accused Number {i}") for i, d in enumerate(documents)}
        )
        extractor = make_extractor(client, concurrency=2)

        outcomes = await asyncio.gather(*(extractor.extract(d) for d in documents))

        assert client.peak == 2
        assert len(client.requests) == 8
        assert all(o.case is not None for o in outcomes)

    @pytest.mark.asyncio
    async def test_job_fatal_propagates(self, make_extractor):
        """Test that credential failures are not swallowed."""
        document = make_document(1)
        client = ScriptedExtractionClient({document.title: JobFatalError("bad key")})

        with pytest.raises(JobFatalError):
            await make_extractor(client).extract(document)


class TestExtractionClientFactory:
    """Tests for provider client selection."""

    def test_missing_key_is_job_fatal(self):
        """Test that a missing provider key aborts before any call."""
        with pytest.raises(JobFatalError):
            get_extraction_client(Settings(llm_provider="openai", openai_api_key=""))

    def test_openai_selected(self):
        client = get_extraction_client(Settings(llm_provider="openai", openai_api_key="sk-test"))
        assert isinstance(client, OpenAIExtractionClient)
