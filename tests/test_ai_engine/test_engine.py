"""Tests for the scoring engine against a fake Vertex client."""

import pytest

from fakes import FakeVertexClient, score_payload
from harvester.ai_engine.engine import MAX_PROFILE_CHARS, SCORE_RESPONSE_SCHEMA, RemoteError, ScoringEngine
from harvester.ai_engine.rubric import DEFAULT_CRITERIA, DEFAULT_PATIENT_PROFILE
from harvester.ai_engine.schemas import Confidence, PatientProfile
from harvester.config.settings import ConfigurationError, VertexConfig


def _engine(*responses):
    client = FakeVertexClient(*responses)
    return ScoringEngine(VertexConfig(project_id="test-project"), client=client), client


async def _score(engine, text="Name: Dott. Rossi"):
    return await engine.score(text, DEFAULT_PATIENT_PROFILE, DEFAULT_CRITERIA)


class TestScoringEngine:
    @pytest.mark.asyncio
    async def test_valid_response(self):
        engine, client = _engine(score_payload(score=81))
        record = await _score(engine)

        assert record.score == 81
        assert record.confidence == Confidence.HIGH
        assert record.reasoning.green_flags_found[0].flag == "Gestalt"
        config = client.calls[0].generation_config
        assert config["response_mime_type"] == "application/json"
        assert config["response_schema"] == SCORE_RESPONSE_SCHEMA

    @pytest.mark.asyncio
    async def test_prompt_contains_profile_and_rubric(self):
        engine, client = _engine(score_payload())
        await _score(engine, "Name: Dott. Bianchi\nApproccio somatico")
        prompt = client.calls[0].prompt
        assert "Approccio somatico" in prompt
        assert "Gestalt / Relational Approaches" in prompt
        assert DEFAULT_PATIENT_PROFILE.main_issue in prompt

    @pytest.mark.asyncio
    async def test_profile_text_truncated(self):
        engine, client = _engine(score_payload())
        await _score(engine, "x" * (MAX_PROFILE_CHARS + 500) + "TAIL")
        assert "TAIL" not in client.calls[0].prompt

    @pytest.mark.asyncio
    async def test_malformed_json_raises_remote_error(self):
        engine, _ = _engine("{'score': 50")
        with pytest.raises(RemoteError, match="invalid JSON"):
            await _score(engine)

    @pytest.mark.asyncio
    async def test_out_of_range_score_raises_remote_error(self):
        engine, _ = _engine(score_payload(score=140))
        with pytest.raises(RemoteError, match="does not match ScoreRecord"):
            await _score(engine)

    @pytest.mark.asyncio
    async def test_missing_field_raises_remote_error(self):
        payload = score_payload()
        del payload["confidence"]
        engine, _ = _engine(payload)
        with pytest.raises(RemoteError):
            await _score(engine)

    @pytest.mark.asyncio
    async def test_empty_response_raises_remote_error(self):
        engine, _ = _engine("   ")
        with pytest.raises(RemoteError, match="Empty response"):
            await _score(engine)

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        engine, _ = _engine(ConnectionError("429 Resource exhausted"))
        with pytest.raises(RemoteError, match="429"):
            await _score(engine)

    @pytest.mark.asyncio
    async def test_uninitialized_engine(self):
        engine = ScoringEngine(VertexConfig(project_id="p"))
        assert not engine.is_available
        with pytest.raises(RemoteError, match="not initialized"):
            await _score(engine)

    def test_initialize_requires_project(self):
        engine = ScoringEngine(VertexConfig(project_id="", api_key=""))
        with pytest.raises(ConfigurationError, match="VERTEX_PROJECT_ID"):
            engine.initialize()

    @pytest.mark.asyncio
    async def test_derive_patient_profile(self):
        engine, client = _engine(DEFAULT_PATIENT_PROFILE.model_dump(mode="json", by_alias=True))
        conversation = [
            {"role": "user", "content": "I feel disconnected from my emotions."},
            {"role": "assistant", "content": "Tell me more."},
        ]
        profile = await engine.derive_patient_profile(conversation)
        assert isinstance(profile, PatientProfile)
        assert "USER: I feel disconnected" in client.calls[0].prompt
        assert "response_schema" not in client.calls[0].generation_config

    @pytest.mark.asyncio
    async def test_derive_criteria(self):
        engine, client = _engine(DEFAULT_CRITERIA.model_dump(mode="json", by_alias=True))
        criteria = await engine.derive_criteria(DEFAULT_PATIENT_PROFILE)
        assert criteria == DEFAULT_CRITERIA
        assert "# PATIENT PROFILE" in client.calls[0].prompt


class _RecordingClient:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        _RecordingClient.instances.append(self)


class TestCredentials:
    @pytest.fixture(autouse=True)
    def _client(self, monkeypatch):
        _RecordingClient.instances = []
        monkeypatch.setattr("google.genai.Client", _RecordingClient)

    def test_missing_credentials_file(self, tmp_path):
        config = VertexConfig(project_id="p", api_key="", credentials_path=str(tmp_path / "missing.json"))
        engine = ScoringEngine(config)
        with pytest.raises(ConfigurationError, match="does not exist"):
            engine.initialize()
        assert not engine.is_available
        assert _RecordingClient.instances == []

    def test_unreadable_credentials_file(self, tmp_path):
        path = tmp_path / "sa.json"
        path.write_text("{}")
        config = VertexConfig(project_id="p", api_key="", credentials_path=str(path))
        with pytest.raises(ConfigurationError, match="service account"):
            ScoringEngine(config).initialize()

    def test_service_account_file(self, monkeypatch, tmp_path):
        path = tmp_path / "sa.json"
        path.write_text("{}")
        sentinel = object()
        monkeypatch.setattr(
            "google.oauth2.service_account.Credentials.from_service_account_file",
            lambda filename, scopes: sentinel,
        )
        config = VertexConfig(project_id="p", location="europe-west1", api_key="", credentials_path=str(path))
        engine = ScoringEngine(config)
        engine.initialize()

        assert engine.is_available
        kwargs = _RecordingClient.instances[0].kwargs
        assert kwargs["credentials"] is sentinel
        assert kwargs["vertexai"] is True
        assert kwargs["project"] == "p"
        assert kwargs["location"] == "europe-west1"

    def test_no_default_credentials(self, monkeypatch):
        from google.auth.exceptions import DefaultCredentialsError

        def _default(scopes):
            raise DefaultCredentialsError("Could not automatically determine credentials")

        monkeypatch.setattr("google.auth.default", _default)
        with pytest.raises(ConfigurationError, match="No Google credentials"):
            ScoringEngine(VertexConfig(project_id="p", api_key="", credentials_path="")).initialize()
        assert _RecordingClient.instances == []

    def test_default_credentials(self, monkeypatch):
        sentinel = object()
        monkeypatch.setattr("google.auth.default", lambda scopes: (sentinel, "p"))
        ScoringEngine(VertexConfig(project_id="p", api_key="", credentials_path="")).initialize()
        assert _RecordingClient.instances[0].kwargs["credentials"] is sentinel

    def test_api_key_skips_vertex(self):
        engine = ScoringEngine(VertexConfig(project_id="", api_key="secret"))
        engine.initialize()
        assert engine.is_available
        assert _RecordingClient.instances[0].kwargs == {"api_key": "secret"}
