"""Tests for the command line entry point."""

import pytest

from harvester import cli


class TestParser:
    def test_scrape_options(self):
        args = cli.build_parser().parse_args(
            ["scrape", "--list-url", "https://x.example/list", "--max-pages", "3", "--concurrency", "4", "--headed"]
        )
        assert args.func is cli.cmd_scrape
        assert args.max_pages == 3
        assert args.concurrency == 4
        assert args.headed

    def test_score_options(self):
        args = cli.build_parser().parse_args(["score", "--input", "in.json", "--criteria", "c.json"])
        assert args.func is cli.cmd_score
        assert args.input == "in.json"
        assert args.patient_profile is None

    def test_serve_defaults(self):
        args = cli.build_parser().parse_args(["serve"])
        assert args.port == 3000

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestConfigurationErrors:
    def test_score_without_project_exits_1(self, monkeypatch, capsys):
        monkeypatch.delenv("VERTEX_PROJECT_ID", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        assert cli.main(["score"]) == 1
        assert "VERTEX_PROJECT_ID" in capsys.readouterr().err

    def test_rubric_without_project_exits_1(self, monkeypatch, tmp_path):
        monkeypatch.delenv("VERTEX_PROJECT_ID", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        assert cli.main(["rubric", "--conversation", str(tmp_path / "c.json")]) == 1

    def test_invalid_scrape_option_exits_1(self, capsys):
        assert cli.main(["scrape", "--max-pages", "0"]) == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_score_missing_input_exits_1(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("VERTEX_PROJECT_ID", "p")
        monkeypatch.setenv("HARVESTER_DATA_DIR", str(tmp_path))

        class _Engine:
            def __init__(self, config):
                pass

            def initialize(self):
                pass

        monkeypatch.setattr("harvester.ai_engine.engine.ScoringEngine", _Engine)
        code = cli.main(["score", "--input", str(tmp_path / "missing.json"), "--output", str(tmp_path / "o.json")])
        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_score_with_missing_credentials_file_exits_1(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("VERTEX_PROJECT_ID", "some-project")
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(tmp_path / "missing.json"))
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("HARVESTER_DATA_DIR", str(tmp_path))

        assert cli.main(["score"]) == 1
        assert "does not exist" in capsys.readouterr().err
        assert not (tmp_path / "analysis_results.json").exists()


class TestRubricErrors:
    @pytest.fixture(autouse=True)
    def _project(self, monkeypatch):
        monkeypatch.setenv("VERTEX_PROJECT_ID", "p")

    def test_invalid_conversation_json_exits_1(self, tmp_path, capsys):
        conversation = tmp_path / "c.json"
        conversation.write_text("[{'role': 'user'")
        assert cli.main(["rubric", "--conversation", str(conversation)]) == 1
        assert "invalid JSON" in capsys.readouterr().err

    def test_remote_failure_exits_1(self, monkeypatch, tmp_path, capsys):
        from harvester.ai_engine.engine import RemoteError

        class _Engine:
            def __init__(self, config):
                pass

            def initialize(self):
                pass

            async def derive_patient_profile(self, conversation):
                raise RemoteError("Gemini request failed: 503")

        monkeypatch.setattr("harvester.ai_engine.engine.ScoringEngine", _Engine)
        conversation = tmp_path / "c.json"
        conversation.write_text('[{"role": "user", "content": "hi"}]')

        assert cli.main(["rubric", "--conversation", str(conversation), "--output-dir", str(tmp_path)]) == 1
        assert "503" in capsys.readouterr().err
        assert not (tmp_path / "patient-profile.json").exists()
