"""End-to-end tests for the lm command with a fake provider."""

import json

import pytest
from typer.testing import CliRunner

from cli.lm import cli as lm_cli
from cli.lm.errors import ScreenshotError
from cli.lm.query import ImageBlock, JSONObject
from cli.lm.registry import DEFAULT_MODELS
from cli.lm.screenshot import ScreenshotResult

runner = CliRunner()


class EchoProvider:
    name = "echo"

    def __init__(self, calls):
        self.calls = calls

    def execute(self, query):
        self.calls.append(query)
        return f"echo: {query.messages[-1].text}"


@pytest.fixture
def calls(monkeypatch, tmp_path):
    recorded = []
    monkeypatch.setenv("LM_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("LM_DEFAULT_MODEL", raising=False)
    monkeypatch.delenv("LM_DEBUG", raising=False)
    monkeypatch.setattr(lm_cli, "build_provider", lambda model, settings, budget: EchoProvider(recorded))
    return recorded


def test_list_models(calls):
    result = runner.invoke(lm_cli.app, ["--list-models"])
    assert result.exit_code == 0
    listing = json.loads(result.stdout)
    assert sorted(listing) == sorted(model.name for model in DEFAULT_MODELS)
    assert listing["gpt-4o"]["context_window"] == 128000
    assert calls == []


def test_list_prompts(calls):
    result = runner.invoke(lm_cli.app, ["--list-prompts"])
    assert result.exit_code == 0
    assert "pdf-to-text" in json.loads(result.stdout)


def test_unknown_model(calls):
    result = runner.invoke(lm_cli.app, ["--model", "not-a-real-model"], input="hello")
    assert result.exit_code == 1
    assert "not-a-real-model" in result.output
    assert "gpt-4o-mini" in result.output
    assert calls == []


def test_happy_path(calls):
    result = runner.invoke(lm_cli.app, [], input="hello")
    assert result.exit_code == 0, result.output
    assert "echo: hello" in result.stdout
    assert calls[0].model.name == "gpt-4o"


def test_prompt_suffix_is_appended(calls):
    result = runner.invoke(lm_cli.app, ["--model", "gpt-4o-mini", "--prompt", " world"], input="hello")
    assert result.exit_code == 0, result.output
    assert calls[0].messages[-1].text == "hello world"
    assert calls[0].model.name == "gpt-4o-mini"


def test_json_flag(calls):
    result = runner.invoke(lm_cli.app, ["--json"], input="list three colors")
    assert result.exit_code == 0, result.output
    assert isinstance(calls[0].response_format, JSONObject)


def test_template_picks_its_model(calls):
    result = runner.invoke(lm_cli.app, ["--template", "json-sample-to-schema"], input='{"a": 1}')
    assert result.exit_code == 0, result.output
    assert calls[0].model.name == "gpt-4o-mini"
    assert '{"a": 1}' in calls[0].messages[-1].text
    assert isinstance(calls[0].response_format, JSONObject)


def test_capability_error_exits_nonzero(calls, tmp_path):
    schema = tmp_path / "schema.json"
    schema.write_text('{"type": "object"}')
    result = runner.invoke(lm_cli.app, ["--model", "aws-nova-lite", "--schema", str(schema)], input="x")
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "structured JSON" in result.output
    assert calls == []


def test_cache_second_run_skips_provider(calls):
    first = runner.invoke(lm_cli.app, ["--cache"], input="cache me")
    second = runner.invoke(lm_cli.app, ["--cache"], input="cache me")
    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert "echo: cache me" in second.stdout
    assert len(calls) == 1


def test_unreadable_cache_only_warns(calls, tmp_path):
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "responses.sqlite3").write_bytes(b"not a database at all " * 50)

    result = runner.invoke(lm_cli.app, ["--cache"], input="hello")

    assert result.exit_code == 0, result.output
    assert "echo: hello" in result.stdout
    assert "Running without the response cache" in result.output
    assert len(calls) == 1


def test_bad_setting_is_reported(calls, monkeypatch):
    monkeypatch.setenv("LM_STDIN_TIMEOUT", "soon")
    result = runner.invoke(lm_cli.app, [], input="hello")
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "LM_STDIN_TIMEOUT" in result.output
    assert not isinstance(result.exception, ValueError)
    assert calls == []


def test_screenshot_images_are_attached(calls, monkeypatch, tmp_path, png_bytes):
    shot = tmp_path / "screen.png"
    shot.write_bytes(png_bytes)
    requested = []

    class FakeTaker:
        def __init__(self, config):
            requested.append(config.monitor)

        def capture(self):
            return [ScreenshotResult(path=shot, captured_at=0.0, monitor_index=2)]

    monkeypatch.setattr(lm_cli, "ScreenshotTaker", FakeTaker)
    result = runner.invoke(lm_cli.app, ["--screenshot", "--monitor", "2"], input="what is on screen?")

    assert result.exit_code == 0, result.output
    assert requested == [2]
    images = [block for block in calls[0].messages[-1].content if isinstance(block, ImageBlock)]
    assert [image.data for image in images] == [png_bytes]


def test_site_screenshots_are_attached(calls, monkeypatch, tmp_path, png_bytes):
    page = tmp_path / "00-page.png"
    page.write_bytes(png_bytes)
    visited = []

    class FakeSites:
        def capture(self, urls):
            visited.extend(urls)
            return [page]

    monkeypatch.setattr(lm_cli, "SiteScreenshotter", FakeSites)
    result = runner.invoke(lm_cli.app, ["--sites", "https://a.test, https://b.test"], input="compare")

    assert result.exit_code == 0, result.output
    assert visited == ["https://a.test", "https://b.test"]
    assert calls[0].needs_image


def test_site_screenshot_failure_exits_nonzero(calls, monkeypatch):
    class FailingSites:
        def capture(self, urls):
            raise ScreenshotError(f"Could not screenshot any of: {', '.join(urls)}")

    monkeypatch.setattr(lm_cli, "SiteScreenshotter", FailingSites)
    result = runner.invoke(lm_cli.app, ["--sites", "https://a.test"], input="x")
    assert result.exit_code == 1
    assert "Could not screenshot any of: https://a.test" in result.output
    assert calls == []
