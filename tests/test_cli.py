"""
CLI tests: each subcommand run through main() against a design JSON file.
"""
import json
from unittest.mock import patch

import pytest
import requests

from figma_agent import cli
from figma_agent.context import VariableTable


# ─── helpers ────────────────────────────────────────────────────────────────

RED = [{"type": "SOLID", "color": {"r": 1, "g": 0, "b": 0, "a": 1}}]

DESIGN = {
    "id": "1:1", "name": "Landing Page", "type": "FRAME",
    "absoluteBoundingBox": {"x": 0, "y": 0, "width": 1440, "height": 900},
    "layoutMode": "VERTICAL", "itemSpacing": 16,
    "children": [
        {"id": "1:2", "name": "Box A", "type": "RECTANGLE", "fills": RED,
         "absoluteBoundingBox": {"x": 0, "y": 0, "width": 100, "height": 100}},
        {"id": "1:3", "name": "Box B", "type": "RECTANGLE", "fills": RED,
         "absoluteBoundingBox": {"x": 0, "y": 300, "width": 100, "height": 100}},
    ],
}


@pytest.fixture
def design_file(tmp_path):
    path = tmp_path / "design.json"
    path.write_text(json.dumps(DESIGN), encoding="utf-8")
    return path


def run_cli(tmp_path, *argv):
    return cli.main(["--config", str(tmp_path / "figma-agent.config.json"), *argv])


# ─── generate ───────────────────────────────────────────────────────────────

class TestGenerate:

    def test_writes_artifact_set(self, tmp_path, design_file, capsys):
        out = tmp_path / "out"
        assert run_cli(tmp_path, "generate", str(design_file), "--output", str(out)) == 0
        assert (out / "index.html").exists()
        assert (out / "tokens.css").exists()
        assert (out / "styles" / "components.css").exists()
        assert "✅ Generated html output" in capsys.readouterr().out

    def test_target_from_config(self, tmp_path, design_file):
        (tmp_path / "figma-agent.config.json").write_text(
            json.dumps({"generate": {"target": "vue", "outputDir": str(tmp_path / "vue-out")}}),
            encoding="utf-8",
        )
        assert run_cli(tmp_path, "generate", str(design_file)) == 0
        assert (tmp_path / "vue-out" / "components" / "LandingPage.vue").exists()

    def test_missing_input(self, tmp_path, capsys):
        assert run_cli(tmp_path, "generate", str(tmp_path / "missing.json")) == 1
        assert "Input file not found" in capsys.readouterr().out

    def test_invalid_root(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text("[]", encoding="utf-8")
        assert run_cli(tmp_path, "generate", str(path), "--output", str(tmp_path / "out")) == 1
        assert "Invalid design tree" in capsys.readouterr().out

    def test_fetch_needs_token(self, tmp_path, monkeypatch, capsys):
        monkeypatch.delenv("FIGMA_TOKEN", raising=False)
        assert run_cli(tmp_path, "generate", "--file-key", "KEY") == 1
        assert "FIGMA_TOKEN" in capsys.readouterr().out

    def test_fetch_from_figma(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FIGMA_TOKEN", "figd_test")
        out = tmp_path / "out"
        with patch.object(cli, "fetch_design", return_value=({"document": DESIGN}, VariableTable())) as fetch:
            code = run_cli(tmp_path, "generate", "--file-key", "KEY", "--node-ids", "1:1,1:2", "--output", str(out))
        assert code == 0
        assert fetch.call_args.args[1:] == ("KEY", ["1:1", "1:2"])
        assert (out / "index.html").exists()

    def test_fetch_forbidden(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("FIGMA_TOKEN", "figd_test")
        response = requests.Response()
        response.status_code = 403
        error = requests.HTTPError("403", response=response)
        with patch.object(cli, "fetch_design", side_effect=error):
            assert run_cli(tmp_path, "generate", "--file-key", "KEY") == 1
        assert "Figma API 403" in capsys.readouterr().out

    def test_export_assets_skipped_without_key(self, tmp_path, design_file, monkeypatch, capsys):
        monkeypatch.delenv("FIGMA_TOKEN", raising=False)
        with patch.object(cli, "export_assets") as export:
            code = run_cli(tmp_path, "generate", str(design_file), "--output", str(tmp_path / "out"), "--export-assets")
        assert code == 0
        export.assert_not_called()
        assert "skipped" in capsys.readouterr().out


# ─── tokens / layout / preview ──────────────────────────────────────────────

class TestInspectCommands:

    def test_tokens_to_stdout(self, tmp_path, design_file, capsys):
        assert run_cli(tmp_path, "tokens", str(design_file)) == 0
        assert "--color-" in capsys.readouterr().out

    def test_tokens_to_file(self, tmp_path, design_file):
        out = tmp_path / "tokens" / "tokens.json"
        assert run_cli(tmp_path, "tokens", str(design_file), "--format", "json", "--output", str(out)) == 0
        assert "color" in json.loads(out.read_text(encoding="utf-8"))

    def test_tokens_with_variables_file(self, tmp_path, design_file, capsys):
        variables = tmp_path / "variables.json"
        variables.write_text(json.dumps({"variables": {
            "v:1": {"name": "color/brand", "value": "#3366FF"},
        }}), encoding="utf-8")
        assert run_cli(tmp_path, "tokens", str(design_file), "--variables", str(variables)) == 0
        # unreferenced variables do not become tokens
        assert "--color-brand" not in capsys.readouterr().out

    def test_layout(self, tmp_path, design_file, capsys):
        assert run_cli(tmp_path, "layout", str(design_file)) == 0
        out = capsys.readouterr().out
        assert "├─ Landing Page [FRAME]" in out
        assert "flex-direction: column" in out

    def test_preview(self, tmp_path, design_file, capsys):
        assert run_cli(tmp_path, "preview", str(design_file)) == 0
        out = capsys.readouterr().out
        assert "Total nodes: 3" in out

    def test_no_command_prints_help(self, tmp_path, capsys):
        assert run_cli(tmp_path) == 0
        assert "usage: figma-agent" in capsys.readouterr().out
