"""
Tests for the cbam_calculator.main command line.

Each command ends in sys.exit(code); the draft commands run against
CBAM_STATE_DIR pointed at tmp_path.
"""
import json

import pytest

from cbam_calculator.form_state import DraftStore, FormDraft, JsonFileStorage
from cbam_calculator.main import build_parser, main


def run(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


@pytest.fixture
def state_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("CBAM_STATE_DIR", str(tmp_path))
    monkeypatch.delenv("CBAM_FACTORS_FILE", raising=False)
    return tmp_path


class TestParser:

    def test_precursor_flag(self):
        args = build_parser().parse_args(
            ["calculate", "--cn-code", "72031000", "--precursor", "Iron Ore=10", "--precursor", "Coke=1,5"]
        )
        assert [(p.type, p.qty) for p in args.precursor] == [("Iron Ore", 10.0), ("Coke", 15.0)]

    def test_bad_precursor_flag(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["calculate", "--precursor", "Iron Ore"])


class TestCalculateCommand:

    def test_from_flags_json(self, state_dir, capsys):
        code = run([
            "calculate", "--cn-code", "72031000", "--production", "100",
            "--electricity", "5000", "--diesel", "2000", "--coal", "1000", "--json",
        ])
        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["intensity"] == pytest.approx(0.12395)
        assert data["product_type"] == "Iron & Steel"

    def test_rejected_input(self, state_dir):
        assert run(["calculate", "--cn-code", "123", "--production", "100"]) == 1

    def test_from_draft_with_exports(self, state_dir, tmp_path):
        draft = (
            FormDraft(cn_code="76011000", production_qty="10", electricity="1000")
            .add_precursor_row("Aluminum", "5")
        )
        DraftStore(JsonFileStorage(state_dir)).save(draft)
        pdf_path = tmp_path / "out" / "report.pdf"
        xml_path = tmp_path / "out" / "report.xml"

        code = run(["calculate", "--from-draft", "--pdf", str(pdf_path), "--xml", str(xml_path)])

        assert code == 0
        assert pdf_path.read_bytes().startswith(b"%PDF")
        xml = xml_path.read_text(encoding="utf-8")
        assert "<CNCode>76011000</CNCode>" in xml
        # rows count even though the precursor section was never expanded
        assert "<Scope3>2.0000</Scope3>" in xml

    def test_factor_override(self, state_dir, tmp_path, capsys):
        factors = tmp_path / "factors.json"
        factors.write_text(json.dumps({"grid_factor": 1.0}), encoding="utf-8")
        code = run([
            "calculate", "--cn-code", "72031000", "--production", "1",
            "--electricity", "1000", "--factors", str(factors), "--json",
        ])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["scope2"] == pytest.approx(1.0)

    def test_unwritable_export_path(self, state_dir, tmp_path, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        code = run([
            "calculate", "--cn-code", "72031000", "--production", "1",
            "--pdf", str(blocker / "report.pdf"),
        ])
        assert code == 1
        assert "Could not write report" in capsys.readouterr().out


class TestOtherCommands:

    def test_validate(self, state_dir):
        assert run(["validate", "--cn-code", "72031000"]) == 0
        assert run(["validate", "--cn-code", "7203"]) == 1

    def test_draft_show_and_clear(self, state_dir, capsys):
        DraftStore(JsonFileStorage(state_dir)).save(FormDraft(cn_code="72031000"))

        assert run(["draft", "show"]) == 0
        assert json.loads(capsys.readouterr().out)["cnCode"] == "72031000"

        assert run(["draft", "clear"]) == 0
        capsys.readouterr()
        assert run(["draft", "show"]) == 0
        assert json.loads(capsys.readouterr().out)["cnCode"] == ""

    def test_draft_show_corrupt(self, state_dir):
        JsonFileStorage(state_dir).set_item("cbamCalculatorState", "not json")
        assert run(["draft", "show"]) == 1

    def test_bad_factor_file(self, state_dir, tmp_path):
        factors = tmp_path / "factors.json"
        factors.write_text(json.dumps({"grid_factor": -1}), encoding="utf-8")
        assert run(["calculate", "--cn-code", "72031000", "--production", "1", "--factors", str(factors)]) == 1

    def test_draft_clear_corrupt(self, state_dir, capsys):
        (state_dir / "storage.json").write_text("]]]", encoding="utf-8")
        assert run(["draft", "clear"]) == 1
        assert "Could not clear saved form" in capsys.readouterr().out
