# tests/test_cli.py
"""
Tests for the tscl command line tool: commands, output formats and exit
codes.
"""

import io
import json

import pytest

from tscl.__main__ import (
    EXIT_BUDGET,
    EXIT_DIAGNOSTICS,
    EXIT_OK,
    EXIT_USAGE,
    build_parser,
    main,
)
from tests.conftest import (
    MINIMAL_TSCL, POINTER_CHAIN_TSCL, FUNCTION_TSCL, MALFORMED_TSCL,
)


class TestParser:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == EXIT_USAGE
        assert "usage: tscl" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert capsys.readouterr().out.startswith("tscl ")

    def test_convert_has_no_solver_options(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["convert", "x.tscl", "--max-steps", "3"])

    def test_depth_must_be_positive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["solve", "x.tscl", "--depth", "0"])


class TestSolve:

    def test_json_output(self, tscl_file, capsys):
        path = tscl_file(FUNCTION_TSCL)
        assert main(["solve", str(path)]) == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        assert [t["targetVariable"] for t in doc["targets"]] == [{"id": 7}]

    def test_text_output(self, tscl_file, capsys):
        path = tscl_file(FUNCTION_TSCL)
        assert main(["solve", str(path), "--format", "text"]) == EXIT_OK
        assert capsys.readouterr().out == "target 7: undefined4 (*)()\n"

    def test_json_input(self, wire_file, capsys):
        assert main(["solve", str(wire_file)]) == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        [entry] = doc["targets"]
        assert entry["targetVariable"] == {"id": 7}
        assert entry["sketch"] == entry["class"]

    def test_text_output_keeps_int_and_str_targets_apart(self, tscl_file, capsys):
        path = tscl_file('target 7: a <= b\ntarget "7": c <= d\n')
        assert main(["solve", str(path), "--format", "text"]) == EXIT_OK
        assert capsys.readouterr().out == (
            "target 7: undefined8\n"
            'target "7": undefined8\n'
        )

    def test_errors_give_exit_one(self, tscl_file, capsys):
        path = tscl_file(MALFORMED_TSCL)
        assert main(["solve", str(path)]) == EXIT_DIAGNOSTICS
        err = capsys.readouterr().err
        assert "error:" in err
        assert "[malformedLabel]" in err

    def test_budget_exceeded(self, tscl_file, capsys):
        path = tscl_file(POINTER_CHAIN_TSCL)
        assert main(["solve", str(path), "--max-steps", "0"]) == EXIT_BUDGET
        assert "error:" in capsys.readouterr().err

    def test_config_file_and_override(self, tscl_file, tmp_path, capsys):
        path = tscl_file("target 1: a <= b\n")
        cfg = tmp_path / "solver.json"
        cfg.write_text(json.dumps({"pointer_width": 32}), encoding="utf-8")

        assert main(["solve", str(path), "--format", "text", "--config", str(cfg)]) == EXIT_OK
        assert capsys.readouterr().out == "target 1: undefined4\n"

        argv = ["solve", str(path), "--format", "text", "--config", str(cfg),
                "--pointer-width", "16"]
        assert main(argv) == EXIT_OK
        assert capsys.readouterr().out == "target 1: undefined2\n"

    def test_unknown_config_key(self, tscl_file, tmp_path, capsys):
        path = tscl_file(MINIMAL_TSCL)
        cfg = tmp_path / "solver.json"
        cfg.write_text(json.dumps({"colour": "blue"}), encoding="utf-8")
        assert main(["solve", str(path), "--config", str(cfg)]) == EXIT_USAGE
        assert "invalid configuration" in capsys.readouterr().err

    def test_output_file(self, tscl_file, tmp_path):
        path = tscl_file(FUNCTION_TSCL)
        out = tmp_path / "sketches.json"
        assert main(["solve", str(path), "-o", str(out)]) == EXIT_OK
        doc = json.loads(out.read_text(encoding="utf-8"))
        assert doc["targets"][0]["targetVariable"] == {"id": 7}


class TestInputErrors:

    def test_syntax_error(self, tscl_file, capsys):
        path = tscl_file("a <= b\nx <= \n", name="bad.tscl")
        assert main(["solve", str(path)]) == EXIT_USAGE
        err = capsys.readouterr().err
        assert f"{path}:2:6:" in err
        assert "unexpected end of line" in err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["check", str(tmp_path / "nope.tscl")]) == EXIT_USAGE
        assert "input not found" in capsys.readouterr().err

    def test_bad_wire_document(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text('{"subtypingConstraints": [{"lhs": {"baseVar": "x"}}]}', encoding="utf-8")
        assert main(["solve", str(path)]) == EXIT_USAGE
        assert "missing rhs" in capsys.readouterr().err


class TestCheck:

    def test_clean_input(self, tscl_file, capsys):
        path = tscl_file(POINTER_CHAIN_TSCL)
        assert main(["check", str(path)]) == EXIT_OK
        assert "2 constraints" in capsys.readouterr().err

    def test_quiet(self, tscl_file, capsys):
        path = tscl_file(POINTER_CHAIN_TSCL)
        assert main(["check", "-q", str(path)]) == EXIT_OK
        assert capsys.readouterr().err == ""

    def test_malformed(self, tscl_file, capsys):
        path = tscl_file(MALFORMED_TSCL)
        assert main(["check", str(path)]) == EXIT_DIAGNOSTICS
        assert "1 error(s)" in capsys.readouterr().err

    def test_reject_policy(self, tscl_file, capsys):
        path = tscl_file("x.load.load.load <= y\n")
        argv = ["check", str(path), "--max-path-length", "2", "--path-policy", "reject"]
        assert main(argv) == EXIT_DIAGNOSTICS
        assert "[pathTooLong]" in capsys.readouterr().err


class TestDumpGraph:

    def test_saturated(self, tscl_file, capsys):
        path = tscl_file(POINTER_CHAIN_TSCL)
        assert main(["dump-graph", str(path)]) == EXIT_OK
        out = capsys.readouterr().out
        assert out.startswith("digraph ConstraintGraph {")
        assert 'label="saturated";' in out

    def test_unsaturated(self, tscl_file, capsys):
        path = tscl_file(POINTER_CHAIN_TSCL)
        assert main(["dump-graph", "--unsaturated", str(path)]) == EXIT_OK
        assert 'label="unsaturated";' in capsys.readouterr().out


class TestConvert:

    def test_tscl_to_json(self, tscl_file, capsys):
        path = tscl_file(FUNCTION_TSCL)
        assert main(["convert", str(path)]) == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        assert len(doc["subtypingConstraints"]) == 2
        assert doc["additionalConstraints"][0]["targetVariable"] == {"id": 7}

    def test_json_to_ascii_text(self, wire_file, capsys):
        assert main(["convert", str(wire_file), "--to", "text", "--ascii"]) == EXIT_OK
        assert capsys.readouterr().out == (
            "x.load <= y\n"
            "p.store.f32@4 <= q\n"
            "target 7: f.out_0 <= r.in_1\n"
        )

    def test_quoted_base_to_text(self, tmp_path, capsys):
        path = tmp_path / "regs.json"
        path.write_text(json.dumps({"subtypingConstraints": [{
            "lhs": {"baseVar": "instr_001011d8_2@RSP:8", "fieldLabels": [{"ptr": 0}]},
            "rhs": {"baseVar": "y"},
        }]}), encoding="utf-8")
        assert main(["convert", str(path), "--to", "text"]) == EXIT_OK
        assert capsys.readouterr().out == '"instr_001011d8_2@RSP:8".load ⊑ y\n'

    def test_unwritable_base_is_a_usage_error(self, tmp_path, capsys):
        path = tmp_path / "quote.json"
        path.write_text(json.dumps({"subtypingConstraints": [{
            "lhs": {"baseVar": 'say "hi"'}, "rhs": {"baseVar": "y"},
        }]}), encoding="utf-8")
        assert main(["convert", str(path), "--to", "text"]) == EXIT_USAGE
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "cannot be written in TSCL" in captured.err

    def test_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO(MINIMAL_TSCL))
        assert main(["convert", "-", "--to", "text"]) == EXIT_OK
        assert capsys.readouterr().out == "x.load ⊑ y\n"


class TestBinary:

    def test_tscl_to_binary(self, tscl_file, tmp_path):
        path = tscl_file(MINIMAL_TSCL)
        out = tmp_path / "constraints.pb"
        assert main(["convert", str(path), "--to", "binary", "-o", str(out)]) == EXIT_OK
        assert out.read_bytes() == bytes.fromhex("0a0e" "0a07" "0a0178" "12020800" "1203" "0a0179")

    def test_solve_binary_by_suffix(self, tscl_file, tmp_path, capsys):
        out = tmp_path / "function.pb"
        assert main(["convert", str(tscl_file(FUNCTION_TSCL)), "--to", "binary", "-o", str(out)]) == EXIT_OK
        assert main(["solve", str(out), "--format", "text"]) == EXIT_OK
        assert capsys.readouterr().out == "target 7: undefined4 (*)()\n"

    def test_binary_to_text_with_explicit_format(self, tmp_path, capsys):
        path = tmp_path / "constraints.dat"
        path.write_bytes(bytes.fromhex("0a0e" "0a07" "0a0178" "12020800" "1203" "0a0179"))
        argv = ["convert", str(path), "--input-format", "binary", "--to", "text"]
        assert main(argv) == EXIT_OK
        assert capsys.readouterr().out == "x.load ⊑ y\n"

    def test_bad_binary(self, tmp_path, capsys):
        path = tmp_path / "broken.pb"
        path.write_bytes(bytes.fromhex("0a0e0a07"))
        assert main(["check", str(path)]) == EXIT_USAGE
        assert "invalid protobuf message" in capsys.readouterr().err
