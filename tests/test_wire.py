# tests/test_wire.py
"""
Tests for the proto3-JSON constraint document codec.
"""

import io
import json

import pytest

from typesketch.errors import WireFormatError
from typesketch.schema import AdditionalConstraint, SubtypingConstraint, Tid
from typesketch.solver import solve
from typesketch.wire import (
    constraint_from_bytes,
    constraint_set_from_bytes,
    constraint_set_from_wire,
    constraint_set_to_bytes,
    constraint_to_bytes,
    dump_constraint_set_binary,
    load_constraint_set_binary,
    constraint_set_to_wire,
    dump_constraint_set,
    label_from_wire,
    label_to_wire,
    load_constraint_set,
    loads_constraint_set,
    sketches_to_json,
    tid_from_wire,
)
from tests.conftest import (
    v, fld, make_set, function_return_set,
    SAMPLE_WIRE, LOAD, STORE, InParam, OutParam,
)


class TestDecode:

    def test_sample_document(self):
        cs = constraint_set_from_wire(SAMPLE_WIRE)
        assert cs.subtyping == (
            SubtypingConstraint(v("x", LOAD), v("y")),
            SubtypingConstraint(v("p", STORE, fld(32, 4)), v("q")),
        )
        assert cs.additional == (
            AdditionalConstraint(
                SubtypingConstraint(v("f", OutParam(0)), v("r", InParam(1))), Tid(7),
            ),
        )

    def test_snake_case_keys(self):
        doc = {
            "subtyping_constraints": [{
                "lhs": {"base_var": "a", "field_labels": [
                    {"in_param": 2},
                    {"field": {"bit_size": 8, "byte_offset": 3}},
                ]},
                "rhs": {"base_var": "b"},
            }],
        }
        [c] = constraint_set_from_wire(doc).subtyping
        assert c.lhs == v("a", InParam(2), fld(8, 3))

    def test_numeric_enum_and_string_integers(self):
        assert label_from_wire({"ptr": 1}) == STORE
        assert label_from_wire({"ptr": 0}) == LOAD
        assert label_from_wire({"outParam": "4"}) == OutParam(4)

    def test_missing_field_members_default_to_zero(self):
        assert label_from_wire({"field": {"bitSize": 16}}) == fld(16, 0)

    def test_tid_forms(self):
        assert tid_from_wire({"id": 7}) == Tid(7)
        assert tid_from_wire("main") == Tid("main")
        assert tid_from_wire(12) == Tid(12)

    def test_empty_document(self):
        assert len(constraint_set_from_wire({})) == 0


class TestDecodeErrors:

    def test_error_carries_path(self):
        doc = {"subtypingConstraints": [{
            "lhs": {"baseVar": "x", "fieldLabels": [{"ptr": "POINTER_SIDEWAYS"}]},
            "rhs": {"baseVar": "y"},
        }]}
        with pytest.raises(WireFormatError) as info:
            constraint_set_from_wire(doc)
        assert info.value.path == "$.subtypingConstraints[0].lhs.fieldLabels[0].ptr"
        assert str(info.value).startswith("$.subtypingConstraints[0].lhs.fieldLabels[0].ptr: ")

    def test_two_arms_rejected(self):
        with pytest.raises(WireFormatError, match="exactly one"):
            label_from_wire({"ptr": 0, "inParam": 1})

    def test_no_arm_rejected(self):
        with pytest.raises(WireFormatError, match="exactly one"):
            label_from_wire({})

    def test_missing_rhs(self):
        doc = {"subtypingConstraints": [{"lhs": {"baseVar": "x"}}]}
        with pytest.raises(WireFormatError, match="missing rhs"):
            constraint_set_from_wire(doc)

    def test_empty_base(self):
        doc = {"subtypingConstraints": [{"lhs": {"baseVar": ""}, "rhs": {"baseVar": "y"}}]}
        with pytest.raises(WireFormatError) as info:
            constraint_set_from_wire(doc)
        assert info.value.path == "$.subtypingConstraints[0].lhs.baseVar"

    @pytest.mark.parametrize("value", [-1, 2 ** 32, True, "abc", 1.9, float("inf")])
    def test_uint32_range(self, value):
        with pytest.raises(WireFormatError):
            label_from_wire({"inParam": value})

    def test_missing_target_variable(self):
        doc = {"additionalConstraints": [{"subTy": SAMPLE_WIRE["subtypingConstraints"][0]}]}
        with pytest.raises(WireFormatError, match="targetVariable"):
            constraint_set_from_wire(doc)

    def test_invalid_json(self):
        with pytest.raises(WireFormatError, match="invalid JSON"):
            loads_constraint_set('{"subtypingConstraints": [')

    def test_top_level_must_be_object(self):
        with pytest.raises(WireFormatError, match="expected an object"):
            loads_constraint_set("[]")


class TestEncode:

    def test_label_encoding(self):
        assert label_to_wire(LOAD) == {"ptr": "POINTER_LOAD_UNSPECIFIED"}
        assert label_to_wire(STORE) == {"ptr": "POINTER_STORE"}
        assert label_to_wire(InParam(1)) == {"inParam": 1}
        assert label_to_wire(fld(32, 4)) == {"field": {"bitSize": 32, "byteOffset": 4}}

    def test_document_keys(self):
        doc = constraint_set_to_wire(function_return_set())
        assert set(doc) == {"subtypingConstraints", "additionalConstraints"}
        assert doc["additionalConstraints"][0]["targetVariable"] == {"id": 7}

    def test_dump_then_load(self):
        cs = function_return_set()
        buf = io.StringIO()
        text = dump_constraint_set(cs, buf)
        assert buf.getvalue() == text + "\n"
        assert loads_constraint_set(text) == cs

    def test_load_from_path_and_stream(self, wire_file):
        by_path = load_constraint_set(wire_file)
        with open(wire_file, encoding="utf-8") as fp:
            by_stream = load_constraint_set(fp)
        assert by_path == by_stream
        assert len(by_path) == 3


class TestSketchDocument:

    def test_sketches_to_json(self):
        result = solve(make_set(bindings=[(7, v("f", OutParam(0)), v("r"))]))
        doc = json.loads(sketches_to_json(result.sketches))
        assert doc["targets"][0]["targetVariable"] == {"id": 7}
        assert doc["sketches"]


# x.load ⊑ y:  lhs {base_var "x", field_labels [{ptr 0}]}, rhs {base_var "y"}
X_LOAD_Y = bytes.fromhex("0a07" "0a0178" "12020800" "1203" "0a0179")


class TestBinary:

    def test_constraint_tags(self):
        c = SubtypingConstraint(v("x", LOAD), v("y"))
        assert constraint_to_bytes(c) == X_LOAD_Y
        assert constraint_from_bytes(X_LOAD_Y) == c

    def test_label_arms(self):
        c = SubtypingConstraint(v("p", STORE, fld(32, 4), InParam(1), OutParam(0)), v("q"))
        assert constraint_to_bytes(c) == bytes.fromhex(
            "0a17" "0a0170"
            "12020801"              # ptr = POINTER_STORE
            "1206" "220408201004"   # field {bit_size 32, byte_offset 4}
            "12021001"              # in_param = 1
            "12021800"              # out_param = 0
            "1203" "0a0171"
        )

    def test_document(self):
        cs = make_set((v("x", LOAD), v("y")))
        data = bytes.fromhex("0a0e") + X_LOAD_Y
        assert constraint_set_to_bytes(cs) == data
        assert constraint_set_from_bytes(data) == cs

    def test_int_and_str_targets(self):
        cs = make_set(bindings=[(7, v("x", LOAD), v("y")), ("7", v("x", LOAD), v("y"))])
        data = (
            bytes.fromhex("1214" "0a0e") + X_LOAD_Y + bytes.fromhex("1202" "1007")
            + bytes.fromhex("1215" "0a0e") + X_LOAD_Y + bytes.fromhex("1203" "0a0137")
        )
        assert constraint_set_to_bytes(cs) == data
        decoded = constraint_set_from_bytes(data)
        assert [a.target_variable for a in decoded.additional] == [Tid(7), Tid("7")]

    def test_empty_document(self):
        assert constraint_set_to_bytes(make_set()) == b""
        assert len(constraint_set_from_bytes(b"")) == 0

    def test_dump_then_load(self, tmp_path):
        cs = function_return_set()
        buf = io.BytesIO()
        data = dump_constraint_set_binary(cs, buf)
        assert buf.getvalue() == data
        path = tmp_path / "constraints.pb"
        path.write_bytes(data)
        assert load_constraint_set_binary(path) == cs
        assert load_constraint_set_binary(io.BytesIO(data)) == cs


class TestBinaryErrors:

    def test_truncated(self):
        with pytest.raises(WireFormatError, match="invalid protobuf message"):
            constraint_set_from_bytes(bytes.fromhex("0a0e0a07"))

    def test_label_without_arm(self):
        data = bytes.fromhex("0a0c" "0a05" "0a0178" "1200" "1203" "0a0179")
        with pytest.raises(WireFormatError, match="exactly one") as info:
            constraint_set_from_bytes(data)
        assert info.value.path == "$.subtypingConstraints[0].lhs.fieldLabels[0]"

    def test_missing_target(self):
        data = bytes.fromhex("1210" "0a0e") + X_LOAD_Y
        with pytest.raises(WireFormatError, match="missing targetVariable"):
            constraint_set_from_bytes(data)

    def test_negative_offset_cannot_be_encoded(self):
        with pytest.raises(WireFormatError, match="cannot encode"):
            constraint_set_to_bytes(make_set((v("p", fld(32, -4)), v("q"))))
