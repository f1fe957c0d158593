"""
typesketch.wire
===============

Codec between the Python model and the constraint exchange schema.

The schema is the ``constraints`` proto3 package::

    enum Pointer { POINTER_LOAD_UNSPECIFIED = 0; POINTER_STORE = 1; }
    message Field { uint32 bit_size = 1; uint32 byte_offset = 2; }
    message FieldLabel {
      oneof inner_type { Pointer ptr = 1; uint32 in_param = 2;
                         uint32 out_param = 3; Field field = 4; }
    }
    message DerivedTypeVariable { string base_var = 1;
                                  repeated FieldLabel field_labels = 2; }
    message SubtypingConstraint { DerivedTypeVariable lhs = 1;
                                  DerivedTypeVariable rhs = 2; }
    message AdditionalConstraint { SubtypingConstraint sub_ty = 1;
                                   ctypes.Tid target_variable = 2; }

Documents use the proto3 JSON mapping (lowerCamelCase keys, enum names as
strings).  On input the original snake_case field names, numeric enum
values and string-encoded integers are accepted as well, as the mapping
allows.  A ``ctypes.Tid`` is written as ``{"id": value}``.

A constraint-set document is::

    {"subtypingConstraints": [SubtypingConstraint, ...],
     "additionalConstraints": [AdditionalConstraint, ...]}

The same messages travel in the protobuf binary encoding
(``constraint_set_to_bytes`` / ``load_constraint_set_binary``), through the
message classes of :mod:`typesketch.proto`.  There a ``ctypes.Tid`` is a
oneof of ``name`` (string) and ``number`` (int64).

Field geometry is *not* validated here; that happens at graph
construction so that one bad label rejects one constraint, not the whole
document.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Any, Dict, List, Mapping, Optional, Union

from google.protobuf import json_format
from google.protobuf.message import DecodeError, Message

from . import proto
from .constraint_set import ConstraintSet
from .errors import WireFormatError
from .schema import (
    AdditionalConstraint,
    DerivedTypeVariable,
    FieldLabel,
    InParam,
    Label,
    OutParam,
    Pointer,
    PointerLabel,
    SubtypingConstraint,
    Tid,
    VariableId,
)
from .sketches import SketchTable

_POINTER_NAMES = {
    Pointer.LOAD: "POINTER_LOAD_UNSPECIFIED",
    Pointer.STORE: "POINTER_STORE",
}
_POINTER_BY_NAME = {name: ptr for ptr, name in _POINTER_NAMES.items()}


# ===========================================================================
# HELPERS
# ===========================================================================

def _get(obj: Mapping[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in obj:
        return obj[camel]
    return obj.get(snake, default)


def _uint32(value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise WireFormatError("expected an unsigned integer, got a boolean", path)
    if isinstance(value, float) and not value.is_integer():
        raise WireFormatError(f"expected an unsigned integer, got {value!r}", path)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise WireFormatError(f"expected an unsigned integer, got {value!r}", path) from None
    if not 0 <= number <= 0xFFFFFFFF:
        raise WireFormatError(f"{number} is out of uint32 range", path)
    return number


def _mapping(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise WireFormatError(f"expected an object, got {type(value).__name__}", path)
    return value


def _sequence(value: Any, path: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise WireFormatError(f"expected a list, got {type(value).__name__}", path)
    return value


# ===========================================================================
# ENCODING
# ===========================================================================

def label_to_wire(label: Label) -> Dict[str, Any]:
    if isinstance(label, PointerLabel):
        return {"ptr": _POINTER_NAMES[label.direction]}
    if isinstance(label, InParam):
        return {"inParam": label.index}
    if isinstance(label, OutParam):
        return {"outParam": label.index}
    if isinstance(label, FieldLabel):
        return {"field": {"bitSize": label.bit_size, "byteOffset": label.byte_offset}}
    raise TypeError(f"unknown label kind {type(label).__name__}")


def dtv_to_wire(dtv: DerivedTypeVariable) -> Dict[str, Any]:
    return {
        "baseVar": dtv.base.name,
        "fieldLabels": [label_to_wire(label) for label in dtv.path],
    }


def constraint_to_wire(c: SubtypingConstraint) -> Dict[str, Any]:
    return {"lhs": dtv_to_wire(c.lhs), "rhs": dtv_to_wire(c.rhs)}


def additional_to_wire(a: AdditionalConstraint) -> Dict[str, Any]:
    return {
        "subTy": constraint_to_wire(a.constraint),
        "targetVariable": {"id": a.target_variable.value},
    }


def constraint_set_to_wire(cs: ConstraintSet) -> Dict[str, Any]:
    return {
        "subtypingConstraints": [constraint_to_wire(c) for c in cs.subtyping],
        "additionalConstraints": [additional_to_wire(a) for a in cs.additional],
    }


# ===========================================================================
# DECODING
# ===========================================================================

def label_from_wire(obj: Any, path: str = "$") -> Label:
    obj = _mapping(obj, path)
    arms = [
        key for key in ("ptr", "inParam", "in_param", "outParam", "out_param", "field")
        if key in obj
    ]
    if len(arms) != 1:
        raise WireFormatError(
            f"FieldLabel must set exactly one of ptr/in_param/out_param/field, got {arms or 'none'}",
            path,
        )
    arm = arms[0]
    value = obj[arm]
    if arm == "ptr":
        if isinstance(value, str):
            if value not in _POINTER_BY_NAME:
                raise WireFormatError(f"unknown Pointer value {value!r}", f"{path}.ptr")
            return PointerLabel(_POINTER_BY_NAME[value])
        number = _uint32(value, f"{path}.ptr")
        try:
            return PointerLabel(Pointer(number))
        except ValueError:
            raise WireFormatError(f"unknown Pointer value {number}", f"{path}.ptr") from None
    if arm in ("inParam", "in_param"):
        return InParam(_uint32(value, f"{path}.{arm}"))
    if arm in ("outParam", "out_param"):
        return OutParam(_uint32(value, f"{path}.{arm}"))
    fld = _mapping(value, f"{path}.field")
    return FieldLabel(
        bit_size=_uint32(_get(fld, "bitSize", "bit_size", 0), f"{path}.field.bitSize"),
        byte_offset=_uint32(_get(fld, "byteOffset", "byte_offset", 0), f"{path}.field.byteOffset"),
    )


def dtv_from_wire(obj: Any, path: str = "$") -> DerivedTypeVariable:
    obj = _mapping(obj, path)
    base = _get(obj, "baseVar", "base_var", "")
    if not isinstance(base, str) or not base:
        raise WireFormatError("baseVar must be a non-empty string", f"{path}.baseVar")
    labels = _sequence(_get(obj, "fieldLabels", "field_labels"), f"{path}.fieldLabels")
    return DerivedTypeVariable(
        VariableId(base),
        tuple(label_from_wire(lbl, f"{path}.fieldLabels[{i}]") for i, lbl in enumerate(labels)),
    )


def constraint_from_wire(obj: Any, path: str = "$") -> SubtypingConstraint:
    obj = _mapping(obj, path)
    for key in ("lhs", "rhs"):
        if key not in obj:
            raise WireFormatError(f"missing {key}", path)
    return SubtypingConstraint(
        dtv_from_wire(obj["lhs"], f"{path}.lhs"),
        dtv_from_wire(obj["rhs"], f"{path}.rhs"),
    )


def tid_from_wire(obj: Any, path: str = "$") -> Tid:
    if isinstance(obj, Mapping):
        if "id" not in obj:
            raise WireFormatError("Tid needs an id", path)
        obj = obj["id"]
    if isinstance(obj, bool) or not isinstance(obj, (str, int)):
        raise WireFormatError(f"Tid id must be a string or integer, got {obj!r}", path)
    return Tid(obj)


def additional_from_wire(obj: Any, path: str = "$") -> AdditionalConstraint:
    obj = _mapping(obj, path)
    sub_ty = _get(obj, "subTy", "sub_ty")
    target = _get(obj, "targetVariable", "target_variable")
    if sub_ty is None:
        raise WireFormatError("missing subTy", path)
    if target is None:
        raise WireFormatError("missing targetVariable", path)
    return AdditionalConstraint(
        constraint_from_wire(sub_ty, f"{path}.subTy"),
        tid_from_wire(target, f"{path}.targetVariable"),
    )


def constraint_set_from_wire(obj: Any) -> ConstraintSet:
    obj = _mapping(obj, "$")
    cs = ConstraintSet()
    subs = _sequence(_get(obj, "subtypingConstraints", "subtyping_constraints"),
                     "$.subtypingConstraints")
    for i, c in enumerate(subs):
        cs.add_constraint(constraint_from_wire(c, f"$.subtypingConstraints[{i}]"))
    adds = _sequence(_get(obj, "additionalConstraints", "additional_constraints"),
                     "$.additionalConstraints")
    for i, a in enumerate(adds):
        cs.add_additional(additional_from_wire(a, f"$.additionalConstraints[{i}]"))
    return cs


# ===========================================================================
# DOCUMENTS
# ===========================================================================

def loads_constraint_set(text: str) -> ConstraintSet:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise WireFormatError(f"invalid JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})") from exc
    return constraint_set_from_wire(data)


def load_constraint_set(source: Union[str, Path, IO[str]]) -> ConstraintSet:
    """Read a constraint-set document from a path or an open text file."""
    if isinstance(source, (str, Path)):
        text = Path(source).read_text(encoding="utf-8")
    else:
        text = source.read()
    return loads_constraint_set(text)


def dump_constraint_set(cs: ConstraintSet, fp: Optional[IO[str]] = None,
                        indent: Optional[int] = 2) -> str:
    text = json.dumps(constraint_set_to_wire(cs), indent=indent, ensure_ascii=False)
    if fp is not None:
        fp.write(text)
        fp.write("\n")
    return text


def sketches_to_json(table: SketchTable, indent: Optional[int] = 2) -> str:
    """The sketch hand-off document for the type printer."""
    return json.dumps(table.to_dict(), indent=indent, ensure_ascii=False)


# ===========================================================================
# BINARY
# ===========================================================================

def _tid_to_proto(obj: Dict[str, Any]) -> Dict[str, Any]:
    value = obj["id"]
    return {"number": value} if isinstance(value, int) else {"name": value}


def _tid_from_proto(obj: Mapping[str, Any]) -> Dict[str, Any]:
    if "name" in obj:
        return {"id": obj["name"]}
    if "number" in obj:
        return {"id": int(obj["number"])}
    return {}


def _encode(doc: Dict[str, Any], message: Message) -> bytes:
    try:
        json_format.ParseDict(doc, message)
    except (json_format.ParseError, ValueError) as exc:
        raise WireFormatError(f"cannot encode as protobuf: {exc}") from exc
    return message.SerializeToString(deterministic=True)


def _decode(data: bytes, message: Message) -> Dict[str, Any]:
    try:
        message.ParseFromString(data)
    except DecodeError as exc:
        raise WireFormatError(f"invalid protobuf message: {exc}") from exc
    return json_format.MessageToDict(message)


def constraint_to_bytes(c: SubtypingConstraint) -> bytes:
    return _encode(constraint_to_wire(c), proto.SubtypingConstraint())


def constraint_from_bytes(data: bytes) -> SubtypingConstraint:
    return constraint_from_wire(_decode(data, proto.SubtypingConstraint()))


def constraint_set_to_bytes(cs: ConstraintSet) -> bytes:
    """Serialise *cs* as a ``constraints.ConstraintSet`` message."""
    doc = constraint_set_to_wire(cs)
    for add in doc["additionalConstraints"]:
        add["targetVariable"] = _tid_to_proto(add["targetVariable"])
    return _encode(doc, proto.ConstraintSet())


def constraint_set_from_bytes(data: bytes) -> ConstraintSet:
    """Decode a ``constraints.ConstraintSet`` message.

    Raises
    ------
    WireFormatError
        The bytes are not a valid message, or a decoded value is out of
        place (a FieldLabel with no arm set, a missing Tid, ...).
    """
    doc = _decode(data, proto.ConstraintSet())
    for add in doc.get("additionalConstraints", []):
        if "targetVariable" in add:
            add["targetVariable"] = _tid_from_proto(add["targetVariable"])
    return constraint_set_from_wire(doc)


def load_constraint_set_binary(source: Union[str, Path, IO[bytes]]) -> ConstraintSet:
    """Read a binary constraint-set message from a path or an open binary file."""
    if isinstance(source, (str, Path)):
        data = Path(source).read_bytes()
    else:
        data = source.read()
    return constraint_set_from_bytes(data)


def dump_constraint_set_binary(cs: ConstraintSet, fp: Optional[IO[bytes]] = None) -> bytes:
    data = constraint_set_to_bytes(cs)
    if fp is not None:
        fp.write(data)
    return data
