"""
typesketch.proto
================

Protocol-buffer message classes for the binary constraint exchange format.

The descriptors are built at import time from the schema below, into a
private descriptor pool, so no generated ``_pb2`` module and no ``protoc``
run are needed::

    package ctypes;
    message Tid { oneof id { string name = 1; int64 number = 2; } }

    package constraints;
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
    message ConstraintSet {
      repeated SubtypingConstraint subtyping_constraints = 1;
      repeated AdditionalConstraint additional_constraints = 2;
    }

A ``Tid`` keeps string and integer ids apart on the wire.  The codec
itself lives in :mod:`typesketch.wire`.
"""

from __future__ import annotations

from typing import Optional

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_FDP = descriptor_pb2.FieldDescriptorProto

POOL = descriptor_pool.DescriptorPool()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _message(fdp: descriptor_pb2.FileDescriptorProto, name: str) -> descriptor_pb2.DescriptorProto:
    msg = fdp.message_type.add()
    msg.name = name
    return msg


def _field(msg: descriptor_pb2.DescriptorProto, name: str, number: int, ftype: int,
           type_name: Optional[str] = None, repeated: bool = False,
           oneof: Optional[int] = None) -> None:
    field = msg.field.add()
    field.name = name
    field.json_name = _camel(name)
    field.number = number
    field.type = ftype
    field.label = _FDP.LABEL_REPEATED if repeated else _FDP.LABEL_OPTIONAL
    if type_name is not None:
        field.type_name = type_name
    if oneof is not None:
        field.oneof_index = oneof


def _ctypes_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = "ctypes.proto"
    fdp.package = "ctypes"
    fdp.syntax = "proto3"

    tid = _message(fdp, "Tid")
    tid.oneof_decl.add().name = "id"
    _field(tid, "name", 1, _FDP.TYPE_STRING, oneof=0)
    _field(tid, "number", 2, _FDP.TYPE_INT64, oneof=0)
    return fdp


def _constraints_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = "constraints.proto"
    fdp.package = "constraints"
    fdp.syntax = "proto3"
    fdp.dependency.append("ctypes.proto")

    pointer = fdp.enum_type.add()
    pointer.name = "Pointer"
    for number, name in enumerate(("POINTER_LOAD_UNSPECIFIED", "POINTER_STORE")):
        value = pointer.value.add()
        value.name = name
        value.number = number

    fld = _message(fdp, "Field")
    _field(fld, "bit_size", 1, _FDP.TYPE_UINT32)
    _field(fld, "byte_offset", 2, _FDP.TYPE_UINT32)

    label = _message(fdp, "FieldLabel")
    label.oneof_decl.add().name = "inner_type"
    _field(label, "ptr", 1, _FDP.TYPE_ENUM, ".constraints.Pointer", oneof=0)
    _field(label, "in_param", 2, _FDP.TYPE_UINT32, oneof=0)
    _field(label, "out_param", 3, _FDP.TYPE_UINT32, oneof=0)
    _field(label, "field", 4, _FDP.TYPE_MESSAGE, ".constraints.Field", oneof=0)

    dtv = _message(fdp, "DerivedTypeVariable")
    _field(dtv, "base_var", 1, _FDP.TYPE_STRING)
    _field(dtv, "field_labels", 2, _FDP.TYPE_MESSAGE, ".constraints.FieldLabel", repeated=True)

    sub = _message(fdp, "SubtypingConstraint")
    _field(sub, "lhs", 1, _FDP.TYPE_MESSAGE, ".constraints.DerivedTypeVariable")
    _field(sub, "rhs", 2, _FDP.TYPE_MESSAGE, ".constraints.DerivedTypeVariable")

    add = _message(fdp, "AdditionalConstraint")
    _field(add, "sub_ty", 1, _FDP.TYPE_MESSAGE, ".constraints.SubtypingConstraint")
    _field(add, "target_variable", 2, _FDP.TYPE_MESSAGE, ".ctypes.Tid")

    doc = _message(fdp, "ConstraintSet")
    _field(doc, "subtyping_constraints", 1, _FDP.TYPE_MESSAGE,
           ".constraints.SubtypingConstraint", repeated=True)
    _field(doc, "additional_constraints", 2, _FDP.TYPE_MESSAGE,
           ".constraints.AdditionalConstraint", repeated=True)
    return fdp


POOL.AddSerializedFile(_ctypes_file().SerializeToString())
POOL.AddSerializedFile(_constraints_file().SerializeToString())


def _class(full_name: str):
    return message_factory.GetMessageClass(POOL.FindMessageTypeByName(full_name))


Tid = _class("ctypes.Tid")
Field = _class("constraints.Field")
FieldLabel = _class("constraints.FieldLabel")
DerivedTypeVariable = _class("constraints.DerivedTypeVariable")
SubtypingConstraint = _class("constraints.SubtypingConstraint")
AdditionalConstraint = _class("constraints.AdditionalConstraint")
ConstraintSet = _class("constraints.ConstraintSet")
