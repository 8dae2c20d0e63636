"""Resolved, human-readable views over decoded DEX class definitions."""
from typing import List, Optional

from helpers import NO_INDEX


class AccessFlag:
    ACCESSORS = ()

    def __init__(self, flag: int):
        self.flag = flag

    @property
    def names(self) -> List[str]:
        return [name for value, name in self.ACCESSORS if value & self.flag]

    def __int__(self):
        return self.flag

    def __eq__(self, other):
        if isinstance(other, AccessFlag):
            return self.flag == other.flag
        if isinstance(other, int):
            return self.flag == other
        return NotImplemented

    def __hash__(self):
        return hash(self.flag)

    def __str__(self):
        return ' '.join(self.names)

    def __repr__(self):
        return "<%s %#x %s>" % (type(self).__name__, self.flag, self)


class ClassAccessFlag(AccessFlag):
    """Flags of classes and fields."""
    ACCESSORS = (
        (0x1, 'public'),
        (0x2, 'private'),
        (0x4, 'protected'),
        (0x8, 'static'),
        (0x10, 'final'),
        (0x20, 'synchronized'),
        (0x40, 'volatile'),
        (0x80, 'transient'),
        (0x100, 'native'),
        (0x200, 'interface'),
        (0x400, 'abstract'),
        (0x800, 'strict'),
        (0x1000, 'synthetic'),
        (0x2000, 'annotation'),
        (0x4000, 'enum'),
        (0x10000, 'constructor'),
        (0x20000, 'declared-synchronized'),
    )


class MethodAccessFlag(AccessFlag):
    # 0x40 and 0x80 mean bridge/varargs on methods
    ACCESSORS = (
        (0x1, 'public'),
        (0x2, 'private'),
        (0x4, 'protected'),
        (0x8, 'static'),
        (0x10, 'final'),
        (0x20, 'synchronized'),
        (0x40, 'bridge'),
        (0x80, 'varargs'),
        (0x100, 'native'),
        (0x200, 'interface'),
        (0x400, 'abstract'),
        (0x800, 'strict'),
        (0x1000, 'synthetic'),
        (0x2000, 'annotation'),
        (0x4000, 'enum'),
        (0x10000, 'constructor'),
        (0x20000, 'declared-synchronized'),
    )


class ClassInfo:
    def __init__(self, class_def, dex):
        self.class_def = class_def
        self.class_data = class_def.class_data
        self.dex = dex

        self.name: str = dex.type_resolve(class_def.class_idx)
        self.super_class: Optional[str] = None
        if class_def.superclass_idx != NO_INDEX:
            self.super_class = dex.type_resolve(class_def.superclass_idx)
        self.access_flags = ClassAccessFlag(class_def.access_flags)
        self.interfaces: List[str] = []
        if class_def.interfaces is not None:
            self.interfaces = [dex.type_resolve(idx) for idx in class_def.interfaces.list]
        self.source_file: Optional[str] = None
        if class_def.source_file_idx != NO_INDEX:
            self.source_file = dex.string_at(class_def.source_file_idx)

        self.static_fields: List[FieldInfo] = []
        self.instance_fields: List[FieldInfo] = []
        self.direct_methods: List[MethodInfo] = []
        self.virtual_methods: List[MethodInfo] = []
        if self.class_data is not None:
            self.static_fields = self._resolve(self.class_data.static_fields, FieldInfo, 'field_idx_diff')
            self.instance_fields = self._resolve(self.class_data.instance_fields, FieldInfo, 'field_idx_diff')
            self.direct_methods = self._resolve(self.class_data.direct_methods, MethodInfo, 'method_idx_diff')
            self.virtual_methods = self._resolve(self.class_data.virtual_methods, MethodInfo, 'method_idx_diff')

    def _resolve(self, items, cls, diff_attr: str) -> list:
        # each list restarts from zero; ids are running sums of the diffs
        idx = 0
        result = []
        for item in items:
            idx += getattr(item, diff_attr)
            result.append(cls(item, idx, self.dex))
        return result

    @property
    def fields(self) -> List["FieldInfo"]:
        return self.static_fields + self.instance_fields

    @property
    def methods(self) -> List["MethodInfo"]:
        return self.direct_methods + self.virtual_methods

    @property
    def definition(self) -> str:
        ret = "%s class %s" % (self.access_flags, self.name)
        if self.super_class is None:
            return ret
        return ret + " extends %s" % self.super_class

    def __repr__(self):
        return "<ClassInfo %s>" % self.name


class FieldInfo:
    def __init__(self, encoded_field, field_idx: int, dex):
        self.encoded_field = encoded_field
        self.field_idx = field_idx
        self.access_flags = ClassAccessFlag(encoded_field.access_flags)

        field_id = dex.field_id_at(field_idx)
        self.name: str = dex.string_at(field_id.name_idx)
        self.type: str = dex.type_resolve(field_id.type_idx)

    @property
    def definition(self) -> str:
        return "%s %s %s" % (self.access_flags, self.type, self.name)

    def __repr__(self):
        return "<FieldInfo %s>" % self.definition


class MethodInfo:
    def __init__(self, encoded_method, method_idx: int, dex):
        self.encoded_method = encoded_method
        self.method_idx = method_idx
        self.access_flags = MethodAccessFlag(encoded_method.access_flags)
        self.code_item = encoded_method.code_item

        method_id = dex.method_id_at(method_idx)
        proto = dex.proto_id_at(method_id.proto_idx)
        self.name: str = dex.string_at(method_id.name_idx)
        self.ret_type: str = dex.type_resolve(proto.return_type_idx)
        self.parameters: List[str] = []
        if proto.params_types is not None:
            self.parameters = [dex.type_resolve(idx) for idx in proto.params_types.list]

        # names come from debug info and are None where stripped
        self.parameter_names: List[Optional[str]] = []
        if self.code_item is not None and self.code_item.debug_info is not None:
            self.parameter_names = [dex.string_at(idx) if idx >= 0 else None
                                    for idx in self.code_item.debug_info.parameter_names]

    @property
    def definition(self) -> str:
        return "%s %s %s(%s);" % (self.access_flags, self.ret_type, self.name, ', '.join(self.parameters))

    def __repr__(self):
        return "<MethodInfo %s>" % self.definition
