import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Set

from class_data import ClassDataDecoder, DecodedClass, MethodRecord
from dex import Dex
from symbols import SymbolResolver
from utils import LogHandler

handler = LogHandler()
log = logging.getLogger(__name__)
log.addHandler(handler)
log.setLevel(logging.INFO)


class WarningKind(Enum):
    NULL_CODE_OFFSET = "null code offset"
    DUPLICATE_CODE_OFFSET = "code offset already referenced"
    NON_POSITIVE_INDEX_DELTA = "null method idx diff"
    DUPLICATE_METHOD_INDEX = "method idx already referenced"
    NEVER_REFERENCED = "method idx never referenced"


@dataclass
class HidingWarning:
    kind: WarningKind
    class_name: str
    method_name: str
    method_idx: int
    position: Optional[int] = None
    code_offset: Optional[int] = None
    method_idx_diff: Optional[int] = None

    @property
    def message(self) -> str:
        if self.kind == WarningKind.NULL_CODE_OFFSET:
            return "NULL CODE OFFSET"
        if self.kind == WarningKind.DUPLICATE_CODE_OFFSET:
            return f"Code offset 0x{self.code_offset:X} ALREADY REFERENCED"
        if self.kind == WarningKind.NON_POSITIVE_INDEX_DELTA:
            return "NULL METHOD IDX DIFF"
        if self.kind == WarningKind.DUPLICATE_METHOD_INDEX:
            return f"METHOD_IDX {self.method_idx} ALREADY REFERENCED"
        return (f"Method idx: {self.method_idx} Class: {self.class_name} "
                f"Name: {self.method_name} is NEVER REFERENCED")

    def as_dict(self) -> dict:
        return {
            "kind": self.kind.name,
            "class": self.class_name,
            "method": self.method_name,
            "method_idx": self.method_idx,
            "position": self.position,
            "code_offset": self.code_offset,
            "method_idx_diff": self.method_idx_diff,
            "message": self.message,
        }


@dataclass
class ReferenceSet:
    """Method indices and code offsets seen so far in one detection run."""
    method_indices: Set[int] = field(default_factory=set)
    code_offsets: Set[int] = field(default_factory=set)


def in_scope(class_name: str, method_name: str,
             search_class: Optional[str] = None, search_method: Optional[str] = None) -> bool:
    """An empty or missing class matches everything; the method is only compared once the class matches."""
    if not search_class:
        return True
    if search_class != class_name:
        return False
    return not search_method or search_method == method_name


class HidingDetector:
    """Flags method table entries crafted to hide a method.

    Two phases. check_method() runs once per decoded method and looks for aliased code
    offsets and method indices. check_completeness() runs after every class has been seen and
    reports method_ids entries that no class lists.

    The (class_name, method_name) scope only filters what is returned. Every method is
    tracked regardless, so duplicates across scoped and unscoped classes are still caught.

    Note: a method_idx_diff of 0 on the first method of a group is how method 0 is encoded,
    yet it is reported like any other non-positive diff. Expect that warning on any dex whose
    first method_id is defined in it.
    """

    def __init__(self, resolver: SymbolResolver, class_name: Optional[str] = None,
                 method_name: Optional[str] = None):
        self.resolver = resolver
        self.class_name = class_name
        self.method_name = method_name
        self.references = ReferenceSet()

    def _surface(self, warnings: List[HidingWarning]) -> List[HidingWarning]:
        scoped = [w for w in warnings if in_scope(w.class_name, w.method_name, self.class_name, self.method_name)]
        for w in scoped:
            log.debug(f"{w.kind.name}: {w.class_name}->{w.method_name}")
        return scoped

    def check_method(self, decoded_class: DecodedClass, record: MethodRecord) -> List[HidingWarning]:
        warnings = []

        def warn(kind: WarningKind):
            warnings.append(HidingWarning(
                kind=kind,
                class_name=decoded_class.name,
                method_name=record.name,
                method_idx=record.method_idx,
                position=record.position,
                code_offset=record.code_offset,
                method_idx_diff=record.method_idx_diff,
            ))

        if record.code_offset <= 0:
            warn(WarningKind.NULL_CODE_OFFSET)

        if record.code_offset in self.references.code_offsets:
            warn(WarningKind.DUPLICATE_CODE_OFFSET)
        else:
            self.references.code_offsets.add(record.code_offset)

        if record.method_idx_diff <= 0:
            warn(WarningKind.NON_POSITIVE_INDEX_DELTA)

        if record.method_idx in self.references.method_indices:
            warn(WarningKind.DUPLICATE_METHOD_INDEX)
        else:
            self.references.method_indices.add(record.method_idx)

        return self._surface(warnings)

    def check_class(self, decoded_class: DecodedClass) -> List[HidingWarning]:
        warnings = []
        for record in decoded_class.methods:
            warnings.extend(self.check_method(decoded_class, record))
        return warnings

    def check_completeness(self) -> List[HidingWarning]:
        warnings = []
        for idx in range(self.resolver.header.method_ids_size):
            if idx in self.references.method_indices:
                continue
            warnings.append(HidingWarning(
                kind=WarningKind.NEVER_REFERENCED,
                class_name=self.resolver.method_class_name(idx),
                method_name=self.resolver.method_name(idx),
                method_idx=idx,
            ))
        return self._surface(warnings)

    def run(self, classes: Iterable[DecodedClass]) -> List[HidingWarning]:
        warnings = []
        for decoded_class in classes:
            warnings.extend(self.check_class(decoded_class))
        warnings.extend(self.check_completeness())
        return warnings


def detect(dex: Dex, class_name: Optional[str] = None, method_name: Optional[str] = None) -> List[HidingWarning]:
    resolver = SymbolResolver(dex)
    detector = HidingDetector(resolver, class_name, method_name)
    return detector.run(ClassDataDecoder(dex, resolver).decode_all())
