import unittest

from class_data import decode_all
from detector import HidingDetector, ReferenceSet, WarningKind, detect, in_scope
from dex import Dex
from dexbuilder import DexBuilder, hide_and_seek
from symbols import SymbolResolver


def kinds(warnings):
  return [w.kind for w in warnings]


def numbered_methods(builder, descriptor, count):
  for i in range(count):
    builder.method(descriptor, f"m{i}")


class HidingDetectorTestCase(unittest.TestCase):

  def test_detect_CleanClass_OnlyFirstZeroDiff(self):
    warnings = detect(Dex.from_bytes(hide_and_seek().build()))
    self.assertEqual(kinds(warnings), [WarningKind.NON_POSITIVE_INDEX_DELTA])
    self.assertEqual(warnings[0].method_name, "<init>")
    self.assertEqual(warnings[0].method_idx, 0)

  def test_detect_ZeroDiffAliasesPreviousIndex(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 9)
    layout = builder.add_class("LA;", direct=[(5, 1, 0x100), (0, 1, 0x120), (3, 1, 0x140)])
    warnings = detect(Dex.from_bytes(builder.build()))

    # 5, 5, 8
    self.assertEqual(kinds(warnings)[:2], [WarningKind.NON_POSITIVE_INDEX_DELTA,
                                           WarningKind.DUPLICATE_METHOD_INDEX])
    self.assertTrue(all(w.position == layout.direct_positions[1] for w in warnings[:2]))
    self.assertEqual(warnings[1].method_idx, 5)
    never = [w.method_idx for w in warnings if w.kind == WarningKind.NEVER_REFERENCED]
    self.assertEqual(never, [0, 1, 2, 3, 4, 6, 7])

  def test_detect_DuplicateCodeOffsetAcrossClasses(self):
    builder = DexBuilder()
    builder.method("LA;", "visible")
    builder.method("LB;", "hidden")
    builder.add_class("LA;", direct=[(0, 1, 0x1234)])
    layout_b = builder.add_class("LB;", direct=[(1, 1, 0x1234)])
    warnings = detect(Dex.from_bytes(builder.build()))

    duplicates = [w for w in warnings if w.kind == WarningKind.DUPLICATE_CODE_OFFSET]
    self.assertEqual(len(duplicates), 1)
    self.assertEqual(duplicates[0].class_name, "LB;")
    self.assertEqual(duplicates[0].method_name, "hidden")
    self.assertEqual(duplicates[0].position, layout_b.direct_positions[0])
    self.assertEqual(duplicates[0].code_offset, 0x1234)

  def test_detect_NullCodeOffset(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 2)
    builder.add_class("LA;", direct=[(1, 1, 0x100)], virtual=[(0, 0x401, 0)])
    warnings = detect(Dex.from_bytes(builder.build()))
    null = [w for w in warnings if w.kind == WarningKind.NULL_CODE_OFFSET]
    self.assertEqual(len(null), 1)
    self.assertEqual(null[0].method_name, "m0")

  def test_detect_NeverReferenced(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 10)
    diffs = [0, 1, 1, 2, 1, 1, 1, 1, 1]
    builder.add_class("LA;", direct=[(d, 1, 0x100 + 0x20 * i) for i, d in enumerate(diffs)])
    warnings = detect(Dex.from_bytes(builder.build()))

    never = [w for w in warnings if w.kind == WarningKind.NEVER_REFERENCED]
    self.assertEqual(len(never), 1)
    self.assertEqual(never[0].method_idx, 3)
    self.assertEqual(never[0].class_name, "LA;")
    self.assertEqual(never[0].method_name, "m3")
    self.assertIsNone(never[0].position)
    self.assertIn("NEVER REFERENCED", never[0].message)

  def test_detect_IndexAndOffsetAliasTogether(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 4)
    builder.add_class("LA;", direct=[(3, 1, 0x1448), (0, 1, 0x1448)])
    warnings = detect(Dex.from_bytes(builder.build()))
    second = [w.kind for w in warnings if w.method_idx == 3 and w.position is not None
              and w.position != builder.classes[0].direct_positions[0]]
    self.assertEqual(second, [WarningKind.DUPLICATE_CODE_OFFSET,
                              WarningKind.NON_POSITIVE_INDEX_DELTA,
                              WarningKind.DUPLICATE_METHOD_INDEX])

  def test_check_completeness_BeforeAnyClass_EverythingMissing(self):
    dex = Dex.from_bytes(hide_and_seek().build())
    detector = HidingDetector(SymbolResolver(dex))
    self.assertEqual([w.method_idx for w in detector.check_completeness()], [0, 1, 2, 3])

  def test_detectors_DoNotShareState(self):
    dex = Dex.from_bytes(hide_and_seek().build())
    self.assertEqual(detect(dex), detect(dex))
    resolver = SymbolResolver(dex)
    first = HidingDetector(resolver)
    first.run(decode_all(dex, resolver))
    second = HidingDetector(resolver)
    self.assertEqual(second.references, ReferenceSet())
    self.assertEqual(first.references.method_indices, {0, 1, 2, 3})
    self.assertEqual(first.references.code_offsets, {0x1400, 0x1420, 0x1448, 0x1470})


class ScopeTestCase(unittest.TestCase):

  def setUp(self):
    builder = DexBuilder()
    builder.method("LB;", "first")
    builder.method("LA;", "alias")
    builder.method("LA;", "other")
    builder.add_class("LB;", direct=[(0, 1, 0x1234)])
    builder.add_class("LA;", direct=[(1, 1, 0x1234), (1, 1, 0x1300)])
    self.dex = Dex.from_bytes(builder.build())

  def test_scope_Class_StillTracksOtherClasses(self):
    warnings = detect(self.dex, "LA;")
    self.assertEqual(kinds(warnings), [WarningKind.DUPLICATE_CODE_OFFSET])
    self.assertEqual(warnings[0].method_name, "alias")

  def test_scope_EarlierClass_NoOffsetWarning(self):
    # LB;->first is the first owner of 0x1234, only its zero diff is reported
    self.assertEqual(kinds(detect(self.dex, "LB;")), [WarningKind.NON_POSITIVE_INDEX_DELTA])

  def test_scope_Method(self):
    self.assertEqual(detect(self.dex, "LA;", "other"), [])
    self.assertEqual(len(detect(self.dex, "LA;", "alias")), 1)

  def test_in_scope(self):
    self.assertTrue(in_scope("LA;", "m", None, None))
    self.assertTrue(in_scope("LA;", "m", "", "x"))
    self.assertTrue(in_scope("LA;", "m", "LA;", None))
    self.assertTrue(in_scope("LA;", "m", "LA;", ""))
    self.assertTrue(in_scope("LA;", "m", "LA;", "m"))
    self.assertFalse(in_scope("LA;", "m", "LA;", "n"))
    self.assertFalse(in_scope("LA;", "m", "LB;", None))


if __name__ == '__main__':
  unittest.main()
