import types
import unittest

from class_data import ClassDataDecoder, DIRECT, VIRTUAL, decode_all
from dex import Dex
from dexbuilder import DexBuilder, hide_and_seek
from errors import IndexOutOfRange, MalformedVarint


def numbered_methods(builder: DexBuilder, descriptor: str, count: int):
  for i in range(count):
    builder.method(descriptor, f"m{i}")


class ClassDataDecoderTestCase(unittest.TestCase):

  def test_decode_all_HideAndSeek(self):
    builder = hide_and_seek()
    dex = Dex.from_bytes(builder.build())
    classes = list(decode_all(dex))

    self.assertEqual(len(classes), 1)
    decoded = classes[0]
    layout = builder.classes[0]
    self.assertEqual(decoded.name, "Lcom/fortiguard/hideandseek/MrHyde;")
    self.assertEqual(decoded.index, 0)
    self.assertEqual(decoded.class_data_off, layout.class_data_off)
    self.assertEqual(decoded.static_fields_size, 0)
    self.assertEqual(decoded.instance_fields_size, 0)

    self.assertEqual([m.name for m in decoded.direct_methods], ["<init>", "a", "thisishidden"])
    self.assertEqual([m.method_idx for m in decoded.direct_methods], [0, 1, 2])
    self.assertEqual([m.position for m in decoded.direct_methods], layout.direct_positions)
    self.assertEqual([m.kind for m in decoded.direct_methods], [DIRECT] * 3)

    hidden = decoded.direct_methods[2]
    self.assertEqual(hidden.method_idx_diff, 1)
    self.assertEqual(hidden.access_flags, 0x2)
    self.assertEqual(hidden.code_offset, 0x1448)
    # 01 02 c8 28
    self.assertEqual(hidden.span, 4)

    self.assertEqual(len(decoded.virtual_methods), 1)
    virtual = decoded.virtual_methods[0]
    self.assertEqual((virtual.name, virtual.method_idx, virtual.kind), ("b", 3, VIRTUAL))
    self.assertEqual(virtual.position, layout.virtual_positions[0])
    self.assertEqual(decoded.methods, decoded.direct_methods + decoded.virtual_methods)

  def test_decode_RunningIndexFromDiffs(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 9)
    builder.add_class("LA;", direct=[(5, 1, 0x100), (0, 1, 0x120), (3, 1, 0x140)])
    decoded = next(decode_all(Dex.from_bytes(builder.build())))
    self.assertEqual([m.method_idx for m in decoded.direct_methods], [5, 5, 8])
    self.assertEqual([m.name for m in decoded.direct_methods], ["m5", "m5", "m8"])

  def test_decode_IndexResetsForVirtualGroup(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 4)
    builder.add_class("LA;", direct=[(2, 1, 0x100)], virtual=[(2, 1, 0x120), (1, 1, 0x140)])
    decoded = next(decode_all(Dex.from_bytes(builder.build())))
    self.assertEqual([m.method_idx for m in decoded.direct_methods], [2])
    self.assertEqual([m.method_idx for m in decoded.virtual_methods], [2, 3])

  def test_decode_SkipsFields(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 2)
    layout = builder.add_class("LA;", direct=[(1, 0x8, 0x1234)], static_fields=2, instance_fields=1)
    decoded = next(decode_all(Dex.from_bytes(builder.build())))
    self.assertEqual(decoded.static_fields_size, 2)
    self.assertEqual(decoded.instance_fields_size, 1)
    self.assertEqual(decoded.direct_methods[0].position, layout.direct_positions[0])
    self.assertEqual(decoded.direct_methods[0].code_offset, 0x1234)
    self.assertEqual(decoded.direct_methods[0].name, "m1")

  def test_decode_ClassWithoutData(self):
    builder = DexBuilder()
    builder.add_class("LMarker;", has_data=False)
    decoded = next(decode_all(Dex.from_bytes(builder.build())))
    self.assertEqual(decoded.name, "LMarker;")
    self.assertEqual(decoded.class_data_off, 0)
    self.assertEqual(decoded.methods, [])

  def test_decode_all_IsLazy(self):
    builder = DexBuilder()
    numbered_methods(builder, "LA;", 1)
    builder.add_class("LA;", direct=[(0, 1, 0x100)])
    # second class points at a method that does not exist
    builder.add_class("LB;", direct=[(7, 1, 0x120)])
    classes = ClassDataDecoder(Dex.from_bytes(builder.build())).decode_all()
    self.assertIsInstance(classes, types.GeneratorType)
    self.assertEqual(next(classes).name, "LA;")
    with self.assertRaises(IndexOutOfRange):
      next(classes)

  def test_decode_TruncatedClassData_MalformedVarint(self):
    builder = hide_and_seek()
    # the class data item is the last thing in the file and ends with the uleb128 of 0x1470
    data = builder.build()[:-1]
    with self.assertRaises(MalformedVarint):
      list(decode_all(Dex.from_bytes(data)))


if __name__ == '__main__':
  unittest.main()
