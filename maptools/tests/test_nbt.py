import gzip
import struct
import unittest

from maptools.common import nbt
from maptools.tests.nbt_fixtures import byte_array, compound, map_file, name, named


class ParseTests(unittest.TestCase):
    def test_map_file_tree(self):
        root = nbt.parse_nbt(map_file([0, 1, 2, 3]))
        data = root.get('data')
        self.assertEqual(data.get('colors').as_byte_array(), b'\x00\x01\x02\x03')
        self.assertEqual(data.get('xCenter').as_int(), 64)
        self.assertEqual(data.get('zCenter').as_int(), -64)
        self.assertEqual(data.get('dimension').as_str(), 'minecraft:overworld')

    def test_all_scalar_kinds(self):
        body = named(10, 'root', compound(
            named(1, 'b', struct.pack('>b', -5)),
            named(2, 's', struct.pack('>h', -300)),
            named(3, 'i', struct.pack('>i', 70000)),
            named(4, 'l', struct.pack('>q', -(1 << 40))),
            named(5, 'f', struct.pack('>f', 1.5)),
            named(6, 'd', struct.pack('>d', 0.25)),
            named(11, 'ia', struct.pack('>i3i', 3, 1, -2, 3)),
            named(12, 'la', struct.pack('>iq', 1, 1 << 33)),
        ))
        values = nbt.parse_nbt(body).to_python()
        self.assertEqual(values, {
            'b': -5, 's': -300, 'i': 70000, 'l': -(1 << 40),
            'f': 1.5, 'd': 0.25, 'ia': [1, -2, 3], 'la': [1 << 33],
        })

    def test_byte_array_is_unsigned(self):
        root = nbt.parse_nbt(map_file([255, 128, 127]))
        self.assertEqual(list(root.get('data').get('colors').as_byte_array()), [255, 128, 127])

    def test_list_of_compounds(self):
        entry = compound(named(3, 'x', struct.pack('>i', 7)))
        body = named(10, '', compound(
            named(9, 'banners', bytes([10]) + struct.pack('>i', 2) + entry + entry),
            named(9, 'frames', bytes([0]) + struct.pack('>i', 0)),
        ))
        root = nbt.parse_nbt(body)
        self.assertEqual([t.get('x').as_int() for t in root.get('banners').as_list()], [7, 7])
        self.assertEqual(root.get('frames').as_list(), [])

    def test_modified_utf8_null(self):
        raw = b'a\xc0\x80b'
        body = named(10, '', compound(named(8, 's', struct.pack('>H', len(raw)) + raw)))
        self.assertEqual(nbt.parse_nbt(body).get('s').as_str(), 'a\x00b')


class MalformedTests(unittest.TestCase):
    def assertNbtError(self, body):
        with self.assertRaises(nbt.NbtError):
            nbt.parse_nbt(body)

    def test_empty(self):
        self.assertNbtError(b'')

    def test_root_not_compound(self):
        self.assertNbtError(named(3, '', struct.pack('>i', 1)))

    def test_bad_tag_id(self):
        self.assertNbtError(named(10, '', bytes([42]) + name('x') + b'\x00'))

    def test_truncated_payload(self):
        full = map_file([1, 2, 3, 4])
        for cut in (1, 5, len(full) // 2, len(full) - 1):
            with self.subTest(cut=cut):
                self.assertNbtError(full[:cut])

    def test_byte_array_length_past_end(self):
        body = named(10, '', compound(named(7, 'colors', struct.pack('>i', 100) + b'\x01\x02')))
        self.assertNbtError(body)

    def test_negative_list_length(self):
        body = named(10, '', compound(named(9, 'l', bytes([1]) + struct.pack('>i', -1))))
        self.assertNbtError(body)

    def test_list_of_end_with_items(self):
        body = named(10, '', compound(named(9, 'l', bytes([0]) + struct.pack('>i', 3))))
        self.assertNbtError(body)

    def test_trailing_bytes(self):
        self.assertNbtError(map_file([0]) + b'\x00')

    def test_nesting_limit(self):
        depth = nbt.MAX_DEPTH + 5
        body = named(10, '', b''.join(named(10, 'n', b'') for _ in range(depth)) + b'\x00' * (depth + 1))
        self.assertNbtError(body)


class DecodeTests(unittest.TestCase):
    def test_gzip_roundtrip(self):
        root = nbt.decode(gzip.compress(map_file([5, 6])))
        self.assertEqual(root.get('data').get('colors').as_byte_array(), b'\x05\x06')

    def test_not_gzip(self):
        with self.assertRaises(nbt.NbtError):
            nbt.decode(b'this is not gzip data')

    def test_truncated_gzip(self):
        packed = gzip.compress(map_file(list(range(64))))
        with self.assertRaises(nbt.NbtError):
            nbt.decode(packed[:len(packed) // 2])


class AccessorTests(unittest.TestCase):
    def setUp(self):
        self.root = nbt.parse_nbt(map_file([0]))

    def test_missing_key(self):
        with self.assertRaises(nbt.ShapeError):
            self.root.get('nope')

    def test_wrong_kind(self):
        with self.assertRaises(nbt.ShapeError):
            self.root.get('data').get('xCenter').as_byte_array()
        with self.assertRaises(nbt.ShapeError):
            self.root.get('data').get('colors').get('x')

    def test_errors_are_distinct(self):
        self.assertFalse(issubclass(nbt.ShapeError, nbt.NbtError))
        self.assertFalse(issubclass(nbt.NbtError, nbt.ShapeError))


if __name__ == '__main__':
    unittest.main()
