"""Reader for the game's binary tag format (gzip-wrapped .dat files).

Every value is a typed tag. Named tags inside a compound are written as:
  u8  tag id
  u16 name length, name bytes (modified UTF-8)
  payload

All integers are big-endian. The file root is a single named compound.

Tag ids:
  0  End         marks the end of a compound
  1  Byte        s8
  2  Short       s16
  3  Int         s32
  4  Long        s64
  5  Float       f32
  6  Double      f64
  7  Byte_Array  s32 count + count bytes
  8  String      u16 length + modified UTF-8
  9  List        u8 element id + s32 count + count payloads (no names)
  10 Compound    named tags until End
  11 Int_Array   s32 count + count s32
  12 Long_Array  s32 count + count s64
"""

import gzip
import struct
import zlib

TAG_END = 0
TAG_BYTE = 1
TAG_SHORT = 2
TAG_INT = 3
TAG_LONG = 4
TAG_FLOAT = 5
TAG_DOUBLE = 6
TAG_BYTE_ARRAY = 7
TAG_STRING = 8
TAG_LIST = 9
TAG_COMPOUND = 10
TAG_INT_ARRAY = 11
TAG_LONG_ARRAY = 12

TAG_NAMES = {
    TAG_END: 'End',
    TAG_BYTE: 'Byte',
    TAG_SHORT: 'Short',
    TAG_INT: 'Int',
    TAG_LONG: 'Long',
    TAG_FLOAT: 'Float',
    TAG_DOUBLE: 'Double',
    TAG_BYTE_ARRAY: 'Byte_Array',
    TAG_STRING: 'String',
    TAG_LIST: 'List',
    TAG_COMPOUND: 'Compound',
    TAG_INT_ARRAY: 'Int_Array',
    TAG_LONG_ARRAY: 'Long_Array',
}

# Fixed-size scalar payloads: tag id -> struct format
_SCALARS = {
    TAG_BYTE: '>b',
    TAG_SHORT: '>h',
    TAG_INT: '>i',
    TAG_LONG: '>q',
    TAG_FLOAT: '>f',
    TAG_DOUBLE: '>d',
}

_INT_TAGS = (TAG_BYTE, TAG_SHORT, TAG_INT, TAG_LONG)

MAX_DEPTH = 512


class NbtError(ValueError):
    """The file could not be decompressed or is not a valid tag stream."""


class ShapeError(ValueError):
    """The tag tree decoded fine but does not have the expected layout."""


class Tag:
    """One node of the decoded tree.

    value is an int/float/str for scalars, bytes for Byte_Array, a list of
    ints for Int_Array/Long_Array, a list of Tag for List and a dict of
    name -> Tag for Compound.
    """

    __slots__ = ('tag_id', 'value')

    def __init__(self, tag_id, value):
        self.tag_id = tag_id
        self.value = value

    @property
    def kind(self):
        return TAG_NAMES.get(self.tag_id, f'Unknown({self.tag_id})')

    def __repr__(self):
        if self.tag_id == TAG_COMPOUND:
            return f'Tag(Compound, keys={list(self.value)})'
        if self.tag_id in (TAG_LIST, TAG_BYTE_ARRAY, TAG_INT_ARRAY, TAG_LONG_ARRAY):
            return f'Tag({self.kind}, len={len(self.value)})'
        return f'Tag({self.kind}, {self.value!r})'

    def _expect(self, *tag_ids):
        if self.tag_id not in tag_ids:
            wanted = '/'.join(TAG_NAMES[t] for t in tag_ids)
            raise ShapeError(f"expected {wanted} tag, found {self.kind}")

    def as_compound(self):
        self._expect(TAG_COMPOUND)
        return self.value

    def get(self, key):
        """Child of a compound by name. Raises ShapeError if absent."""
        children = self.as_compound()
        if key not in children:
            raise ShapeError(f"missing key '{key}' (have: {', '.join(children) or 'nothing'})")
        return children[key]

    def as_byte_array(self):
        self._expect(TAG_BYTE_ARRAY)
        return self.value

    def as_list(self):
        self._expect(TAG_LIST)
        return self.value

    def as_int(self):
        self._expect(*_INT_TAGS)
        return self.value

    def as_str(self):
        self._expect(TAG_STRING)
        return self.value

    def to_python(self):
        """Plain Python copy of this subtree (dicts, lists, bytes, scalars)."""
        if self.tag_id == TAG_COMPOUND:
            return {k: v.to_python() for k, v in self.value.items()}
        if self.tag_id == TAG_LIST:
            return [v.to_python() for v in self.value]
        if self.tag_id in (TAG_INT_ARRAY, TAG_LONG_ARRAY):
            return list(self.value)
        return self.value


def _decode_mutf8(raw):
    """Modified UTF-8: NUL is C0 80, astral chars are encoded surrogate pairs."""
    text = raw.replace(b'\xc0\x80', b'\x00').decode('utf-8', errors='surrogatepass')
    return text.encode('utf-16', errors='surrogatepass').decode('utf-16', errors='replace')


class NbtReader:
    def __init__(self, data):
        self.data = data
        self.pos = 0

    def _take(self, n):
        if n < 0:
            raise NbtError(f"negative length {n} at offset {self.pos:#x}")
        end = self.pos + n
        if end > len(self.data):
            raise NbtError(
                f"truncated: need {n} bytes at offset {self.pos:#x}, "
                f"only {len(self.data) - self.pos} left"
            )
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def _unpack(self, fmt):
        return struct.unpack(fmt, self._take(struct.calcsize(fmt)))[0]

    def read_string(self):
        length = self._unpack('>H')
        raw = self._take(length)
        try:
            return _decode_mutf8(raw)
        except UnicodeDecodeError as e:
            raise NbtError(f"bad string at offset {self.pos - length:#x}: {e}") from e

    def read_root(self):
        tag_id = self._unpack('>B')
        if tag_id != TAG_COMPOUND:
            raise NbtError(f"root tag is {TAG_NAMES.get(tag_id, tag_id)}, expected Compound")
        name = self.read_string()
        root = self.read_payload(tag_id, 0)
        if self.pos != len(self.data):
            raise NbtError(f"{len(self.data) - self.pos} trailing bytes after root tag")
        return name, root

    def read_payload(self, tag_id, depth):
        if depth > MAX_DEPTH:
            raise NbtError(f"nesting deeper than {MAX_DEPTH} at offset {self.pos:#x}")

        fmt = _SCALARS.get(tag_id)
        if fmt is not None:
            return Tag(tag_id, self._unpack(fmt))

        if tag_id == TAG_BYTE_ARRAY:
            count = self._unpack('>i')
            return Tag(tag_id, bytes(self._take(count)))

        if tag_id == TAG_STRING:
            return Tag(tag_id, self.read_string())

        if tag_id in (TAG_INT_ARRAY, TAG_LONG_ARRAY):
            count = self._unpack('>i')
            code = 'i' if tag_id == TAG_INT_ARRAY else 'q'
            raw = self._take(count * struct.calcsize(code))
            return Tag(tag_id, list(struct.unpack(f'>{count}{code}', raw)))

        if tag_id == TAG_LIST:
            start = self.pos
            elem_id = self._unpack('>B')
            count = self._unpack('>i')
            if count < 0:
                raise NbtError(f"negative list length {count} at offset {start:#x}")
            if elem_id == TAG_END:
                if count > 0:
                    raise NbtError(f"list of End tags with {count} items at offset {start:#x}")
                return Tag(tag_id, [])
            if elem_id not in TAG_NAMES:
                raise NbtError(f"unknown list element tag {elem_id} at offset {start:#x}")
            items = []
            for _ in range(count):
                items.append(self.read_payload(elem_id, depth + 1))
            return Tag(tag_id, items)

        if tag_id == TAG_COMPOUND:
            children = {}
            while True:
                start = self.pos
                child_id = self._unpack('>B')
                if child_id == TAG_END:
                    break
                if child_id not in TAG_NAMES:
                    raise NbtError(f"unknown tag id {child_id} at offset {start:#x}")
                name = self.read_string()
                children[name] = self.read_payload(child_id, depth + 1)
            return Tag(tag_id, children)

        raise NbtError(f"unknown tag id {tag_id} at offset {self.pos:#x}")


def decompress(data):
    """Gunzip a .dat file. Raises NbtError on a bad or truncated stream."""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise NbtError(f"gzip: {e}") from e


def parse_nbt(data):
    """Parse an uncompressed tag stream and return the root compound Tag."""
    _, root = NbtReader(data).read_root()
    return root


def decode(raw):
    return parse_nbt(decompress(raw))
