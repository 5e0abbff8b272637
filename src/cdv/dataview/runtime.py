"""
Runtime Helper Snippets
=======================

Generated classes occasionally need small helper classes at run time. The
code generator copies a helper into the output only if some field in the
compilation uses it.

EndianArray
-----------
An array-like view over numbers stored with an explicit byte order. Used
for multi-byte numeric arrays when a native typed array cannot be used:
the byte order differs from (or is not known to match) the host's, or the
array is not aligned to its element size. Indexing is bounds checked and
throws RangeError; the view is iterable, so ``Array.from()`` works.

StructArray
-----------
An array-like view over embedded structs laid out at a fixed stride.
Reading an element returns a view of that element; assigning an element
copies the bytes of the assigned view.
"""

ENDIAN_ARRAY = "EndianArray"
STRUCT_ARRAY = "StructArray"

HELPER_ORDER = (ENDIAN_ARRAY, STRUCT_ARRAY)


_ENDIAN_ARRAY_JS = """\
class EndianArray {
   constructor(view, byteOffset, length, type, bytesPerElement, littleEndian) {
      this.length = length;
      const getter = view[`get${type}`], setter = view[`set${type}`];
      const toOffset = key => {
         if (("string" !== typeof key) || !/^-?\\d+$/.test(key))
            return undefined;
         const index = Number(key);
         if ((index < 0) || (index >= length))
            throw new RangeError(`invalid index ${key}`);
         return byteOffset + (index * bytesPerElement);
      };
      return new Proxy(this, {
         get(target, key, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.get(target, key, receiver);
            return getter.call(view, offset, littleEndian);
         },
         set(target, key, value, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.set(target, key, value, receiver);
            setter.call(view, offset, value, littleEndian);
            return true;
         }
      });
   }
   *[Symbol.iterator]() {
      for (let i = 0; i < this.length; i++)
         yield this[i];
   }
}
"""

_ENDIAN_ARRAY_TS = """\
class EndianArray<T extends number | bigint> {
   [index: number]: T;
   readonly length: number;
   constructor(view: DataView, byteOffset: number, length: number, type: string, bytesPerElement: number, littleEndian?: boolean) {
      this.length = length;
      const accessors = view as unknown as Record<string, Function>;
      const getter = accessors[`get${type}`], setter = accessors[`set${type}`];
      const toOffset = (key: string | symbol): number | undefined => {
         if (("string" !== typeof key) || !/^-?\\d+$/.test(key))
            return undefined;
         const index = Number(key);
         if ((index < 0) || (index >= length))
            throw new RangeError(`invalid index ${key}`);
         return byteOffset + (index * bytesPerElement);
      };
      return new Proxy(this, {
         get(target, key, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.get(target, key, receiver);
            return getter.call(view, offset, littleEndian) as T;
         },
         set(target, key, value, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.set(target, key, value, receiver);
            setter.call(view, offset, value, littleEndian);
            return true;
         }
      });
   }
   *[Symbol.iterator](): Iterator<T> {
      for (let i = 0; i < this.length; i++)
         yield this[i];
   }
}
"""

_STRUCT_ARRAY_JS = """\
class StructArray {
   constructor(view, byteOffset, length, type, stride) {
      this.length = length;
      const toOffset = key => {
         if (("string" !== typeof key) || !/^-?\\d+$/.test(key))
            return undefined;
         const index = Number(key);
         if ((index < 0) || (index >= length))
            throw new RangeError(`invalid index ${key}`);
         return view.byteOffset + byteOffset + (index * stride);
      };
      return new Proxy(this, {
         get(target, key, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.get(target, key, receiver);
            return new type(view.buffer, offset);
         },
         set(target, key, value, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.set(target, key, value, receiver);
            const bytes = new Uint8Array(value.buffer, value.byteOffset, Math.min(stride, value.byteLength));
            new Uint8Array(view.buffer, offset, bytes.length).set(bytes);
            return true;
         }
      });
   }
   *[Symbol.iterator]() {
      for (let i = 0; i < this.length; i++)
         yield this[i];
   }
}
"""

_STRUCT_ARRAY_TS = """\
class StructArray<T extends DataView> {
   [index: number]: T;
   readonly length: number;
   constructor(view: DataView, byteOffset: number, length: number, type: new (data?: ArrayBufferLike, offset?: number) => T, stride: number) {
      this.length = length;
      const toOffset = (key: string | symbol): number | undefined => {
         if (("string" !== typeof key) || !/^-?\\d+$/.test(key))
            return undefined;
         const index = Number(key);
         if ((index < 0) || (index >= length))
            throw new RangeError(`invalid index ${key}`);
         return view.byteOffset + byteOffset + (index * stride);
      };
      return new Proxy(this, {
         get(target, key, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.get(target, key, receiver);
            return new type(view.buffer, offset);
         },
         set(target, key, value, receiver) {
            const offset = toOffset(key);
            if (undefined === offset)
               return Reflect.set(target, key, value, receiver);
            const bytes = new Uint8Array(value.buffer, value.byteOffset, Math.min(stride, value.byteLength));
            new Uint8Array(view.buffer, offset, bytes.length).set(bytes);
            return true;
         }
      });
   }
   *[Symbol.iterator](): Iterator<T> {
      for (let i = 0; i < this.length; i++)
         yield this[i];
   }
}
"""

_HELPERS = {
    (ENDIAN_ARRAY, False): _ENDIAN_ARRAY_JS,
    (ENDIAN_ARRAY, True): _ENDIAN_ARRAY_TS,
    (STRUCT_ARRAY, False): _STRUCT_ARRAY_JS,
    (STRUCT_ARRAY, True): _STRUCT_ARRAY_TS,
}


def helper_source(name: str, typescript: bool = False) -> str:
    """
    Return the source of a runtime helper.

    Args:
        name: ENDIAN_ARRAY or STRUCT_ARRAY
        typescript: Return the TypeScript variant

    Raises:
        KeyError: For an unknown helper name
    """
    return _HELPERS[(name, typescript)]
