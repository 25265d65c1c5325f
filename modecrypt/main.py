# MODECRYPT BLOCK-MODE ENGINE ->

import os as _os_module


class ModeCryptError(ValueError):
    """Base error; carries algorithm/mode/offset context, never key material."""

    def __init__(self, reason: str, *, algorithm=None, mode=None, offset=None):
        self.reason = reason
        self.algorithm = algorithm
        self.mode = getattr(mode, "value", mode)
        self.offset = offset
        context = []
        if self.algorithm:
            context.append(f"algorithm={self.algorithm}")
        if self.mode:
            context.append(f"mode={self.mode}")
        if self.offset is not None:
            context.append(f"offset={self.offset}")
        message = f"{reason} ({', '.join(context)})" if context else reason
        super().__init__(message)

    def with_context(self, *, algorithm=None, mode=None, offset=None) -> "ModeCryptError":
        return type(self)(
            self.reason,
            algorithm=algorithm if algorithm is not None else self.algorithm,
            mode=mode if mode is not None else self.mode,
            offset=offset if offset is not None else self.offset,
        )


class UnsupportedAlgorithmError(ModeCryptError):
    pass


class InvalidKeyError(ModeCryptError):
    pass


class InvalidBlockSizeError(ModeCryptError):
    pass


class PaddingError(ModeCryptError):
    pass


class TruncatedStreamError(ModeCryptError):
    pass


class IVRequiredError(ModeCryptError):
    pass


class IVReuseError(ModeCryptError):
    pass


class modecrypt:
    import concurrent.futures
    import contextlib
    import dataclasses
    import enum
    import hmac
    import pathlib
    import secrets
    import sys
    import threading
    import typing
    import warnings
    import numpy as np
    from PIL import Image
    from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
    from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES

    @staticmethod
    def _env_int(name: str, minimum: int = 1) -> "modecrypt.typing.Optional[int]":
        value = _os_module.getenv(name)
        if not value:
            return None
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return None
        if parsed < minimum:
            return None
        return parsed

    ENGINE_VERSION = "1.0.0"
    BMP_HEADER_LENGTH = 54
    DEFAULT_CHUNK_SIZE = 4096
    CHUNK_SIZE = _env_int("MODECRYPT_CHUNK_SIZE") or DEFAULT_CHUNK_SIZE
    _HEADER_LENGTH_ENV = _env_int("MODECRYPT_HEADER_LENGTH", minimum=0)
    HEADER_LENGTH = BMP_HEADER_LENGTH if _HEADER_LENGTH_ENV is None else _HEADER_LENGTH_ENV
    _CPU_COUNT = max(1, _os_module.cpu_count() or 1)
    WORKERS = _env_int("MODECRYPT_WORKERS") or _CPU_COUNT
    SUCCESS = "SUCCESS!"
    _SILENT_MODE: typing.ClassVar[bool] = False

    class _AlgorithmInfo(typing.NamedTuple):
        name: str
        block_size: int
        key_sizes: "tuple[int, ...]"
        default_key_size: int
        parity: bool
        factory: "object"

    _ALGORITHMS: typing.ClassVar[dict] = {
        "AES": _AlgorithmInfo("AES", 16, (16, 24, 32), 16, False, algorithms.AES),
        # Single DES runs as TripleDES with K1 = K2 = K3 (see _expand_des_key).
        "DES": _AlgorithmInfo("DES", 8, (8,), 8, True, TripleDES),
        "DESede": _AlgorithmInfo("DESede", 8, (24, 16), 24, True, TripleDES),
    }
    _ALGORITHM_ALIASES: typing.ClassVar[dict[str, str]] = {
        "aes": "AES",
        "des": "DES",
        "desede": "DESede",
        "3des": "DESede",
        "tripledes": "DESede",
    }

    class Mode(enum.Enum):
        """Block chaining behaviour.

        ECB encrypts every block on its own, so equal plaintext blocks give
        equal ciphertext blocks under one key. That leak is a property of the
        mode, not a bug, and is exactly what the bitmap demo makes visible.
        """
        ECB = "ECB"
        CBC = "CBC"

    class PaddingScheme(enum.Enum):
        PKCS5 = "PKCS5Padding"
        PKCS7 = "PKCS7Padding"
        NONE = "NoPadding"

    @staticmethod
    def _log(message: str, silent: bool = False) -> None:
        if silent or modecrypt._SILENT_MODE:
            return
        print(message, file=modecrypt.sys.stderr)

    @staticmethod
    def _human_readable_size(num_bytes: int) -> str:
        units = ["B", "KiB", "MiB", "GiB"]
        value = float(num_bytes)
        for unit in units:
            if value < 1024.0 or unit == units[-1]:
                return f"{value:.2f} {unit}"
            value /= 1024.0
        return f"{value:.2f} TiB"

    # ------------------------------------------------------------------
    # Algorithms, modes and transformation descriptors
    # ------------------------------------------------------------------

    @staticmethod
    def _algorithm_info(name: str) -> "modecrypt._AlgorithmInfo":
        if isinstance(name, str):
            canonical = modecrypt._ALGORITHM_ALIASES.get(name.strip().lower())
            if canonical is not None:
                return modecrypt._ALGORITHMS[canonical]
        raise UnsupportedAlgorithmError(f"Unsupported algorithm: {name!r}")

    @staticmethod
    def supported_algorithms() -> "list[str]":
        return list(modecrypt._ALGORITHMS)

    @staticmethod
    def _coerce_mode(value) -> "modecrypt.Mode":
        if isinstance(value, modecrypt.Mode):
            return value
        if isinstance(value, str):
            try:
                return modecrypt.Mode(value.strip().upper())
            except ValueError:
                pass
        raise UnsupportedAlgorithmError(f"Unsupported mode of operation: {value!r}")

    _PADDING_ALIASES: typing.ClassVar[dict[str, str]] = {
        "pkcs5padding": "PKCS5Padding",
        "pkcs5": "PKCS5Padding",
        "pkcs7padding": "PKCS7Padding",
        "pkcs7": "PKCS7Padding",
        "nopadding": "NoPadding",
        "none": "NoPadding",
    }

    @staticmethod
    def _coerce_padding(value) -> "modecrypt.PaddingScheme":
        if isinstance(value, modecrypt.PaddingScheme):
            return value
        if isinstance(value, str):
            canonical = modecrypt._PADDING_ALIASES.get(value.strip().lower())
            if canonical is not None:
                return modecrypt.PaddingScheme(canonical)
        raise UnsupportedAlgorithmError(f"Unsupported padding scheme: {value!r}")

    @dataclasses.dataclass(frozen=True)
    class Transformation:
        """Structured ``algorithm/mode/padding`` descriptor.

        ``Transformation("AES", "CBC")`` and
        ``Transformation.parse("AES/CBC/PKCS5Padding")`` describe the same
        cipher; fields are normalised to canonical names and enum members.
        """
        algorithm: str
        mode: "modecrypt.Mode"
        padding: "modecrypt.PaddingScheme" = "PKCS5Padding"

        def __post_init__(self) -> None:
            object.__setattr__(self, "algorithm", modecrypt._algorithm_info(self.algorithm).name)
            object.__setattr__(self, "mode", modecrypt._coerce_mode(self.mode))
            object.__setattr__(self, "padding", modecrypt._coerce_padding(self.padding))

        @classmethod
        def parse(cls, text: str) -> "modecrypt.Transformation":
            parts = [part.strip() for part in str(text).split("/")]
            if len(parts) == 2:
                parts.append("PKCS5Padding")
            if len(parts) != 3 or not all(parts):
                raise UnsupportedAlgorithmError(f"Malformed transformation: {text!r}")
            return cls(*parts)

        @classmethod
        def coerce(cls, value) -> "modecrypt.Transformation":
            if isinstance(value, cls):
                return value
            if isinstance(value, str):
                return cls.parse(value)
            if isinstance(value, (tuple, list)):
                return cls(*value)
            raise UnsupportedAlgorithmError(f"Unsupported transformation: {value!r}")

        @property
        def block_size(self) -> int:
            return modecrypt._algorithm_info(self.algorithm).block_size

        @property
        def padded(self) -> bool:
            return self.padding is not modecrypt.PaddingScheme.NONE

        @property
        def tag(self) -> str:
            return f"{self.algorithm}-{self.mode.value}"

        def __str__(self) -> str:
            return f"{self.algorithm}/{self.mode.value}/{self.padding.value}"

    @staticmethod
    def demo_transformations() -> "list[modecrypt.Transformation]":
        return [
            modecrypt.Transformation.parse("DES/ECB/PKCS5Padding"),
            modecrypt.Transformation.parse("DES/CBC/PKCS5Padding"),
            modecrypt.Transformation.parse("AES/ECB/PKCS5Padding"),
            modecrypt.Transformation.parse("AES/CBC/PKCS5Padding"),
        ]

    # ------------------------------------------------------------------
    # PKCS#5 / PKCS#7 padding
    # ------------------------------------------------------------------

    @staticmethod
    def _check_block_size(block_size: int) -> int:
        block_size = int(block_size)
        if block_size <= 0 or block_size > 255:
            raise ValueError("block_size must be in 1..255")
        return block_size

    @staticmethod
    def pad(data: bytes, block_size: int) -> bytes:
        """Append N bytes of value N; a full block is added on exact multiples."""
        block_size = modecrypt._check_block_size(block_size)
        pad_len = block_size - (len(data) % block_size)
        return bytes(data) + bytes([pad_len]) * pad_len

    @staticmethod
    def unpad(data: bytes, block_size: int) -> bytes:
        block_size = modecrypt._check_block_size(block_size)
        if not data:
            raise PaddingError("Invalid padding: empty input")
        if len(data) % block_size:
            raise PaddingError("Invalid padding: input is not block aligned")
        pad_len = data[-1]
        if pad_len < 1 or pad_len > block_size:
            raise PaddingError("Invalid padding length")
        tail = bytes(data[-pad_len:])
        if not modecrypt.hmac.compare_digest(tail, bytes([pad_len]) * pad_len):
            raise PaddingError("Invalid padding bytes")
        return bytes(data[:-pad_len])

    # ------------------------------------------------------------------
    # Block cipher primitive
    # ------------------------------------------------------------------

    class BlockCipherPrimitive:
        """Keyed fixed-size block transform consumed by :class:`ModeEngine`.

        Subclasses implement ``encrypt_block``/``decrypt_block``; the bulk
        helpers and ``bind`` fall back to one call per block.
        """

        name = "block"
        block_size = 0

        def encrypt_block(self, key: bytes, block: bytes) -> bytes:
            raise NotImplementedError

        def decrypt_block(self, key: bytes, block: bytes) -> bytes:
            raise NotImplementedError

        def encrypt_blocks(self, key: bytes, data: bytes) -> bytes:
            size = self.block_size
            return b"".join(self.encrypt_block(key, data[i:i + size]) for i in range(0, len(data), size))

        def decrypt_blocks(self, key: bytes, data: bytes) -> bytes:
            size = self.block_size
            return b"".join(self.decrypt_block(key, data[i:i + size]) for i in range(0, len(data), size))

        def bind(self, key: bytes) -> "modecrypt._BoundPrimitive":
            return modecrypt._BoundPrimitive(self, key)

    class _BoundPrimitive:
        """A primitive with its key fixed for the lifetime of one run."""

        def __init__(self, primitive, key: bytes) -> None:
            self._primitive = primitive
            self._key = bytes(key)

        def encrypt_block(self, block: bytes) -> bytes:
            return self._primitive.encrypt_block(self._key, block)

        def decrypt_block(self, block: bytes) -> bytes:
            return self._primitive.decrypt_block(self._key, block)

        def encrypt_blocks(self, data: bytes) -> bytes:
            return self._primitive.encrypt_blocks(self._key, data)

        def decrypt_blocks(self, data: bytes) -> bytes:
            return self._primitive.decrypt_blocks(self._key, data)

    @staticmethod
    def _expand_des_key(key: bytes) -> bytes:
        # Short TripleDES keys are deprecated in cryptography; spell out K1K2K3.
        if len(key) == 8:
            return key * 3
        if len(key) == 16:
            return key + key[:8]
        return key

    class _CryptographyKeySchedule:
        # Raw ECB contexts never see unaligned input, so update() maps blocks
        # one-to-one and finalize() is never needed.
        def __init__(self, info, key: bytes) -> None:
            if len(key) not in info.key_sizes:
                raise InvalidKeyError(
                    f"{info.name} key must be one of {sorted(info.key_sizes)} bytes, got {len(key)}",
                    algorithm=info.name,
                )
            material = bytes(key)
            if info.factory is modecrypt.TripleDES:
                material = modecrypt._expand_des_key(material)
            cipher = modecrypt.Cipher(info.factory(material), modecrypt.modes.ECB())
            self._encryptor = cipher.encryptor()
            self._decryptor = cipher.decryptor()

        def encrypt_blocks(self, data: bytes) -> bytes:
            return self._encryptor.update(data)

        def decrypt_blocks(self, data: bytes) -> bytes:
            return self._decryptor.update(data)

        encrypt_block = encrypt_blocks
        decrypt_block = decrypt_blocks

    class CryptographyBlockCipher(BlockCipherPrimitive):
        """DES, DESede and AES block transforms backed by ``cryptography``."""

        def __init__(self, algorithm: str) -> None:
            self._info = modecrypt._algorithm_info(algorithm)
            self.name = self._info.name
            self.block_size = self._info.block_size

        def _check_block(self, block: bytes) -> None:
            if len(block) != self.block_size:
                raise InvalidBlockSizeError(
                    f"block must be {self.block_size} bytes, got {len(block)}",
                    algorithm=self.name,
                )

        def encrypt_block(self, key: bytes, block: bytes) -> bytes:
            self._check_block(block)
            return self.bind(key).encrypt_block(block)

        def decrypt_block(self, key: bytes, block: bytes) -> bytes:
            self._check_block(block)
            return self.bind(key).decrypt_block(block)

        def encrypt_blocks(self, key: bytes, data: bytes) -> bytes:
            return self.bind(key).encrypt_blocks(data)

        def decrypt_blocks(self, key: bytes, data: bytes) -> bytes:
            return self.bind(key).decrypt_blocks(data)

        def bind(self, key: bytes) -> "modecrypt._CryptographyKeySchedule":
            return modecrypt._CryptographyKeySchedule(self._info, key)

    # ------------------------------------------------------------------
    # Key management
    # ------------------------------------------------------------------

    @staticmethod
    def _set_odd_parity(buf: bytearray) -> None:
        for i, value in enumerate(buf):
            high = value & 0xFE
            buf[i] = high | (bin(high).count("1") % 2 == 0)

    class SecretKey:
        """Symmetric key owned by a single run.

        The material lives in a private ``bytearray`` so :meth:`destroy` can
        zero it in place. ``repr`` only ever shows the algorithm and size.
        The key also remembers every CBC IV it has encrypted under, across
        engines and threads, so an IV cannot be used twice with it.
        """

        __slots__ = ("_algorithm", "_material", "_destroyed", "_used_ivs", "_lock")

        def __init__(self, algorithm: str, material: bytes) -> None:
            info = modecrypt._algorithm_info(algorithm)
            if len(material) not in info.key_sizes:
                raise InvalidKeyError(
                    f"{info.name} key must be one of {sorted(info.key_sizes)} bytes, got {len(material)}",
                    algorithm=info.name,
                )
            self._algorithm = info.name
            self._material = bytearray(material)
            self._destroyed = False
            self._used_ivs: "set[bytes]" = set()
            self._lock = modecrypt.threading.Lock()

        @classmethod
        def from_bytes(cls, algorithm: str, material: bytes) -> "modecrypt.SecretKey":
            return cls(algorithm, material)

        @property
        def algorithm(self) -> str:
            return self._algorithm

        @property
        def key_size(self) -> int:
            return len(self._material)

        @property
        def destroyed(self) -> bool:
            return self._destroyed

        @property
        def material(self) -> bytes:
            if self._destroyed:
                raise InvalidKeyError("Key has been destroyed", algorithm=self._algorithm)
            return bytes(self._material)

        def claim_iv(self, iv: bytes, mode=None) -> None:
            """Record ``iv`` as used for encryption; raise if it already was."""
            with self._lock:
                if iv in self._used_ivs:
                    raise IVReuseError(
                        "IV already used for encryption under this key",
                        algorithm=self._algorithm,
                        mode=mode,
                    )
                self._used_ivs.add(bytes(iv))

        def destroy(self) -> None:
            for i in range(len(self._material)):
                self._material[i] = 0
            self._destroyed = True

        def __enter__(self) -> "modecrypt.SecretKey":
            return self

        def __exit__(self, exc_type, exc, tb) -> None:
            self.destroy()

        def __repr__(self) -> str:
            state = "destroyed" if self._destroyed else f"size={len(self._material)}"
            return f"SecretKey(algorithm={self._algorithm!r}, {state})"

    @staticmethod
    def generate_key(algorithm: str, key_size: "int | None" = None) -> "modecrypt.SecretKey":
        info = modecrypt._algorithm_info(algorithm)
        size = info.default_key_size if key_size is None else int(key_size)
        if size not in info.key_sizes:
            raise InvalidKeyError(
                f"{info.name} does not support {size}-byte keys",
                algorithm=info.name,
            )
        material = bytearray(modecrypt.secrets.token_bytes(size))
        if info.parity:
            modecrypt._set_odd_parity(material)
        key = modecrypt.SecretKey(info.name, material)
        for i in range(len(material)):
            material[i] = 0
        return key

    @staticmethod
    def _coerce_key(key, algorithm: str) -> "modecrypt.SecretKey":
        if isinstance(key, modecrypt.SecretKey):
            if key.algorithm != modecrypt._algorithm_info(algorithm).name:
                raise InvalidKeyError(
                    f"{key.algorithm} key cannot be used with {algorithm}",
                    algorithm=algorithm,
                )
            return key
        if isinstance(key, (bytes, bytearray, memoryview)):
            return modecrypt.SecretKey(algorithm, bytes(key))
        raise InvalidKeyError(f"Unsupported key type: {type(key).__name__}", algorithm=algorithm)

    # ------------------------------------------------------------------
    # Mode engine
    # ------------------------------------------------------------------

    @staticmethod
    def _xor_block(a: bytes, b: bytes) -> bytes:
        return (int.from_bytes(a, "big") ^ int.from_bytes(b, "big")).to_bytes(len(a), "big")

    @staticmethod
    def _xor_buffers(a: bytes, b: bytes) -> bytes:
        left = modecrypt.np.frombuffer(a, dtype=modecrypt.np.uint8)
        right = modecrypt.np.frombuffer(b, dtype=modecrypt.np.uint8)
        return modecrypt.np.bitwise_xor(left, right).tobytes()

    @dataclasses.dataclass(frozen=True)
    class ChainState:
        """Chaining value between ModeEngine calls.

        ``chain`` is the IV or last ciphertext block for CBC and ``None`` for
        ECB; ``offset`` counts payload bytes already processed.
        """
        mode: "modecrypt.Mode"
        chain: "bytes | None" = None
        offset: int = 0

    class ModeEngine:
        """ECB/CBC over a :class:`BlockCipherPrimitive` for one key.

        State is never kept on the engine itself: every call takes a
        :class:`ChainState` and returns the next one. CBC IVs used for
        encryption are claimed on the :class:`SecretKey`, so reuse is caught
        across engines; raw key bytes only get a per-engine check.

        The engine holds its own copy of the key schedule. Once the
        ``SecretKey`` it was built from is destroyed, every call raises
        :class:`InvalidKeyError`.
        """

        def __init__(self, primitive, key) -> None:
            self.primitive = primitive
            self.block_size = int(primitive.block_size)
            self.algorithm = getattr(primitive, "name", None)
            self._secret = key if isinstance(key, modecrypt.SecretKey) else None
            if self._secret is not None:
                key = self._secret.material
            self._schedule = primitive.bind(bytes(key))
            self._encrypt_ivs: "set[bytes]" = set()

        def _check_key(self) -> None:
            if self._secret is not None and self._secret.destroyed:
                raise InvalidKeyError("Key has been destroyed", algorithm=self.algorithm)

        def start(self, mode, iv: "bytes | None" = None, *, encrypting: bool = True) -> "modecrypt.ChainState":
            self._check_key()
            mode = modecrypt._coerce_mode(mode)
            if mode is modecrypt.Mode.ECB:
                if iv is not None:
                    modecrypt.warnings.warn("IV ignored for ECB mode", UserWarning, stacklevel=2)
                return modecrypt.ChainState(mode)
            if iv is None:
                raise IVRequiredError("CBC requires an IV", algorithm=self.algorithm, mode=mode)
            iv = bytes(iv)
            if len(iv) != self.block_size:
                raise InvalidBlockSizeError(
                    f"IV must be {self.block_size} bytes, got {len(iv)}",
                    algorithm=self.algorithm,
                    mode=mode,
                )
            if encrypting and self._secret is not None:
                self._secret.claim_iv(iv, mode)
            elif encrypting:
                if iv in self._encrypt_ivs:
                    raise IVReuseError("IV already used for encryption under this key", algorithm=self.algorithm, mode=mode)
                self._encrypt_ivs.add(iv)
            return modecrypt.ChainState(mode, iv)

        def _check_aligned(self, state, data: bytes) -> None:
            if len(data) % self.block_size:
                raise InvalidBlockSizeError(
                    f"input of {len(data)} bytes is not a multiple of the {self.block_size}-byte block",
                    algorithm=self.algorithm,
                    mode=state.mode,
                    offset=state.offset,
                )

        def encrypt(self, state, data: bytes) -> "tuple[bytes, modecrypt.ChainState]":
            self._check_key()
            data = bytes(data)
            self._check_aligned(state, data)
            if state.mode is modecrypt.Mode.ECB:
                out = self._schedule.encrypt_blocks(data) if data else b""
                return out, modecrypt.dataclasses.replace(state, offset=state.offset + len(data))
            size = self.block_size
            chain = state.chain
            encrypt_block = self._schedule.encrypt_block
            out = bytearray()
            for i in range(0, len(data), size):
                chain = encrypt_block(modecrypt._xor_block(data[i:i + size], chain))
                out += chain
            return bytes(out), modecrypt.ChainState(state.mode, chain, state.offset + len(data))

        def decrypt(self, state, data: bytes) -> "tuple[bytes, modecrypt.ChainState]":
            self._check_key()
            data = bytes(data)
            self._check_aligned(state, data)
            if not data:
                return b"", state
            plain = self._schedule.decrypt_blocks(data)
            if state.mode is modecrypt.Mode.ECB:
                return plain, modecrypt.dataclasses.replace(state, offset=state.offset + len(data))
            # P_i depends only on C_i and C_{i-1}: xor the whole chunk at once.
            previous = state.chain + data[:-self.block_size]
            out = modecrypt._xor_buffers(plain, previous)
            return out, modecrypt.ChainState(state.mode, data[-self.block_size:], state.offset + len(data))

    # ------------------------------------------------------------------
    # Stream codec
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_chunk_size(chunk_size: "int | None", block_size: int) -> int:
        chunk = modecrypt.CHUNK_SIZE if chunk_size is None else int(chunk_size)
        return max(block_size, chunk - chunk % block_size)

    @staticmethod
    def _iter_source(payload, chunk: int) -> "modecrypt.typing.Iterator[bytes]":
        if payload is None:
            return
        if isinstance(payload, (bytes, bytearray, memoryview)):
            data = bytes(payload)
            for i in range(0, len(data), chunk):
                yield data[i:i + chunk]
            return
        if hasattr(payload, "read"):
            while True:
                buf = payload.read(chunk)
                if not buf:
                    break
                yield bytes(buf)
            return
        for piece in payload:
            if piece:
                yield bytes(piece)

    @staticmethod
    def _engine_for(transformation, key, primitive=None):
        if primitive is None:
            primitive = modecrypt.CryptographyBlockCipher(transformation.algorithm)
        secret = modecrypt._coerce_key(key, transformation.algorithm)
        return modecrypt.ModeEngine(primitive, secret)

    @staticmethod
    def _encrypt_chunks(engine, state, payload, transformation, chunk: int):
        size = engine.block_size
        buffer = bytearray()
        for piece in modecrypt._iter_source(payload, chunk):
            buffer += piece
            while len(buffer) >= chunk:
                out, state = engine.encrypt(state, bytes(buffer[:chunk]))
                del buffer[:chunk]
                yield out
        tail = bytes(buffer)
        if transformation.padded:
            tail = modecrypt.pad(tail, size)
        elif len(tail) % size:
            raise TruncatedStreamError(
                f"payload is not a multiple of the {size}-byte block and padding is disabled",
                algorithm=transformation.algorithm,
                mode=transformation.mode,
                offset=state.offset + len(tail),
            )
        if tail:
            out, state = engine.encrypt(state, tail)
            yield out

    @staticmethod
    def _decrypt_chunks(engine, state, payload, transformation, chunk: int):
        size = engine.block_size
        buffer = bytearray()
        total = 0
        for piece in modecrypt._iter_source(payload, chunk):
            buffer += piece
            total += len(piece)
            # Hold back at least one byte past the chunk so the final block
            # is still buffered when EOF arrives.
            while len(buffer) > chunk:
                out, state = engine.decrypt(state, bytes(buffer[:chunk]))
                del buffer[:chunk]
                yield out
        if total % size:
            raise TruncatedStreamError(
                f"ciphertext of {total} bytes is not a multiple of the {size}-byte block",
                algorithm=transformation.algorithm,
                mode=transformation.mode,
                offset=total,
            )
        out, state = engine.decrypt(state, bytes(buffer))
        if transformation.padded:
            try:
                out = modecrypt.unpad(out, size)
            except PaddingError as exc:
                raise exc.with_context(
                    algorithm=transformation.algorithm,
                    mode=transformation.mode,
                    offset=max(0, total - size),
                ) from exc
        if out:
            yield out

    @staticmethod
    def encrypt_stream(
        header: bytes,
        payload,
        key,
        transformation,
        iv: "bytes | None" = None,
        *,
        chunk_size: "int | None" = None,
        primitive=None,
    ) -> "tuple[bytes, modecrypt.typing.Iterator[bytes], bytes | None]":
        """Encrypt ``payload`` lazily, leaving ``header`` untouched.

        ``payload`` is bytes, a readable byte stream or an iterable of byte
        chunks. Nothing is read until the returned iterator is consumed, so
        the caller's write speed drives the read side. A fresh random IV is
        drawn for CBC unless one is supplied; ECB reports ``None``.
        """
        transformation = modecrypt.Transformation.coerce(transformation)
        engine = modecrypt._engine_for(transformation, key, primitive)
        if transformation.mode is modecrypt.Mode.CBC:
            if iv is None:
                iv = modecrypt.secrets.token_bytes(engine.block_size)
        state = engine.start(transformation.mode, iv, encrypting=True)
        if transformation.mode is modecrypt.Mode.ECB:
            iv = None
        chunk = modecrypt._resolve_chunk_size(chunk_size, engine.block_size)
        chunks = modecrypt._encrypt_chunks(engine, state, payload, transformation, chunk)
        return bytes(header or b""), chunks, iv

    @staticmethod
    def decrypt_stream(
        header: bytes,
        payload,
        key,
        transformation,
        iv: "bytes | None" = None,
        *,
        chunk_size: "int | None" = None,
        primitive=None,
    ) -> "tuple[bytes, modecrypt.typing.Iterator[bytes]]":
        transformation = modecrypt.Transformation.coerce(transformation)
        engine = modecrypt._engine_for(transformation, key, primitive)
        if transformation.mode is modecrypt.Mode.ECB:
            iv = None
        state = engine.start(transformation.mode, iv, encrypting=False)
        chunk = modecrypt._resolve_chunk_size(chunk_size, engine.block_size)
        chunks = modecrypt._decrypt_chunks(engine, state, payload, transformation, chunk)
        return bytes(header or b""), chunks

    @staticmethod
    def encrypt_to(dest, header: bytes, payload, key, transformation, iv: "bytes | None" = None, *,
                   chunk_size: "int | None" = None, primitive=None) -> "bytes | None":
        """Write ``header`` then the ciphertext to ``dest``; returns the IV used.

        ``dest`` is flushed on every exit path. Output already written when an
        error occurs stays in place.
        """
        out_header, chunks, iv_used = modecrypt.encrypt_stream(
            header, payload, key, transformation, iv, chunk_size=chunk_size, primitive=primitive
        )
        try:
            with modecrypt.contextlib.closing(chunks):
                dest.write(out_header)
                for block in chunks:
                    dest.write(block)
        finally:
            dest.flush()
        return iv_used

    @staticmethod
    def decrypt_to(dest, header: bytes, payload, key, transformation, iv: "bytes | None" = None, *,
                   chunk_size: "int | None" = None, primitive=None) -> int:
        out_header, chunks = modecrypt.decrypt_stream(
            header, payload, key, transformation, iv, chunk_size=chunk_size, primitive=primitive
        )
        written = 0
        try:
            with modecrypt.contextlib.closing(chunks):
                dest.write(out_header)
                for block in chunks:
                    dest.write(block)
                    written += len(block)
        finally:
            dest.flush()
        return written

    # ------------------------------------------------------------------
    # File transform pipeline
    # ------------------------------------------------------------------

    @dataclasses.dataclass(frozen=True)
    class FileArtifact:
        header: bytes
        payload: bytes

        def to_bytes(self) -> bytes:
            return self.header + self.payload

    @staticmethod
    def split_artifact(data: bytes, header_length: "int | None" = None) -> "modecrypt.FileArtifact":
        length = modecrypt.HEADER_LENGTH if header_length is None else int(header_length)
        if length < 0:
            raise ValueError("header_length must be non-negative")
        data = bytes(data)
        if len(data) < length:
            raise TruncatedStreamError(f"input of {len(data)} bytes is shorter than the {length}-byte header")
        return modecrypt.FileArtifact(data[:length], data[length:])

    @staticmethod
    def encrypt_file(
        header: bytes,
        payload,
        transformation,
        *,
        key=None,
        iv: "bytes | None" = None,
        chunk_size: "int | None" = None,
        primitive=None,
    ) -> "tuple[modecrypt.SecretKey, bytes | None, modecrypt.FileArtifact]":
        transformation = modecrypt.Transformation.coerce(transformation)
        secret = modecrypt.generate_key(transformation.algorithm) if key is None else modecrypt._coerce_key(
            key, transformation.algorithm
        )
        out_header, chunks, iv_used = modecrypt.encrypt_stream(
            header, payload, secret, transformation, iv, chunk_size=chunk_size, primitive=primitive
        )
        artifact = modecrypt.FileArtifact(out_header, b"".join(chunks))
        return secret, iv_used, artifact

    @staticmethod
    def decrypt_file(
        artifact: "modecrypt.FileArtifact",
        transformation,
        key,
        iv: "bytes | None" = None,
        *,
        chunk_size: "int | None" = None,
        primitive=None,
    ) -> bytes:
        _, chunks = modecrypt.decrypt_stream(
            artifact.header, artifact.payload, key, transformation, iv, chunk_size=chunk_size, primitive=primitive
        )
        return b"".join(chunks)

    @staticmethod
    def _normalize_path(path_like: "modecrypt.typing.Union[str, modecrypt.pathlib.Path]") -> "modecrypt.pathlib.Path":
        return modecrypt.pathlib.Path(path_like).expanduser()

    @staticmethod
    def _ensure_existing_file(path: "modecrypt.pathlib.Path") -> None:
        if not path.is_file():
            raise FileNotFoundError(f"Input file not found: {path}")

    @staticmethod
    def output_name(path, transformation) -> str:
        """``logo.bmp`` + ``AES/CBC/PKCS5Padding`` -> ``logo-AES-CBC.bmp``."""
        path = modecrypt.pathlib.Path(path)
        transformation = modecrypt.Transformation.coerce(transformation)
        return f"{path.stem}-{transformation.tag}{path.suffix}"

    @staticmethod
    def _resolve_output(src: "modecrypt.pathlib.Path", output, default_name: str) -> "modecrypt.pathlib.Path":
        if output is None:
            dest = src.with_name(default_name)
        else:
            dest = modecrypt._normalize_path(output)
            if dest.is_dir():
                dest = dest / default_name
        if dest.resolve() == src.resolve():
            raise ValueError(f"Refusing to overwrite the input file: {src}")
        return dest

    @staticmethod
    def _read_header(handle, length: int, transformation) -> bytes:
        header = handle.read(length)
        if len(header) < length:
            raise TruncatedStreamError(
                f"input of {len(header)} bytes is shorter than the {length}-byte header",
                algorithm=transformation.algorithm,
                mode=transformation.mode,
                offset=len(header),
            )
        return header

    @staticmethod
    def encrypt_path(
        path,
        transformation,
        output=None,
        *,
        header_length: "int | None" = None,
        key=None,
        iv: "bytes | None" = None,
        chunk_size: "int | None" = None,
        silent: bool = False,
    ) -> "tuple[modecrypt.SecretKey, bytes | None, modecrypt.pathlib.Path]":
        src = modecrypt._normalize_path(path)
        modecrypt._ensure_existing_file(src)
        transformation = modecrypt.Transformation.coerce(transformation)
        length = modecrypt.HEADER_LENGTH if header_length is None else int(header_length)
        if length < 0:
            raise ValueError("header_length must be non-negative")
        dest = modecrypt._resolve_output(src, output, modecrypt.output_name(src, transformation))
        secret = modecrypt.generate_key(transformation.algorithm) if key is None else modecrypt._coerce_key(
            key, transformation.algorithm
        )
        with open(src, "rb") as handle:
            header = modecrypt._read_header(handle, length, transformation)
            with open(dest, "wb") as out:
                iv_used = modecrypt.encrypt_to(out, header, handle, secret, transformation, iv, chunk_size=chunk_size)
        modecrypt._log(
            f"{src.name} -> {dest.name} [{transformation}] "
            f"{modecrypt._human_readable_size(src.stat().st_size)} -> "
            f"{modecrypt._human_readable_size(dest.stat().st_size)}",
            silent,
        )
        return secret, iv_used, dest

    @staticmethod
    def decrypt_path(
        path,
        transformation,
        key,
        iv: "bytes | None" = None,
        output=None,
        *,
        header_length: "int | None" = None,
        chunk_size: "int | None" = None,
        silent: bool = False,
    ) -> "modecrypt.pathlib.Path":
        """Decrypt ``path`` into ``decrypted_<name>`` (or ``output``).

        The input file is never overwritten. If decryption fails the partial
        output is left on disk and the error propagates.
        """
        src = modecrypt._normalize_path(path)
        modecrypt._ensure_existing_file(src)
        transformation = modecrypt.Transformation.coerce(transformation)
        length = modecrypt.HEADER_LENGTH if header_length is None else int(header_length)
        if length < 0:
            raise ValueError("header_length must be non-negative")
        dest = modecrypt._resolve_output(src, output, f"decrypted_{src.name}")
        with open(src, "rb") as handle:
            header = modecrypt._read_header(handle, length, transformation)
            with open(dest, "wb") as out:
                written = modecrypt.decrypt_to(out, header, handle, key, transformation, iv, chunk_size=chunk_size)
        modecrypt._log(
            f"{src.name} -> {dest.name} [{transformation}] {modecrypt._human_readable_size(written)} payload",
            silent,
        )
        return dest

    class RunResult(typing.NamedTuple):
        status: str
        output: "object"
        key: "object"
        iv: "bytes | None"

    @staticmethod
    def encrypt_paths(
        paths,
        transformation,
        output_dir=None,
        *,
        header_length: "int | None" = None,
        workers: "int | None" = None,
        silent: bool = False,
    ) -> "dict[str, modecrypt.RunResult]":
        """Encrypt several files in parallel threads, one fresh key per file."""
        if isinstance(paths, (str, modecrypt.pathlib.Path)):
            paths = [paths]
        files = [modecrypt._normalize_path(p) for p in paths]
        if not files:
            raise ValueError("No files provided")
        transformation = modecrypt.Transformation.coerce(transformation)
        out_dir = None if output_dir is None else modecrypt._normalize_path(output_dir)
        if out_dir is not None:
            out_dir.mkdir(parents=True, exist_ok=True)

        def _run(src: "modecrypt.pathlib.Path") -> "modecrypt.RunResult":
            try:
                key, iv, dest = modecrypt.encrypt_path(
                    src, transformation, out_dir, header_length=header_length, silent=silent
                )
            except (ModeCryptError, OSError) as exc:
                return modecrypt.RunResult(f"FAIL! {exc}", None, None, None)
            return modecrypt.RunResult(modecrypt.SUCCESS, dest, key, iv)

        max_workers = min(len(files), workers or modecrypt.WORKERS)
        with modecrypt.concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(_run, files))
        return {str(src): outcome for src, outcome in zip(files, outcomes)}

    # ------------------------------------------------------------------
    # Analysis and bitmap helpers
    # ------------------------------------------------------------------

    @staticmethod
    def block_repetition_ratio(data: bytes, block_size: int) -> float:
        """Fraction of whole blocks in ``data`` that repeat an earlier block.

        ECB ciphertext of an image with flat regions scores high; CBC output
        scores close to zero.
        """
        block_size = modecrypt._check_block_size(block_size)
        usable = len(data) - len(data) % block_size
        if usable == 0:
            return 0.0
        blocks = modecrypt.np.frombuffer(bytes(data[:usable]), dtype=modecrypt.np.uint8).reshape(-1, block_size)
        unique = modecrypt.np.unique(blocks, axis=0).shape[0]
        return 1.0 - unique / blocks.shape[0]

    @staticmethod
    def make_sample_bitmap(path, width: int = 256, height: int = 128) -> "modecrypt.pathlib.Path":
        """Write a striped 24-bit BMP with large flat regions."""
        if width <= 0 or height <= 0:
            raise ValueError("width and height must be positive")
        np = modecrypt.np
        dest = modecrypt._normalize_path(path)
        ys, xs = np.mgrid[0:height, 0:width]
        pixels = np.zeros((height, width, 3), dtype=np.uint8)
        pixels[..., 0] = ((xs // 32) % 2) * 255
        pixels[..., 1] = ((ys // 32) % 2) * 200
        pixels[..., 2] = 64
        modecrypt.Image.fromarray(pixels).save(dest, format="BMP")
        return dest

    @staticmethod
    def bitmap_info(path) -> "tuple[int, int, str]":
        with modecrypt.Image.open(modecrypt._normalize_path(path)) as img:
            img.load()
            return img.width, img.height, img.mode

    @staticmethod
    def demo(
        path,
        output_dir=None,
        *,
        header_length: "int | None" = None,
        workers: "int | None" = None,
        silent: bool = False,
    ) -> "dict[str, dict[str, object]]":
        """Encrypt ``path`` with DES/AES under ECB/CBC, then decrypt and verify.

        Each transformation runs in its own thread with its own key, which is
        destroyed once the round trip has been checked.
        """
        src = modecrypt._normalize_path(path)
        modecrypt._ensure_existing_file(src)
        out_dir = src.parent if output_dir is None else modecrypt._normalize_path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        length = modecrypt.HEADER_LENGTH if header_length is None else int(header_length)
        original = src.read_bytes()

        def _run(transformation: "modecrypt.Transformation") -> "dict[str, object]":
            report: "dict[str, object]" = {"status": modecrypt.SUCCESS}
            key = None
            try:
                key, iv, encrypted = modecrypt.encrypt_path(
                    src, transformation, out_dir / modecrypt.output_name(src, transformation),
                    header_length=length, silent=silent,
                )
                report["encrypted"] = encrypted
                payload = encrypted.read_bytes()[length:]
                report["repetition"] = modecrypt.block_repetition_ratio(payload, transformation.block_size)
                decrypted = modecrypt.decrypt_path(
                    encrypted, transformation, key, iv, out_dir / f"decrypted_{encrypted.name}",
                    header_length=length, silent=silent,
                )
                report["decrypted"] = decrypted
                if decrypted.read_bytes() != original:
                    report["status"] = "FAIL! round trip mismatch"
            except (ModeCryptError, OSError) as exc:
                report["status"] = f"FAIL! {exc}"
            finally:
                if key is not None:
                    key.destroy()
            return report

        transformations = modecrypt.demo_transformations()
        max_workers = min(len(transformations), workers or modecrypt.WORKERS)
        with modecrypt.concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as pool:
            reports = list(pool.map(_run, transformations))
        return {str(t): r for t, r in zip(transformations, reports)}


def cli(argv=None) -> int:
    import argparse

    def _cli_plain_mode() -> bool:
        if _os_module.getenv("MODECRYPT_CLI_PLAIN") or _os_module.getenv("NO_COLOR"):
            return True
        return not modecrypt.sys.stdout.isatty()

    class _CliTheme:
        def __init__(self, plain: bool):
            self.plain = plain
            self.reset = "" if plain else "\033[0m"
            self.bold = "" if plain else "\033[1m"
            self.red = "" if plain else "\033[31m"
            self.green = "" if plain else "\033[32m"
            self.cyan = "" if plain else "\033[36m"

        def _wrap(self, msg: str, color: str) -> str:
            if self.plain:
                return msg
            return f"{self.bold}{color}{msg}{self.reset}"

        def ok(self, msg: str) -> str:
            return self._wrap(msg, self.green)

        def err(self, msg: str) -> str:
            return self._wrap(msg, self.red)

        def info(self, msg: str) -> str:
            return self._wrap(msg, self.cyan)

    theme = _CliTheme(_cli_plain_mode())

    def _read_key(path: "modecrypt.pathlib.Path", algorithm: str) -> "modecrypt.SecretKey":
        text = path.read_text(encoding="utf-8").strip()
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise InvalidKeyError(f"Key file {path} is not hex", algorithm=algorithm) from exc
        return modecrypt.SecretKey.from_bytes(algorithm, raw)

    def _write_key(path: "modecrypt.pathlib.Path", key: "modecrypt.SecretKey") -> None:
        path.write_text(key.material.hex() + "\n", encoding="utf-8")
        try:
            path.chmod(0o600)
        except OSError as exc:
            modecrypt._log(f"WARN: could not restrict permissions on {path}: {exc}")

    def _parse_iv(value: "str | None") -> "bytes | None":
        if not value:
            return None
        try:
            return bytes.fromhex(value)
        except ValueError as exc:
            raise InvalidBlockSizeError("IV must be hex") from exc

    parser = argparse.ArgumentParser(prog="modecrypt", description="ECB/CBC block-mode file encryption")
    parser.add_argument("--silent", action="store_true", help="Suppress status lines on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    keygen = subparsers.add_parser("keygen", help="Generate a random key and write it as hex")
    keygen.add_argument("algorithm", help="DES, DESede or AES")
    keygen.add_argument("--size", type=int, default=None, help="Key size in bytes")
    keygen.add_argument("--key-file", required=True, help="Where to write the hex key")

    for name, help_text in (("encrypt", "Encrypt a file, keeping its header"),
                            ("decrypt", "Decrypt a file produced by encrypt")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("path", help="Input file")
        sub.add_argument("-t", "--transformation", required=True, help="e.g. AES/CBC/PKCS5Padding")
        sub.add_argument("--key-file", required=True, help="Hex key file")
        sub.add_argument("--iv", default=None, help="IV as hex (CBC)")
        sub.add_argument("-o", "--output", default=None, help="Output file or directory")
        sub.add_argument("--header-length", type=int, default=None, help="Raw header bytes to keep")

    demo = subparsers.add_parser("demo", help="Run DES/AES x ECB/CBC over a bitmap and verify")
    demo.add_argument("path", help="Input bitmap")
    demo.add_argument("-o", "--output-dir", default=None, help="Where to write results")
    demo.add_argument("--header-length", type=int, default=None, help="Raw header bytes to keep")

    sample = subparsers.add_parser("sample", help="Write a striped sample bitmap")
    sample.add_argument("path", help="Output .bmp path")
    sample.add_argument("--width", type=int, default=256)
    sample.add_argument("--height", type=int, default=128)

    args = parser.parse_args(argv)
    modecrypt._SILENT_MODE = bool(args.silent)

    try:
        if args.command == "keygen":
            key_path = modecrypt._normalize_path(args.key_file)
            with modecrypt.generate_key(args.algorithm, args.size) as key:
                _write_key(key_path, key)
                print(theme.ok(f"{key.algorithm} key ({key.key_size} bytes) written to {key_path}"))
            return 0

        if args.command == "encrypt":
            transformation = modecrypt.Transformation.parse(args.transformation)
            key_path = modecrypt._normalize_path(args.key_file)
            if key_path.exists():
                key = _read_key(key_path, transformation.algorithm)
            else:
                key = modecrypt.generate_key(transformation.algorithm)
                _write_key(key_path, key)
            with key:
                _, iv, dest = modecrypt.encrypt_path(
                    args.path, transformation, args.output,
                    header_length=args.header_length, key=key, iv=_parse_iv(args.iv),
                )
            print(theme.ok(f"{dest}: {modecrypt.SUCCESS}"))
            if iv is not None:
                print(f"IV: {iv.hex()}")
            return 0

        if args.command == "decrypt":
            transformation = modecrypt.Transformation.parse(args.transformation)
            with _read_key(modecrypt._normalize_path(args.key_file), transformation.algorithm) as key:
                dest = modecrypt.decrypt_path(
                    args.path, transformation, key, _parse_iv(args.iv), args.output,
                    header_length=args.header_length,
                )
            print(theme.ok(f"{dest}: {modecrypt.SUCCESS}"))
            return 0

        if args.command == "demo":
            reports = modecrypt.demo(args.path, args.output_dir, header_length=args.header_length)
            failures = 0
            for name, report in reports.items():
                status = report["status"]
                if status == modecrypt.SUCCESS:
                    ratio = report.get("repetition", 0.0)
                    print(theme.ok(f"{name}: {status}") + theme.info(f" repeated blocks {ratio:.1%}"))
                else:
                    print(theme.err(f"{name}: {status}"))
                    failures += 1
            return 0 if failures == 0 else 1

        dest = modecrypt.make_sample_bitmap(args.path, args.width, args.height)
        print(theme.ok(f"{dest}: {modecrypt.SUCCESS}"))
        return 0
    except (ValueError, OSError) as exc:
        print(theme.err(str(exc)), file=modecrypt.sys.stderr)
        return 1


def main(argv=None) -> int:
    try:
        return cli(argv)
    except KeyboardInterrupt:
        print("Exiting...")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
