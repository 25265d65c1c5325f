import os
import unittest
import warnings
from unittest.mock import patch
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

try:
    from modecrypt.main import (
        modecrypt,
        InvalidBlockSizeError,
        InvalidKeyError,
        IVRequiredError,
        IVReuseError,
        PaddingError,
        UnsupportedAlgorithmError,
    )
except ModuleNotFoundError as exc:  # pragma: no cover - dependency missing
    modecrypt = None
    _IMPORT_ERROR = exc
else:
    _IMPORT_ERROR = None


AES_ZERO_BLOCK_UNDER_ZERO_KEY = bytes.fromhex("66e94bd4ef8a2c3b884cfa59ca342b2e")
DES_ZERO_BLOCK_UNDER_ZERO_KEY = bytes.fromhex("8ca64de9c1b123a7")


class _XorPrimitive(object if modecrypt is None else modecrypt.BlockCipherPrimitive):
    """4-byte toy cipher: enough to drive the generic primitive paths."""

    name = "XOR4"
    block_size = 4

    def __init__(self):
        self.calls = 0

    def encrypt_block(self, key, block):
        self.calls += 1
        return bytes(a ^ b for a, b in zip(block, key))

    def decrypt_block(self, key, block):
        self.calls += 1
        return bytes(a ^ b for a, b in zip(block, key))


@unittest.skipIf(modecrypt is None, f"dependency unavailable: {_IMPORT_ERROR}")
class PaddingTests(unittest.TestCase):
    """PKCS#5/#7 padding: lengths, full-block rule and strict validation."""

    def test_pad_appends_value_equal_to_length(self):
        self.assertEqual(modecrypt.pad(b"abc", 8), b"abc" + b"\x05" * 5)

    def test_pad_adds_full_block_on_exact_multiple(self):
        padded = modecrypt.pad(b"A" * 16, 16)
        self.assertEqual(len(padded), 32)
        self.assertEqual(padded[16:], b"\x10" * 16)

    def test_pad_empty_input(self):
        self.assertEqual(modecrypt.pad(b"", 8), b"\x08" * 8)

    def test_unpad_inverts_pad(self):
        for length in range(0, 40):
            with self.subTest(length=length):
                data = os.urandom(length)
                self.assertEqual(modecrypt.unpad(modecrypt.pad(data, 16), 16), data)

    def test_unpad_rejects_zero_pad_byte(self):
        with self.assertRaises(PaddingError):
            modecrypt.unpad(b"A" * 15 + b"\x00", 16)

    def test_unpad_rejects_pad_larger_than_block(self):
        with self.assertRaises(PaddingError):
            modecrypt.unpad(b"A" * 7 + b"\x09", 8)

    def test_unpad_rejects_non_uniform_tail(self):
        with self.assertRaises(PaddingError):
            modecrypt.unpad(b"A" * 12 + b"\x04\x04\x03\x04", 16)

    def test_unpad_rejects_empty_and_unaligned(self):
        with self.assertRaises(PaddingError):
            modecrypt.unpad(b"", 8)
        with self.assertRaises(PaddingError):
            modecrypt.unpad(b"\x01" * 9, 8)

    def test_padding_error_is_value_error(self):
        with self.assertRaises(ValueError):
            modecrypt.unpad(b"\x00" * 8, 8)

    def test_block_size_range(self):
        with self.assertRaises(ValueError):
            modecrypt.pad(b"x", 0)
        with self.assertRaises(ValueError):
            modecrypt.pad(b"x", 256)


@unittest.skipIf(modecrypt is None, f"dependency unavailable: {_IMPORT_ERROR}")
class TransformationTests(unittest.TestCase):

    def test_parse_and_str_roundtrip(self):
        t = modecrypt.Transformation.parse("DES/ECB/PKCS5Padding")
        self.assertEqual(t.algorithm, "DES")
        self.assertIs(t.mode, modecrypt.Mode.ECB)
        self.assertIs(t.padding, modecrypt.PaddingScheme.PKCS5)
        self.assertEqual(str(t), "DES/ECB/PKCS5Padding")
        self.assertEqual(t.tag, "DES-ECB")

    def test_fields_are_normalised(self):
        t = modecrypt.Transformation("aes", "cbc", "pkcs7")
        self.assertEqual(t, modecrypt.Transformation.parse("AES/CBC/PKCS7Padding"))
        self.assertEqual(t.block_size, 16)

    def test_default_padding(self):
        t = modecrypt.Transformation.parse("AES/CBC")
        self.assertIs(t.padding, modecrypt.PaddingScheme.PKCS5)
        self.assertTrue(t.padded)
        self.assertFalse(modecrypt.Transformation("AES", "ECB", "NoPadding").padded)

    def test_unknown_parts_raise(self):
        with self.assertRaises(UnsupportedAlgorithmError):
            modecrypt.Transformation.parse("Blowfish/ECB/PKCS5Padding")
        with self.assertRaises(UnsupportedAlgorithmError):
            modecrypt.Transformation.parse("AES/GCM/NoPadding")
        with self.assertRaises(UnsupportedAlgorithmError):
            modecrypt.Transformation.parse("AES/CBC/ISO10126Padding")
        with self.assertRaises(UnsupportedAlgorithmError):
            modecrypt.Transformation.parse("AES")

    def test_output_name(self):
        self.assertEqual(
            modecrypt.output_name("images/logo-usj.bmp", "AES/CBC/PKCS5Padding"),
            "logo-usj-AES-CBC.bmp",
        )


@unittest.skipIf(modecrypt is None, f"dependency unavailable: {_IMPORT_ERROR}")
class KeyTests(unittest.TestCase):

    def test_default_key_sizes(self):
        self.assertEqual(modecrypt.generate_key("DES").key_size, 8)
        self.assertEqual(modecrypt.generate_key("AES").key_size, 16)
        self.assertEqual(modecrypt.generate_key("DESede").key_size, 24)
        self.assertEqual(modecrypt.generate_key("AES", 32).key_size, 32)

    def test_des_keys_have_odd_parity(self):
        key = modecrypt.generate_key("DES")
        for byte in key.material:
            self.assertEqual(bin(byte).count("1") % 2, 1)

    def test_keys_are_fresh(self):
        self.assertNotEqual(modecrypt.generate_key("AES").material, modecrypt.generate_key("AES").material)

    def test_unknown_algorithm(self):
        with self.assertRaises(UnsupportedAlgorithmError):
            modecrypt.generate_key("RC4")

    def test_bad_key_size(self):
        with self.assertRaises(InvalidKeyError):
            modecrypt.generate_key("AES", 20)
        with self.assertRaises(InvalidKeyError):
            modecrypt.SecretKey.from_bytes("DES", b"\x00" * 16)

    def test_repr_hides_material(self):
        key = modecrypt.SecretKey.from_bytes("AES", bytes(range(16)))
        text = repr(key)
        self.assertIn("AES", text)
        self.assertNotIn(bytes(range(16)).hex(), text)

    def test_destroy_zeroes_and_blocks_use(self):
        key = modecrypt.generate_key("AES")
        with key:
            self.assertFalse(key.destroyed)
        self.assertTrue(key.destroyed)
        self.assertEqual(bytes(key._material), b"\x00" * 16)
        with self.assertRaises(InvalidKeyError):
            key.material

    def test_key_algorithm_must_match(self):
        key = modecrypt.generate_key("AES")
        with self.assertRaises(InvalidKeyError):
            modecrypt.encrypt_file(b"", b"data", "DES/ECB/PKCS5Padding", key=key)

    def test_iv_reuse_rejected_across_calls_with_same_key(self):
        key = modecrypt.generate_key("AES")
        iv = os.urandom(16)
        modecrypt.encrypt_file(b"", b"A" * 32, "AES/CBC/PKCS5Padding", key=key, iv=iv)
        with self.assertRaises(IVReuseError):
            modecrypt.encrypt_file(b"", b"B" * 32, "AES/CBC/PKCS5Padding", key=key, iv=iv)
        # A different key may use the same IV.
        other = modecrypt.generate_key("AES")
        modecrypt.encrypt_file(b"", b"A" * 32, "AES/CBC/PKCS5Padding", key=other, iv=iv)

    def test_iv_claims_are_shared_between_threads(self):
        from concurrent.futures import ThreadPoolExecutor

        key = modecrypt.generate_key("DES")
        iv = os.urandom(8)

        def _attempt(_):
            try:
                modecrypt.encrypt_file(b"", b"payload", "DES/CBC/PKCS5Padding", key=key, iv=iv)
            except IVReuseError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=4) as pool:
            outcomes = list(pool.map(_attempt, range(8)))
        self.assertEqual(outcomes.count(True), 1)

    def test_destroyed_key_stops_engine(self):
        key = modecrypt.generate_key("AES")
        engine = modecrypt.ModeEngine(modecrypt.CryptographyBlockCipher("AES"), key)
        state = engine.start("ECB")
        engine.encrypt(state, b"\x00" * 16)
        key.destroy()
        with self.assertRaises(InvalidKeyError):
            engine.encrypt(state, b"\x00" * 16)
        with self.assertRaises(InvalidKeyError):
            engine.decrypt(state, b"\x00" * 16)
        with self.assertRaises(InvalidKeyError):
            engine.start("CBC", os.urandom(16))


@unittest.skipIf(modecrypt is None, f"dependency unavailable: {_IMPORT_ERROR}")
class PrimitiveTests(unittest.TestCase):

    def test_aes_known_answer(self):
        aes = modecrypt.CryptographyBlockCipher("AES")
        self.assertEqual(aes.encrypt_block(b"\x00" * 16, b"\x00" * 16), AES_ZERO_BLOCK_UNDER_ZERO_KEY)
        self.assertEqual(aes.decrypt_block(b"\x00" * 16, AES_ZERO_BLOCK_UNDER_ZERO_KEY), b"\x00" * 16)

    def test_des_known_answer(self):
        des = modecrypt.CryptographyBlockCipher("DES")
        self.assertEqual(des.block_size, 8)
        self.assertEqual(des.encrypt_block(b"\x00" * 8, b"\x00" * 8), DES_ZERO_BLOCK_UNDER_ZERO_KEY)

    def test_des_and_short_desede_keys_do_not_warn(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            modecrypt.encrypt_file(b"", b"x" * 40, "DES/CBC/PKCS5Padding")
            modecrypt.encrypt_file(b"", b"x" * 40, "DESede/ECB/PKCS5Padding", key=os.urandom(16))
        self.assertEqual([str(w.message) for w in caught], [])

    def test_two_key_desede_matches_three_key_form(self):
        desede = modecrypt.CryptographyBlockCipher("DESede")
        k1, k2 = os.urandom(8), os.urandom(8)
        block = os.urandom(8)
        self.assertEqual(desede.encrypt_block(k1 + k2, block), desede.encrypt_block(k1 + k2 + k1, block))

    def test_block_length_checked(self):
        aes = modecrypt.CryptographyBlockCipher("AES")
        with self.assertRaises(InvalidBlockSizeError):
            aes.encrypt_block(b"\x00" * 16, b"\x00" * 15)

    def test_bulk_matches_per_block(self):
        aes = modecrypt.CryptographyBlockCipher("AES")
        key = os.urandom(16)
        data = os.urandom(64)
        per_block = b"".join(aes.encrypt_block(key, data[i:i + 16]) for i in range(0, 64, 16))
        self.assertEqual(aes.encrypt_blocks(key, data), per_block)


@unittest.skipIf(modecrypt is None, f"dependency unavailable: {_IMPORT_ERROR}")
class ModeEngineTests(unittest.TestCase):
    """ECB/CBC semantics, explicit chain state and engine invariants."""

    def setUp(self) -> None:
        self.aes = modecrypt.CryptographyBlockCipher("AES")
        self.key = bytes(range(16))

    def test_cbc_requires_iv(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        with self.assertRaises(IVRequiredError):
            engine.start(modecrypt.Mode.CBC)

    def test_cbc_iv_length_checked(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        with self.assertRaises(InvalidBlockSizeError):
            engine.start(modecrypt.Mode.CBC, b"\x00" * 8)

    def test_cbc_iv_reuse_rejected(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        iv = os.urandom(16)
        engine.start("CBC", iv)
        with self.assertRaises(IVReuseError):
            engine.start("CBC", iv)
        # Decryption may reuse the IV any number of times.
        engine.start("CBC", iv, encrypting=False)
        engine.start("CBC", iv, encrypting=False)

    def test_ecb_ignores_iv_with_warning(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            state = engine.start(modecrypt.Mode.ECB, b"\x00" * 16)
        self.assertIsNone(state.chain)
        self.assertTrue(any("ECB" in str(w.message) for w in caught))

    def test_unaligned_input_rejected_with_offset(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        state = engine.start(modecrypt.Mode.ECB)
        _, state = engine.encrypt(state, b"\x00" * 32)
        with self.assertRaises(InvalidBlockSizeError) as ctx:
            engine.encrypt(state, b"\x00" * 17)
        self.assertEqual(ctx.exception.offset, 32)
        self.assertEqual(ctx.exception.algorithm, "AES")
        self.assertEqual(ctx.exception.mode, "ECB")

    def test_state_is_immutable_and_chained(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        iv = os.urandom(16)
        start = engine.start(modecrypt.Mode.CBC, iv)
        out, after = engine.encrypt(start, b"\x11" * 48)
        self.assertEqual(start.chain, iv)
        self.assertEqual(start.offset, 0)
        self.assertEqual(after.chain, out[-16:])
        self.assertEqual(after.offset, 48)

    def test_split_calls_equal_single_call(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        data = os.urandom(96)
        iv = os.urandom(16)
        whole, _ = engine.encrypt(engine.start("CBC", iv), data)
        state = engine.start("CBC", iv, encrypting=False)
        plain_a, state = engine.decrypt(state, whole[:32])
        plain_b, state = engine.decrypt(state, whole[32:])
        self.assertEqual(plain_a + plain_b, data)

    def test_ecb_identical_blocks(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        out, _ = engine.encrypt(engine.start("ECB"), b"\x42" * 16 * 3)
        self.assertEqual(out[:16], out[16:32])
        self.assertEqual(out[16:32], out[32:48])

    def test_cbc_hides_identical_blocks(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        out, _ = engine.encrypt(engine.start("CBC", os.urandom(16)), b"\x42" * 16 * 3)
        self.assertNotEqual(out[:16], out[16:32])
        self.assertNotEqual(out[16:32], out[32:48])

    def test_cbc_encrypt_diffusion(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        iv = os.urandom(16)
        plain = bytearray(os.urandom(16 * 6))
        base, _ = engine.encrypt(engine.start("CBC", iv), bytes(plain))
        plain[16 * 2 + 5] ^= 0x01
        fresh = modecrypt.ModeEngine(self.aes, self.key)
        changed, _ = fresh.encrypt(fresh.start("CBC", iv), bytes(plain))
        for i in range(6):
            block_a = base[16 * i:16 * (i + 1)]
            block_b = changed[16 * i:16 * (i + 1)]
            if i < 2:
                self.assertEqual(block_a, block_b, msg=f"block {i}")
            else:
                self.assertNotEqual(block_a, block_b, msg=f"block {i}")

    def test_cbc_decrypt_error_propagation(self):
        engine = modecrypt.ModeEngine(self.aes, self.key)
        iv = os.urandom(16)
        plain = os.urandom(16 * 6)
        cipher, _ = engine.encrypt(engine.start("CBC", iv), plain)
        tampered = bytearray(cipher)
        tampered[16 * 2] ^= 0x80
        recovered, _ = engine.decrypt(engine.start("CBC", iv, encrypting=False), bytes(tampered))
        for i in range(6):
            same = recovered[16 * i:16 * (i + 1)] == plain[16 * i:16 * (i + 1)]
            self.assertEqual(same, i not in (2, 3), msg=f"block {i}")
        # Block i+1 differs in exactly the flipped bit.
        self.assertEqual(recovered[16 * 3] ^ plain[16 * 3], 0x80)

    def test_generic_primitive_paths(self):
        toy = _XorPrimitive()
        engine = modecrypt.ModeEngine(toy, b"\x0f\x0f\x0f\x0f")
        iv = b"\x01\x02\x03\x04"
        data = b"abcdefghijkl"
        cipher, _ = engine.encrypt(engine.start("CBC", iv), data)
        plain, _ = engine.decrypt(engine.start("CBC", iv, encrypting=False), cipher)
        self.assertEqual(plain, data)
        self.assertGreater(toy.calls, 0)
        ecb, _ = engine.encrypt(engine.start("ECB"), b"aaaaaaaa")
        self.assertEqual(ecb[:4], ecb[4:])


@unittest.skipIf(modecrypt is None, f"dependency unavailable: {_IMPORT_ERROR}")
class ConfigTests(unittest.TestCase):

    def test_env_int_parsing(self):
        with patch.dict(os.environ, {"MODECRYPT_TEST_VALUE": "8192"}):
            self.assertEqual(modecrypt._env_int("MODECRYPT_TEST_VALUE"), 8192)
        with patch.dict(os.environ, {"MODECRYPT_TEST_VALUE": "abc"}):
            self.assertIsNone(modecrypt._env_int("MODECRYPT_TEST_VALUE"))
        with patch.dict(os.environ, {"MODECRYPT_TEST_VALUE": "0"}):
            self.assertIsNone(modecrypt._env_int("MODECRYPT_TEST_VALUE"))
            self.assertEqual(modecrypt._env_int("MODECRYPT_TEST_VALUE", minimum=0), 0)

    def test_chunk_size_rounds_to_block(self):
        self.assertEqual(modecrypt._resolve_chunk_size(100, 16), 96)
        self.assertEqual(modecrypt._resolve_chunk_size(3, 16), 16)
        self.assertEqual(modecrypt._resolve_chunk_size(None, 8) % 8, 0)

    def test_package_version_matches_engine(self):
        from modecrypt import __version__

        self.assertEqual(__version__, modecrypt.ENGINE_VERSION)


if __name__ == "__main__":
    unittest.main()
